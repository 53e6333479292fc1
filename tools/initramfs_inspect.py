#!/usr/bin/env python3
"""List, extract, or analyze the contents of an initramfs image.

Actions (default: --list):
  -a  analyze the image: size, compression, kernel, modules, hooks
  -c  print the build configuration stored in the image
  -l  list the archive members
  -x  extract the image into the current directory

Exit codes:
  0 - success
  1 - usage error, unreadable or unrecognized image, extraction failure
"""

import os

import click

from initramfs_analyze import analyze_image
from initramfs_archive import extract_image, list_members
from initramfs_codec import detect_codec
from initramfs_config import dump_buildconfig
from initramfs_errors import InitramfsError, UsageError
from initramfs_report import OutputSink, render_report

__version__ = "0.1.0"


def _fail(message):
    click.echo(f"error: {message}", err=True)
    raise SystemExit(1)


class _Command(click.Command):
    """Report bad flags like every other usage error: one line, exit 1."""

    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            _fail(e.format_message())


def _pick_action(analyze, show_config, list_, extract):
    chosen = [name for name, on in (
        ("analyze", analyze),
        ("config", show_config),
        ("list", list_),
        ("extract", extract),
    ) if on]
    if len(chosen) > 1:
        raise UsageError("only one action may be specified at a time")
    return chosen[0] if chosen else "list"


def _pick_image(images):
    if not images:
        raise UsageError("no image specified (use -h for help)")
    if len(images) > 1:
        raise UsageError("only one image may be specified")
    image = images[0]
    if not os.path.isfile(image):
        raise UsageError(f"file not found: '{image}'")
    return image


def run(action, image, nocolor=False, verbose=False):
    """Perform *action* on *image*."""
    if action == "analyze":
        render_report(analyze_image(image), OutputSink.for_terminal(nocolor))
        return

    codec = detect_codec(image)
    if action == "config":
        click.echo(dump_buildconfig(image, codec), nl=False)
    elif action == "extract":
        extract_image(image, codec, os.getcwd(), verbose=verbose)
    else:
        for line in list_members(image, codec, verbose=verbose):
            click.echo(line)


@click.command(cls=_Command, context_settings={"help_option_names": ["-h", "--help"]})
@click.option('-a', '--analyze', is_flag=True, help='Analyze contents of image')
@click.option('-c', '--config', 'show_config', is_flag=True,
              help='Show configuration file stored in image')
@click.option('-l', '--list', 'list_', is_flag=True,
              help='List contents of the image (default)')
@click.option('-x', '--extract', is_flag=True, help='Extract image to disk')
@click.option('-n', '--nocolor', is_flag=True, help='Disable colorized output')
@click.option('-v', '--verbose', is_flag=True, help='More verbose output')
@click.version_option(__version__, '-V', '--version', prog_name='initramfs-inspect')
@click.argument('images', nargs=-1, type=click.Path())
def main(analyze: bool, show_config: bool, list_: bool, extract: bool,
         nocolor: bool, verbose: bool, images: tuple[str, ...]):
    """Examine an initramfs image without booting it.

    IMAGE is the initramfs to inspect.  Only one action may be given.
    """
    try:
        action = _pick_action(analyze, show_config, list_, extract)
        image = _pick_image(images)
        run(action, image, nocolor=nocolor, verbose=verbose)
    except InitramfsError as e:
        _fail(e)


if __name__ == '__main__':
    main()
