"""Render an AnalysisReport as sectioned terminal text."""

import shutil
import sys
from dataclasses import dataclass

import click

_UNITS = ("B", "KiB", "MiB", "GiB", "TiB")
_TAB = 8

# Hook groups in run order with their section headings.
_HOOK_HEADINGS = (
    ("early", "Early hook run order:"),
    ("main", "Hook run order:"),
    ("late", "Late hook run order:"),
    ("cleanup", "Cleanup hook run order:"),
    ("emergency", "Emergency hook run order:"),
)


def size_to_human(num):
    """Format a byte count with binary units, e.g. 1536 -> "1.5 KiB"."""
    value = float(num)
    unit = 0
    while value >= 1024 and unit < len(_UNITS) - 1:
        value /= 1024
        unit += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_UNITS[unit]}"


def columnize(entries, width=80, indent=0):
    """Lay *entries* out column-major in as many columns as fit *width*.

    Every cell is prefixed with *indent* spaces.  Columns are as wide as
    the longest cell rounded up to the next tab stop, like column(1).
    """
    if not entries:
        return []
    entries = [" " * indent + e for e in entries]
    colwidth = (max(len(e) for e in entries) + _TAB) & ~(_TAB - 1)
    ncols = max(1, width // colwidth)
    nrows = -(-len(entries) // ncols)
    lines = []
    for row in range(nrows):
        cells = entries[row::nrows]
        lines.append("".join(c.ljust(colwidth) for c in cells).rstrip())
    return lines


@dataclass
class OutputSink:
    """Where report text goes, and how it may be decorated."""
    color: bool = False
    width: int = 80

    @classmethod
    def for_terminal(cls, nocolor=False):
        width = shutil.get_terminal_size((80, 24)).columns
        color = not nocolor and sys.stdout.isatty()
        return cls(color=color, width=width)

    def _style(self, text, **styles):
        return click.style(text, **styles) if self.color else text

    def msg(self, text):
        arrow = self._style("==>", fg="green", bold=True)
        self.line(f"{arrow} {self._style(text, bold=True)}")

    def msg2(self, text):
        arrow = self._style("->", fg="blue", bold=True)
        self.line(f"  {arrow} {self._style(text, bold=True)}")

    def line(self, text=""):
        click.echo(text, color=self.color)


def _section(sink, heading, entries, sort=True):
    """Print a heading and its entries; skip the section when empty."""
    if not entries:
        return
    sink.msg(heading)
    if sort:
        for line in columnize(sorted(entries), sink.width, indent=2):
            sink.line(line)
    else:
        for entry in entries:
            sink.line(f"  {entry}")
    sink.line()


def render_report(report, sink):
    """Write *report* to *sink*."""
    config = report.config
    image = report.image

    heading = f"Image: {image.path}"
    if image.target:
        heading += f" -> {image.target}"
    sink.msg(heading)
    if config.version:
        sink.msg(f"Created with mkinitcpio {config.version}")
    sink.msg(f"Kernel: {config.kernel_version or 'unknown'}")
    sink.msg(f"Size: {size_to_human(report.compressed_size)}")
    if report.codec.compressed:
        sink.msg(f"Compressed with: {report.codec.value}")
        sink.msg2(f"Uncompressed size: {size_to_human(report.uncompressed_size)} "
                  f"({float(report.ratio):.3f} ratio)")
    sink.msg2(f"Estimated extraction time: {report.decompress_seconds:.3f}s")
    sink.line()

    modules = [
        f"{mod} [explicit]" if config.is_explicit(mod) else mod
        for mod in config.modules
    ]
    _section(sink, "Included modules:", modules)
    _section(sink, "Included binaries:", config.binaries)

    if not config.has_config:
        # run order is unknown without /config; show what is on disk
        _section(sink, "Included hooks:", config.hook_files)
    for group, title in _HOOK_HEADINGS:
        _section(sink, title, config.hooks.get(group, ()), sort=False)
