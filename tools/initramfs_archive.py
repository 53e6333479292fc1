"""Decompress initramfs images and hand the cpio stream to cpio(1).

gzip, bzip2, xz and lzma are decoded with Python's own codec modules;
lzop, lz4 and zstd images are piped through the external decompressors.
Either way the decompressed stream is fed to cpio's stdin.
"""

import contextlib
import lzma
import shutil
import subprocess
import tempfile
import zlib

from _env import clean_env
from initramfs_errors import ExtractionError

_CHUNK = 65536

# Errors the in-process codecs raise on corrupt or truncated input.
_CODEC_ERRORS = (OSError, EOFError, lzma.LZMAError, zlib.error)

_UNPACK_ARGS = ["-i", "-d", "-m", "--quiet",
                "--no-absolute-filenames", "--no-preserve-owner"]


def _require(tool):
    path = shutil.which(tool)
    if path is None:
        raise ExtractionError(f"'{tool}' not found in PATH")
    return path


@contextlib.contextmanager
def open_decompressed(image, codec):
    """Yield a binary stream of the decompressed cpio data in *image*."""
    opener, command = codec.recipe
    if opener is not None:
        try:
            stream = opener(image)
        except OSError as e:
            raise ExtractionError(f"cannot open {image}: {e}") from e
        with stream:
            yield stream
        return

    if not command:
        raise ExtractionError(f"no decompressor for {codec.value} images")

    decomp_cmd = [_require(command[0]), *command[1:], image]
    decomp_proc = subprocess.Popen(
        decomp_cmd, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL,
        env=clean_env(),
    )
    try:
        yield decomp_proc.stdout
    finally:
        decomp_proc.stdout.close()
        decomp_proc.wait()
    if decomp_proc.returncode != 0:
        raise ExtractionError(
            f"{command[0]} exited with code {decomp_proc.returncode}")


def decompressed_size(image, codec):
    """Return the size in bytes of the decompressed cpio stream."""
    total = 0
    with open_decompressed(image, codec) as stream:
        try:
            for chunk in iter(lambda: stream.read(_CHUNK), b""):
                total += len(chunk)
        except _CODEC_ERRORS as e:
            raise ExtractionError(f"failed to decompress {image}: {e}") from e
    return total


def _run_cpio(image, codec, cpio_args, cwd=None, capture=False):
    """Feed the decompressed image to cpio; return its stdout if *capture*."""
    cpio = _require("cpio")
    with contextlib.ExitStack() as stack:
        out = stack.enter_context(tempfile.TemporaryFile()) if capture else None
        stream = stack.enter_context(open_decompressed(image, codec))
        cpio_proc = subprocess.Popen(
            [cpio, *cpio_args],
            stdin=subprocess.PIPE, stdout=out, cwd=cwd, env=clean_env(),
        )
        try:
            shutil.copyfileobj(stream, cpio_proc.stdin, _CHUNK)
        except BrokenPipeError:
            # cpio quit early; its exit status is checked below
            pass
        except _CODEC_ERRORS as e:
            cpio_proc.kill()
            cpio_proc.wait()
            raise ExtractionError(f"failed to decompress {image}: {e}") from e
        finally:
            try:
                cpio_proc.stdin.close()
            except BrokenPipeError:
                pass
        cpio_proc.wait()

        if cpio_proc.returncode != 0:
            raise ExtractionError(f"cpio exited with code {cpio_proc.returncode}")
        if out is None:
            return None
        out.seek(0)
        return out.read()


def unpack(image, codec, dest):
    """Unpack the whole image into the existing directory *dest*."""
    _run_cpio(image, codec, _UNPACK_ARGS, cwd=dest)


def extract_image(image, codec, dest, verbose=False):
    """Unpack into *dest*, letting cpio report each file when *verbose*."""
    args = _UNPACK_ARGS + (["-v"] if verbose else [])
    _run_cpio(image, codec, args, cwd=dest)


def list_members(image, codec, verbose=False):
    """Return the archive listing, one line per member."""
    args = ["-t", "--quiet"] + (["-v"] if verbose else [])
    data = _run_cpio(image, codec, args, capture=True)
    return data.decode("utf-8", errors="replace").splitlines()


def extract_member(image, codec, name):
    """Return the contents of member *name*, or None if it is not present.

    cpio prints nothing for a pattern that matches no member, so the
    listing decides between an absent member and an empty one.
    """
    if name not in list_members(image, codec):
        return None
    args = ["-i", "--quiet", "--to-stdout", name]
    return _run_cpio(image, codec, args, capture=True)
