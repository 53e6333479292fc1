"""Identify the compression envelope of an initramfs image.

Images are recognized by their leading bytes, never by filename.  The
decompressor for each codec lives in one closed table so callers only
ever deal in CompressionCodec members.

LZMA ("alone" format) has no real magic number; the single 0x5d byte
check below is a heuristic and can misfire on arbitrary data.
"""

import bz2
import enum
import functools
import gzip
import lzma
import re
import struct
import sys

from initramfs_errors import DetectionError, KernelImageError

CPIO_NEWC_MAGIC = b"070701"

# Bytes read from the start of the image for sniffing.
SNIFF_LEN = 6

# lz4 frame magics, stored as 32-bit little-endian words.
_LZ4_FRAME_MAGIC = 0x184D2204
_LZ4_LEGACY_MAGIC = 0x184C2102

# x86 boot protocol setup header
_KERNEL_HDRS_OFFSET = 0x202
_KERNEL_VERSION_PTR_OFFSET = 0x20E
_KERNEL_VERSION_BASE = 0x200
_KERNEL_VERSION_MAXLEN = 127
_KERNEL_RELEASE_RE = re.compile(r"^\d+(\.\d+)+")


class CompressionCodec(enum.Enum):
    """Compression envelope of an initramfs image."""

    NONE = "none"
    XZ = "xz"
    LZOP = "lzop"
    GZIP = "gzip"
    ZSTD = "zstd"
    LZ4 = "lz4"
    LZ4_LEGACY = "lz4-legacy"
    BZIP2 = "bzip2"
    LZMA = "lzma"
    UNKNOWN = "unknown"

    @property
    def compressed(self):
        return self is not CompressionCodec.NONE

    @property
    def recipe(self):
        """(in-process opener or None, external decompressor argv or None)."""
        return _DECOMPRESSORS[self]


def _open_raw(path):
    return open(path, "rb")


# Map of codec -> (opener(path) -> binary file or None, external argv or None).
# External commands get the image path appended and write to stdout.
_DECOMPRESSORS = {
    CompressionCodec.NONE:       (_open_raw, None),
    CompressionCodec.GZIP:       (gzip.open, None),
    CompressionCodec.BZIP2:      (bz2.open, None),
    CompressionCodec.XZ:         (functools.partial(lzma.open, format=lzma.FORMAT_XZ), None),
    CompressionCodec.LZMA:       (functools.partial(lzma.open, format=lzma.FORMAT_ALONE), None),
    CompressionCodec.LZOP:       (None, ("lzop", "-d", "-c")),
    CompressionCodec.LZ4:        (None, ("lz4", "-d", "-c")),
    CompressionCodec.LZ4_LEGACY: (None, ("lz4", "-d", "-c")),
    CompressionCodec.ZSTD:       (None, ("zstd", "-d", "-c", "-q")),
    CompressionCodec.UNKNOWN:    (None, None),
}


def sniff_codec(head):
    """Match the leading bytes of an image against known signatures.

    Order matters: the first matching signature wins.  Returns None when
    nothing matches.
    """
    head = bytes(head[:SNIFF_LEN])
    if head == CPIO_NEWC_MAGIC:
        return CompressionCodec.NONE
    if head.startswith(b"\xfd7zXZ"):
        return CompressionCodec.XZ
    if head.startswith(b"\x89LZO"):
        return CompressionCodec.LZOP
    if head.startswith(b"\x1f\x8b"):
        return CompressionCodec.GZIP
    if len(head) >= 4:
        (word,) = struct.unpack_from("<I", head)
        if word == _LZ4_FRAME_MAGIC:
            return CompressionCodec.LZ4
        if word == _LZ4_LEGACY_MAGIC:
            return CompressionCodec.LZ4_LEGACY
    if head.startswith(b"\x28\xb5\x2f\xfd"):
        return CompressionCodec.ZSTD
    if head.startswith(b"BZh"):
        return CompressionCodec.BZIP2
    if head[:1] == b"\x5d":
        return CompressionCodec.LZMA
    return None


def detect_codec(path):
    """Return the CompressionCodec of the image at *path*.

    Raises KernelImageError if the file turns out to be a kernel and
    DetectionError for anything else that is not recognized.
    """
    try:
        with open(path, "rb") as f:
            head = f.read(SNIFF_LEN)
    except OSError as e:
        raise DetectionError(f"cannot read {path}: {e}") from e

    codec = sniff_codec(head)
    if codec is CompressionCodec.LZ4:
        print("warning: newer lz4 stream format detected, this image may not boot",
              file=sys.stderr)
    if codec is not None:
        return codec

    kver = kernel_version(path)
    if kver:
        raise KernelImageError(
            f"{path} is a kernel image (version {kver}), not an initramfs")
    raise DetectionError(f"unknown image type: {path}")


def kernel_version(path):
    """Read the release string out of an x86 kernel image, or None."""
    try:
        with open(path, "rb") as f:
            f.seek(_KERNEL_HDRS_OFFSET)
            if f.read(4) != b"HdrS":
                return None
            f.seek(_KERNEL_VERSION_PTR_OFFSET)
            ptr = f.read(2)
            if len(ptr) != 2:
                return None
            (offset,) = struct.unpack("<H", ptr)
            f.seek(offset + _KERNEL_VERSION_BASE)
            raw = f.read(_KERNEL_VERSION_MAXLEN)
    except OSError:
        return None

    text = raw.split(b"\0", 1)[0].decode("ascii", errors="replace")
    fields = text.split()
    if not fields or not _KERNEL_RELEASE_RE.match(fields[0]):
        return None
    return fields[0]
