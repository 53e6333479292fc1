"""Analyze an initramfs image.

Detects the compression codec, unpacks the image into a scratch
directory, times the extraction, measures the compression ratio and
collects what the image carries: kernel modules, binaries, hooks and the
build metadata mkinitcpio embeds.  The scratch directory never outlives
analyze_image(), whichever way it returns.
"""

import contextlib
import os
import re
import signal
import sys
import tempfile
import threading
import time
from dataclasses import dataclass, field
from fractions import Fraction

from initramfs_archive import decompressed_size
from initramfs_archive import unpack as unpack_image
from initramfs_codec import CompressionCodec, detect_codec
from initramfs_config import (
    MODULES_DIRS,
    find_kernel_version,
    read_config,
    read_version,
)
from initramfs_errors import ConfigError, DetectionError, ExtractionError

HOOKS_DIR = "hooks"
BINARIES_DIR = "usr/bin"

# Hook groups in run order, keyed by the config variable declaring them.
HOOK_GROUPS = (
    ("early", "EARLYHOOKS"),
    ("main", "HOOKS"),
    ("late", "LATEHOOKS"),
    ("cleanup", "CLEANUPHOOKS"),
    ("emergency", "EMERGENCYHOOKS"),
)

# foo.ko, foo.ko.xz, foo.ko.zst, ...
_KMOD_RE = re.compile(r"^(.+)\.ko(\.[A-Za-z0-9]+)?$")

_SCRATCH_PREFIX = "initramfs-inspect."


def normalize_module(name):
    """Module names treat '-' and '_' as the same character."""
    return name.replace("-", "_")


@dataclass(frozen=True)
class ImageHandle:
    """An image file on disk."""
    path: str
    target: str | None
    size: int

    @classmethod
    def from_path(cls, path):
        target = os.path.realpath(path) if os.path.islink(path) else None
        return cls(path=path, target=target, size=os.stat(path).st_size)


@dataclass(frozen=True)
class BuildConfig:
    """What an unpacked image contains.

    kernel_version and explicit_modules are None when /config could not
    be read; hooks is then empty.
    """
    version: str | None = None
    kernel_version: str | None = None
    modules: tuple = ()
    explicit_modules: frozenset | None = None
    binaries: tuple = ()
    hook_files: tuple = ()
    hooks: dict = field(default_factory=dict)

    @property
    def has_config(self):
        return self.explicit_modules is not None

    def is_explicit(self, module):
        if not self.explicit_modules:
            return False
        wanted = {normalize_module(m) for m in self.explicit_modules}
        return normalize_module(module) in wanted


@dataclass(frozen=True)
class AnalysisReport:
    """Result of analyze_image()."""
    image: ImageHandle
    codec: CompressionCodec
    decompress_seconds: float
    config: BuildConfig
    uncompressed_size: int | None = None
    ratio: Fraction | None = None

    def __post_init__(self):
        if (self.uncompressed_size is None) != (self.ratio is None):
            raise ValueError("uncompressed_size and ratio must be set together")
        if self.ratio is not None and not self.codec.compressed:
            raise ValueError("ratio is only defined for compressed images")

    @property
    def compressed_size(self):
        return self.image.size


@contextlib.contextmanager
def scratch_directory():
    """Yield a fresh temporary directory, removed on every exit path.

    SIGTERM and SIGHUP are turned into SystemExit while the directory
    exists so that the cleanup still runs.
    """
    previous = {}

    def _interrupted(signum, _frame):
        raise SystemExit(128 + signum)

    if threading.current_thread() is threading.main_thread():
        for signum in (signal.SIGTERM, signal.SIGHUP):
            previous[signum] = signal.signal(signum, _interrupted)
    try:
        with tempfile.TemporaryDirectory(prefix=_SCRATCH_PREFIX) as workdir:
            yield workdir
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def _entries(path):
    """Sorted names of the non-directory entries under *path*."""
    if not os.path.isdir(path):
        return ()
    names = []
    with os.scandir(path) as it:
        for entry in it:
            if entry.is_dir(follow_symlinks=False):
                continue
            names.append(entry.name)
    return tuple(sorted(names))


def _module_names(root):
    """Bare names of every kernel module file in the module tree."""
    names = set()
    for moddir in MODULES_DIRS:
        path = os.path.join(root, moddir)
        if not os.path.isdir(path):
            continue
        for _dirpath, _dirnames, filenames in os.walk(path):
            for fname in filenames:
                m = _KMOD_RE.match(fname)
                if m:
                    names.add(m.group(1))
        break
    return tuple(sorted(names))


def scan_tree(root):
    """Build a BuildConfig from an unpacked image rooted at *root*."""
    modules = _module_names(root)
    binaries = _entries(os.path.join(root, BINARIES_DIR))
    hook_files = _entries(os.path.join(root, HOOKS_DIR))
    version = read_version(root)

    try:
        values = read_config(root)
    except ConfigError as e:
        print(f"warning: {e}", file=sys.stderr)
        return BuildConfig(version=version, modules=modules,
                           binaries=binaries, hook_files=hook_files)

    hooks = {}
    for group, key in HOOK_GROUPS:
        if values.get(key):
            hooks[group] = tuple(values[key])

    return BuildConfig(
        version=version,
        kernel_version=find_kernel_version(root),
        modules=modules,
        explicit_modules=frozenset(values.get("MODULES", ())),
        binaries=binaries,
        hook_files=hook_files,
        hooks=hooks,
    )


def analyze_image(path, unpack=unpack_image):
    """Analyze the initramfs at *path* and return an AnalysisReport.

    *unpack(image, codec, dest)* materializes the archive into *dest*.
    """
    try:
        image = ImageHandle.from_path(path)
    except OSError as e:
        raise DetectionError(f"cannot read {path}: {e}") from e
    codec = detect_codec(image.path)

    with scratch_directory() as workdir:
        start = time.monotonic()
        unpack(image.path, codec, workdir)
        elapsed = time.monotonic() - start

        uncompressed_size = ratio = None
        if codec.compressed:
            uncompressed_size = decompressed_size(image.path, codec)
            if uncompressed_size == 0:
                raise ExtractionError(f"{image.path} decompressed to nothing")
            ratio = Fraction(image.size, uncompressed_size)

        config = scan_tree(workdir)

    return AnalysisReport(
        image=image,
        codec=codec,
        decompress_seconds=elapsed,
        config=config,
        uncompressed_size=uncompressed_size,
        ratio=ratio,
    )
