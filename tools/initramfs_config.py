"""Read the build metadata embedded in an unpacked initramfs.

mkinitcpio drops a shell fragment at /config recording the modules and
hooks it was asked for, a one-line /VERSION, and a copy of its own
configuration as /buildconfig.  The /config fragment is read as plain
assignments to a fixed set of variables; nothing in it is ever run.
"""

import os
import shlex

from initramfs_archive import extract_member
from initramfs_errors import ConfigNotFoundError, ConfigParseError

CONFIG_KEYS = (
    "MODULES",
    "EARLYHOOKS",
    "HOOKS",
    "LATEHOOKS",
    "CLEANUPHOOKS",
    "EMERGENCYHOOKS",
)

# Newest layout first; pre-usrmerge images keep modules under /lib.
MODULES_DIRS = ("usr/lib/modules", "lib/modules")

UNKNOWN_KERNEL = "unknown"

_OPERATOR_CHARS = frozenset("();<>|&")


def _split_assignment(line):
    """Split ``[export] KEY[+]=value`` into (key, append, value) or None."""
    if line.startswith("export "):
        line = line[len("export "):].lstrip()
    key, sep, value = line.partition("=")
    if not sep:
        return None
    append = key.endswith("+")
    if append:
        key = key[:-1]
    if not key.isidentifier():
        return None
    return key, append, value


def _tokens(value, lineno):
    """Tokenize an assignment value the way the shell would word-split it."""
    lexer = shlex.shlex(value, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    tokens = []
    try:
        for word in lexer:
            if word in ("(", ")"):
                continue
            if word and set(word) <= _OPERATOR_CHARS:
                # a second command follows on the same line
                break
            tokens.extend(word.split())
    except ValueError as e:
        raise ConfigParseError(f"config line {lineno}: {e}") from e
    return tokens


def parse_config(text):
    """Return {KEY: [token, ...]} for the recognized keys found in *text*."""
    values = {}
    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = _split_assignment(line)
        if parts is None:
            continue
        key, append, value = parts
        if key not in CONFIG_KEYS:
            continue
        tokens = _tokens(value, lineno)
        if append:
            values[key] = values.get(key, []) + tokens
        else:
            values[key] = tokens
    return values


def read_config(root):
    """Parse ``<root>/config``."""
    path = os.path.join(root, "config")
    if not os.path.isfile(path):
        raise ConfigNotFoundError("config not found in image")
    with open(path, encoding="utf-8", errors="replace") as f:
        return parse_config(f.read())


def read_version(root):
    """Return the builder version from ``<root>/VERSION``, if any."""
    path = os.path.join(root, "VERSION")
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            line = f.readline().strip()
    except OSError:
        return None
    return line or None


def find_kernel_version(root):
    """Name of the single kernel directory in the module tree."""
    for moddir in MODULES_DIRS:
        path = os.path.join(root, moddir)
        if not os.path.isdir(path):
            continue
        kernels = [d for d in os.listdir(path)
                   if os.path.isdir(os.path.join(path, d))]
        if len(kernels) == 1:
            return kernels[0]
        return UNKNOWN_KERNEL
    return UNKNOWN_KERNEL


def dump_buildconfig(image, codec):
    """Return the raw ``buildconfig`` member of the image, possibly empty."""
    data = extract_member(image, codec, "buildconfig")
    if data is None:
        raise ConfigNotFoundError(
            "no buildconfig found in image; it was probably created with "
            "an older version of mkinitcpio")
    return data
