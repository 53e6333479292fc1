"""Shared environment sanitization for external archive tools.

cpio and the command-line decompressors localize their messages and
listing output.  Inspection runs them with a whitelisted environment and
a pinned C locale so what we parse and show does not depend on the
caller's shell.
"""

import os

# Vars passed through from the host environment when present.
_PASSTHROUGH = frozenset({
    "PATH",
    "HOME", "USER", "LOGNAME",
    "TMPDIR", "TEMP", "TMP",
    "TERM",
})

# Vars pinned to fixed values for stable tool output.
_LOCALE_PINS = {
    "LC_ALL": "C",
    "LANG": "C",
}


def clean_env():
    """Return a clean env dict for subprocess env= parameter.

    Copies only whitelisted vars from the host, then applies the locale
    pins.
    """
    env = {}
    for key in _PASSTHROUGH:
        val = os.environ.get(key)
        if val is not None:
            env[key] = val
    env.update(_LOCALE_PINS)
    return env
