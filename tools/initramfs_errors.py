"""Exceptions raised while inspecting initramfs images."""


class InitramfsError(Exception):
    """Base exception for all inspection errors."""

    pass


class UsageError(InitramfsError):
    """Raised when the command line cannot be acted on."""

    pass


class DetectionError(InitramfsError):
    """Raised when the image format cannot be identified."""

    pass


class KernelImageError(DetectionError):
    """Raised when the file given is a kernel, not an initramfs."""

    pass


class ExtractionError(InitramfsError):
    """Raised when decompressing or unpacking the image fails."""

    pass


class ConfigError(InitramfsError):
    """Base exception for embedded build configuration problems."""

    pass


class ConfigNotFoundError(ConfigError):
    """Raised when the image carries no build configuration."""

    pass


class ConfigParseError(ConfigError):
    """Raised when the embedded config cannot be tokenized."""

    pass
