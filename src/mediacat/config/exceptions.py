"""Configuration errors."""

from mediacat.errors import MediacatError


class ConfigError(MediacatError):
    """Raised when the configuration file or overrides cannot be applied."""
