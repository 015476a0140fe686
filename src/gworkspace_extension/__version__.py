"""Version information for gworkspace-extension."""

from importlib.metadata import PackageNotFoundError, version


def _get_version() -> str:
    """Get the installed distribution version, or a fallback for source checkouts."""
    try:
        return version("gworkspace-extension")
    except PackageNotFoundError:
        return "0.1.0"


__version__ = _get_version()
