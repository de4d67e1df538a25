"""Version and platform directory utilities for rocklock."""

from importlib.metadata import PackageNotFoundError, version as meta_version

from platformdirs import PlatformDirs

DISTRIBUTION = "rocklock"


def version() -> str:
    """Return the installed version of rocklock."""
    try:
        return meta_version(DISTRIBUTION)
    except PackageNotFoundError:
        from . import __version__

        return __version__


APP_DIRS = PlatformDirs(DISTRIBUTION, "rocklock")
