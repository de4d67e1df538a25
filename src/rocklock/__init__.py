"""The `rocklock` APIs: dependency resolution and lockfile generation for Lua packages."""

__version__ = "0.1.0"

from .builder import LockfileBuilder
from .cache import Cache
from .errors import *
from .lockfile import LockedPackage, Lockfile
from .manifest import PackageManifest
from .registry import HTTPRegistryClient, PackageIndex, RegistryClient
from .resolver import DependencyResolver
from .rocklock import APP_DIRS, version
from .version import parse_constraint, parse_version, satisfies
