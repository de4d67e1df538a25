"""Content-addressed on-disk cache for registry metadata, source archives and build artifacts."""

from __future__ import annotations

import hashlib
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from .errors import CacheError, InvalidChecksumError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

CHECKSUM_PREFIX = "sha256:"
CHECKSUM_PATTERN = re.compile(r"^sha256:[0-9a-f]{64}$")
SIDECAR_SUFFIX = ".sha256"
SUBDIRECTORIES = ("metadata", "sources", "builds")
_KEY_LENGTH = 32
_CHUNK_SIZE = 1 << 16
_SECONDS_PER_DAY = 24 * 60 * 60
_ARCHIVE_EXTENSIONS = (".tar.gz", ".tar.bz2", ".tar.xz", ".tgz", ".zip", ".rock", ".rockspec", ".json")


def cache_key(identity: str) -> str:
    """Return the file name used to store the resource identified by ``identity``."""
    return hashlib.sha256(identity.encode("utf-8")).hexdigest()[:_KEY_LENGTH]


def validate_checksum(checksum: str, package: str | None = None) -> str:
    """Return ``checksum`` unchanged if it is of the form ``sha256:<64 lowercase hex>``.

    Raises:
        InvalidChecksumError: for any other format.

    """
    if not CHECKSUM_PATTERN.match(checksum):
        raise InvalidChecksumError(checksum, package)
    return checksum


def _extension(url: str) -> str:
    name = Path(urlparse(url).path).name
    for ext in _ARCHIVE_EXTENSIONS:
        if name.endswith(ext):
            return ext[1:]
    return "tar.gz"


@dataclass
class CacheCleanResult:
    """What a call to :meth:`Cache.clean` removed."""

    files_removed: int = 0
    bytes_freed: int = 0

    def __iadd__(self, other: CacheCleanResult) -> CacheCleanResult:
        """Accumulate the results of cleaning another directory."""
        self.files_removed += other.files_removed
        self.bytes_freed += other.bytes_freed
        return self


class Cache:
    """A directory of cached files, each stored under the hash of the resource it holds.

    Metadata is keyed by ``name@version`` and sources by URL, in separate
    sub-directories, so distinct resources never share a path. Every write also
    records a ``.sha256`` sidecar that :meth:`is_valid` checks the file against.
    """

    def __init__(self, root: Path | str) -> None:
        """Create a cache rooted at ``root`` (the directory is created by :meth:`init`)."""
        self.root = Path(root)

    def __repr__(self) -> str:
        """Return a string representation of the cache."""
        return f"{self.__class__.__name__}({str(self.root)!r})"

    @property
    def metadata_dir(self) -> Path:
        """Directory holding package metadata and the package index."""
        return self.root / "metadata"

    @property
    def sources_dir(self) -> Path:
        """Directory holding downloaded source archives."""
        return self.root / "sources"

    @property
    def builds_dir(self) -> Path:
        """Directory holding build artifacts."""
        return self.root / "builds"

    def init(self) -> None:
        """Create the cache directory layout."""
        for subdirectory in SUBDIRECTORIES:
            try:
                (self.root / subdirectory).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise CacheError(self.root / subdirectory, f"Failed to create cache directory ({e})") from e

    def metadata_path(self, name: str, version: str) -> Path:
        """Path of the cached metadata for ``name`` at ``version``."""
        return self.metadata_dir / f"{cache_key(f'{name}@{version}')}.rockspec"

    def source_path(self, url: str) -> Path:
        """Path of the cached source archive downloaded from ``url``, keeping its archive extension."""
        return self.sources_dir / f"{cache_key(url)}.{_extension(url)}"

    def index_path(self, url: str) -> Path:
        """Path of the cached package index fetched from ``url``."""
        return self.metadata_dir / f"index-{cache_key(url)}.json"

    def build_path(self, package: str, version: str, runtime: str, target: str) -> Path:
        """Path of the build artifact of ``package`` for a runtime version and target platform."""
        return self.builds_dir / cache_key(f"{package}@{version}:{runtime}:{target}")

    @staticmethod
    def sidecar_path(path: Path) -> Path:
        """Path of the checksum sidecar recorded for ``path``."""
        return path.with_name(path.name + SIDECAR_SUFFIX)

    def read(self, path: Path) -> bytes:
        """Read a cached file."""
        try:
            return path.read_bytes()
        except OSError as e:
            raise CacheError(path, f"Failed to read cache file ({e})") from e

    def read_text(self, path: Path) -> str:
        """Read a cached file as UTF-8 text."""
        return self.read(path).decode("utf-8", errors="replace")

    def write(self, path: Path, data: bytes | str) -> None:
        """Write ``data`` to ``path`` and then record its checksum in a sidecar.

        The write is not atomic: if it is interrupted, the data and the sidecar
        disagree and :meth:`is_valid` reports the entry as a miss.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            self.sidecar_path(path).write_text(CHECKSUM_PREFIX + hashlib.sha256(data).hexdigest())
        except OSError as e:
            raise CacheError(path, f"Failed to write cache file ({e})") from e

    def is_valid(self, path: Path) -> bool:
        """Return whether ``path`` exists and still hashes to the checksum recorded when it was written."""
        sidecar = self.sidecar_path(path)
        if not path.is_file() or not sidecar.is_file():
            return False
        try:
            recorded = sidecar.read_text().strip()
            actual = self.checksum(path)
        except (OSError, CacheError):
            logger.debug("Could not validate cache entry %s", path, exc_info=True)
            return False
        if recorded != actual:
            logger.info("Discarding corrupt cache entry %s", path)
            return False
        return True

    @staticmethod
    def checksum(path: Path) -> str:
        """Return the SHA-256 of the whole file as ``sha256:<64 lowercase hex>``."""
        digest = hashlib.sha256()
        try:
            with path.open("rb") as f:
                for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                    digest.update(chunk)
        except OSError as e:
            raise CacheError(path, f"Failed to read file for checksum ({e})") from e
        return CHECKSUM_PREFIX + digest.hexdigest()

    validate_checksum = staticmethod(validate_checksum)

    def clean(self, max_age_days: float, max_size_bytes: int) -> CacheCleanResult:
        """Evict old files, then the oldest files while over budget.

        Each sub-directory is cleaned independently: first every file at least
        ``max_age_days`` old is removed, then, while the remaining files total more
        than ``max_size_bytes``, files are removed oldest modification time first.
        Files that cannot be removed are logged and skipped.
        """
        result = CacheCleanResult()
        for subdirectory in SUBDIRECTORIES:
            directory = self.root / subdirectory
            if directory.is_dir():
                result += self._clean_directory(directory, max_age_days, max_size_bytes)
        if result.files_removed:
            logger.info("Removed %d cached file(s), freeing %d bytes", result.files_removed, result.bytes_freed)
        return result

    def _entries(self, directory: Path) -> Iterator[tuple[Path, float, int]]:
        for path in directory.rglob("*"):
            if path.name.endswith(SIDECAR_SUFFIX) or not path.is_file():
                continue
            try:
                stat = path.stat()
            except OSError as e:
                logger.warning("Skipping unreadable cache entry %s: %s", path, e)
                continue
            yield path, stat.st_mtime, stat.st_size

    def _remove(self, path: Path, size: int, result: CacheCleanResult) -> bool:
        try:
            path.unlink()
        except OSError as e:
            logger.warning("Failed to remove cached file %s: %s", path, e)
            return False
        try:
            self.sidecar_path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove checksum sidecar of %s: %s", path, e)
        result.files_removed += 1
        result.bytes_freed += size
        return True

    def _clean_directory(self, directory: Path, max_age_days: float, max_size_bytes: int) -> CacheCleanResult:
        result = CacheCleanResult()
        max_age = max_age_days * _SECONDS_PER_DAY
        now = time.time()
        remaining: list[tuple[Path, float, int]] = []
        for path, mtime, size in self._entries(directory):
            if now - mtime >= max_age and self._remove(path, size, result):
                continue
            remaining.append((path, mtime, size))

        total = sum(size for _, _, size in remaining)
        for path, _, size in sorted(remaining, key=lambda entry: entry[1]):
            if total <= max_size_bytes:
                break
            if self._remove(path, size, result):
                total -= size
        return result
