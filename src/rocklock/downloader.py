"""Concurrent download of package metadata and source archives."""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from tqdm import tqdm

from .errors import DownloadError, PackageNotFoundError, RuntimeIncompatibleError, VersionParseError
from .metadata import parse_metadata
from .runtime import parse_runtime_constraint

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

    from semantic_version import Version

    from .metadata import PackageMetadata
    from .registry import PackageIndex, RegistryClient
    from .runtime import RuntimeVersion

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 10


@dataclass(frozen=True)
class DownloadTask:
    """A package version to download."""

    name: str
    version: str
    metadata_url: str
    source_url: str | None = None


@dataclass
class DownloadResult:
    """The outcome of one :class:`DownloadTask`: either the downloaded files or the error that stopped it."""

    name: str
    version: str
    metadata: PackageMetadata | None = None
    source_path: Path | None = None
    source_url: str | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def create_download_tasks(index: PackageIndex, resolved: Mapping[str, Version]) -> list[DownloadTask]:
    """Create one task per resolved package, in name order.

    Raises:
        PackageNotFoundError: if a resolved version is not in the index.

    """
    tasks = []
    for name, version in sorted(resolved.items()):
        entry = index.entry(name, version)
        if entry is None:
            raise PackageNotFoundError(f"{name}@{version}")
        tasks.append(
            DownloadTask(
                name=name,
                version=entry.version,
                metadata_url=entry.metadata_url,
                source_url=entry.source_url,
            )
        )
    return tasks


class ParallelDownloader:
    """Downloads packages with a fixed number of downloads in flight.

    A new download starts only once a running one finishes, so slots are freed
    in completion order. A failing download never stops the others: every task
    produces exactly one :class:`DownloadResult`.
    """

    def __init__(self, client: RegistryClient, max_concurrent: int = DEFAULT_MAX_CONCURRENT) -> None:
        if max_concurrent < 1:
            msg = f"max_concurrent must be at least 1, got {max_concurrent}"
            raise ValueError(msg)
        self.client = client
        self.max_concurrent = max_concurrent

    def _check_runtime(self, metadata: PackageMetadata, installed: RuntimeVersion) -> None:
        required = metadata.runtime_constraint
        if required is None:
            return
        try:
            constraint = parse_runtime_constraint(required)
        except VersionParseError as e:
            logger.warning("Ignoring unparsable Lua version constraint of %s: %s", metadata.name, e)
            return
        if not constraint.match(installed):
            raise RuntimeIncompatibleError(metadata.name, metadata.version, required, installed)

    def download_package(self, task: DownloadTask, installed_runtime: RuntimeVersion | None = None) -> DownloadResult:
        """Download the metadata and source archive of one package, capturing any error in the result."""
        result = DownloadResult(name=task.name, version=task.version)
        try:
            result.metadata = parse_metadata(self.client.fetch_metadata(task.metadata_url, task.name, task.version))
            if installed_runtime is not None:
                self._check_runtime(result.metadata, installed_runtime)
            source_url = task.source_url
            if source_url is None and result.metadata.source.url.startswith(("http://", "https://")):
                source_url = result.metadata.source.url
            if source_url is not None:
                result.source_path = self.client.fetch_source(source_url)
                result.source_url = source_url
        except Exception as e:  # noqa: BLE001
            logger.debug("Failed to download %s %s", task.name, task.version, exc_info=True)
            result.error = e
        return result

    def download_packages(
        self,
        tasks: Iterable[DownloadTask],
        installed_runtime: RuntimeVersion | None = None,
        on_result: Callable[[DownloadResult], None] | None = None,
    ) -> list[DownloadResult]:
        """Download every task, at most ``max_concurrent`` at a time.

        Returns:
            One result per task, in completion order.

        """
        pending = list(tasks)
        results: list[DownloadResult] = []
        futures: dict[Future[DownloadResult], DownloadTask] = {}
        with ThreadPoolExecutor(max_workers=self.max_concurrent, thread_name_prefix="rocklock-download") as pool:
            while pending or futures:
                while pending and len(futures) < self.max_concurrent:
                    task = pending.pop(0)
                    futures[pool.submit(self.download_package, task, installed_runtime)] = task
                done, _ = wait(futures, return_when=FIRST_COMPLETED)
                for finished in done:
                    task = futures.pop(finished)
                    try:
                        result = finished.result()
                    except Exception as e:  # noqa: BLE001
                        result = DownloadResult(name=task.name, version=task.version, error=e)
                    results.append(result)
                    if on_result is not None:
                        on_result(result)
        return results

    def download_with_progress(
        self,
        tasks: Iterable[DownloadTask],
        installed_runtime: RuntimeVersion | None = None,
    ) -> list[DownloadResult]:
        """Download every task while showing a progress bar.

        The whole batch always runs to completion.

        Raises:
            DownloadError: naming every package that failed.

        """
        tasks = list(tasks)
        with tqdm(desc="Downloading packages", total=len(tasks), leave=False, unit=" packages") as t:

            def advance(result: DownloadResult) -> None:
                t.set_postfix_str(result.name, refresh=False)
                t.update(1)

            results = self.download_packages(tasks, installed_runtime, on_result=advance)
        failures = [(r.name, r.error) for r in results if r.error is not None]
        if failures:
            raise DownloadError(sorted(failures, key=lambda f: f[0]))
        return results
