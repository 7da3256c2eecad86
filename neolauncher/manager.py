"""Keep track of the Java runtimes installed on this machine."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Mapping, NamedTuple, Optional, Tuple

from .host import HostPlatform, detect_host
from .inspector import RuntimeInspector, normalize_directory
from .paths import get_java_cache_file, get_runtime_download_directory
from .runtime import Compatibility, JavaRuntime
from .selector import CompatibilityScore, JavaRequirement, select_java_for_game
from .settings import DiscoverySettings
from .verifier import JavaVerifier, VerifyResult

LOGGER = logging.getLogger("neolauncher.manager")

# Bump whenever the layout of the cached records changes.
JAVA_LIST_CACHE_VERSION = 1

JavaFetcher = Callable[[str, Path], Awaitable[Optional[Path]]]


class ManagerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class DefaultJavaRuntimes(NamedTuple):
    java8: Optional[JavaRuntime] = None
    java17: Optional[JavaRuntime] = None
    java21: Optional[JavaRuntime] = None


# (field, lowest major version, first major version past the bucket)
_DEFAULT_BUCKETS = (("java8", 8, 17), ("java17", 17, 21), ("java21", 21, None))


def closest_default_runtimes(runtimes: List[JavaRuntime]) -> DefaultJavaRuntimes:
    """Pick the runtime closest to Java 8, 17 and 21 from ``runtimes``.

    Each target only considers versions from itself up to the next target; on
    equal distance the earlier runtime wins.
    """

    picked: Dict[str, JavaRuntime] = {}
    for name, low, high in _DEFAULT_BUCKETS:
        best_diff = None
        for runtime in runtimes:
            slug = runtime.slug_version
            if slug < low or (high is not None and slug >= high):
                continue
            diff = slug - low
            if best_diff is None or diff < best_diff:
                best_diff = diff
                picked[name] = runtime
    return DefaultJavaRuntimes(**picked)


class VerificationCache:
    """Verification results keyed by runtime directory, kept in memory only."""

    def __init__(self):
        self._results: Dict[Path, VerifyResult] = {}

    def get(self, runtime: JavaRuntime) -> Optional[VerifyResult]:
        return self._results.get(runtime.directory_path)

    def store(self, runtime: JavaRuntime, result: VerifyResult) -> None:
        self._results[runtime.directory_path] = result

    def clear(self) -> None:
        self._results.clear()

    def __contains__(self, runtime: JavaRuntime) -> bool:
        return runtime.directory_path in self._results

    def __len__(self) -> int:
        return len(self._results)


class JavaManager:
    """Discover, verify and rank the Java runtimes available to the launcher.

    All mutating operations are guarded by a busy flag: a call made while
    another one is running, or before :meth:`initialize` completed, returns a
    neutral result instead of waiting.
    """

    def __init__(
        self,
        host: Optional[HostPlatform] = None,
        settings: Optional[DiscoverySettings] = None,
        inspector: Optional[RuntimeInspector] = None,
        verifier: Optional[JavaVerifier] = None,
        verification_cache: Optional[VerificationCache] = None,
        cache_file: Optional[Path] = None,
        fetcher: Optional[JavaFetcher] = None,
        download_directory: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.host = host or detect_host()
        self.settings = settings or DiscoverySettings()
        self.inspector = inspector or RuntimeInspector(self.host, self.settings)
        self.verifier = verifier or JavaVerifier(self.host, self.settings)
        self.verification_cache = verification_cache if verification_cache is not None else VerificationCache()
        self.cache_file = cache_file if cache_file is not None else get_java_cache_file()
        self.fetcher = fetcher
        self.download_directory = download_directory
        self.environ = environ

        self._runtimes: List[JavaRuntime] = []
        self._defaults: Optional[DefaultJavaRuntimes] = None
        self._state = ManagerState.UNINITIALIZED
        self._busy = False

    @property
    def state(self) -> ManagerState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is ManagerState.READY

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def java_list(self) -> List[JavaRuntime]:
        return list(self._runtimes)

    @property
    def default_runtimes(self) -> DefaultJavaRuntimes:
        if self._defaults is None:
            self._defaults = closest_default_runtimes(self._runtimes)
        return self._defaults

    def _set_runtimes(self, runtimes: List[JavaRuntime]) -> None:
        self._runtimes = runtimes
        self._defaults = None

    async def initialize(self) -> None:
        """Load the cached Java list, searching the machine when there is none."""

        if self.is_initialized or self._busy:
            return
        self._busy = True
        self._state = ManagerState.INITIALIZING
        self._set_runtimes([])
        ready = False
        try:
            cached, intact = await asyncio.to_thread(self._load_cache)
            if cached and intact:
                LOGGER.info("Loaded %d Java runtimes from %s", len(cached), self.cache_file)
                self._set_runtimes(cached)
            else:
                LOGGER.info("No usable Java list cache, searching for Java")
                preserved = [runtime for runtime in cached if runtime.is_user_imported]
                self._set_runtimes(await self._merge_user_imported(await self._discover(), preserved))
                LOGGER.info("Found %d Java runtimes", len(self._runtimes))
                await self._verify_prefix()
                await self._save_cache()
            ready = True
        finally:
            self._busy = False
            if ready:
                self._state = ManagerState.READY
            else:
                LOGGER.error("Java initialization failed")
                self._state = ManagerState.UNINITIALIZED

    async def manual_add(self, path: Path) -> Tuple[Optional[JavaRuntime], bool]:
        """Register a Java picked by the user.

        Returns the record (``None`` if the directory holds no usable Java) and
        whether it was already in the list.
        """

        if self._busy or not self.is_initialized:
            return None, False

        directory = self.resolve_java_directory(Path(path))
        self._busy = True
        try:
            for runtime in self._runtimes:
                if runtime.directory_path == directory:
                    LOGGER.info("%s is already known, marking it as user imported", directory)
                    runtime.is_user_imported = True
                    await self._save_cache()
                    return runtime, True

            runtime = await self.inspector.create(directory, user_imported=True)
            if runtime is None:
                LOGGER.warning("No runnable Java in %s", directory)
                return None, False
            self._set_runtimes(self._runtimes + [runtime])
            LOGGER.info("Added Java %s from %s", runtime.version, directory)
            await self.get_verification(runtime)
            await self._save_cache()
            return runtime, False
        finally:
            self._busy = False

    async def refresh(self) -> None:
        """Search the machine again, keeping the runtimes the user added."""

        if self._busy or not self.is_initialized:
            return
        self._busy = True
        try:
            LOGGER.info("Refreshing the Java list")
            user_imported = [runtime for runtime in self._runtimes if runtime.is_user_imported]
            self._set_runtimes(await self._merge_user_imported(await self._discover(), user_imported))
            LOGGER.info("Refresh complete, %d Java runtimes available", len(self._runtimes))

            self.clear_verification_cache()
            await self._verify_prefix()

            if not self._runtimes:
                await self._fetch_runtime()

            self._defaults = None
            await self._save_cache()
        finally:
            self._busy = False

    def get_compatible_javas(self, requirement: JavaRequirement) -> List[CompatibilityScore]:
        if not self.is_initialized or not self._runtimes:
            return []
        return select_java_for_game(requirement, self._runtimes)

    def get_best_java_for_game(self, requirement: JavaRequirement) -> Optional[JavaRuntime]:
        scores = self.get_compatible_javas(requirement)
        return scores[0].runtime if scores else None

    async def get_verification(self, runtime: JavaRuntime) -> VerifyResult:
        cached = self.verification_cache.get(runtime)
        if cached is not None:
            return cached
        result = await self.verifier.verify(runtime)
        self.verification_cache.store(runtime, result)
        return result

    def clear_verification_cache(self) -> None:
        self.verification_cache.clear()

    def resolve_java_directory(self, path: Path) -> Path:
        """Accept either the directory holding ``java`` or a Java home."""

        directory = normalize_directory(path)
        if not self.host.java_executable(directory).is_file():
            bin_directory = directory / "bin"
            if self.host.java_executable(bin_directory).is_file():
                return bin_directory
        return directory

    async def _discover(self) -> List[JavaRuntime]:
        probe = self.host.create_probe(self.settings, self.environ)
        candidates = await probe.find_candidates()
        LOGGER.debug("Inspecting %d candidate directories", len(candidates))
        records = await asyncio.gather(*(self.inspector.create(candidate) for candidate in candidates))

        runtimes: List[JavaRuntime] = []
        seen = set()
        for runtime in records:
            if runtime is None or runtime.directory_path in seen:
                continue
            seen.add(runtime.directory_path)
            runtimes.append(runtime)
        return runtimes

    async def _merge_user_imported(
        self, discovered: List[JavaRuntime], user_imported: List[JavaRuntime]
    ) -> List[JavaRuntime]:
        """Add the user imported runtimes a search did not find again.

        Rediscovered ones keep their flag; the others are re-inspected in place
        and dropped when they no longer run.
        """

        imported_keys = {runtime.directory_path for runtime in user_imported}
        for runtime in discovered:
            if runtime.directory_path in imported_keys:
                runtime.is_user_imported = True

        runtimes = list(discovered)
        found = {runtime.directory_path for runtime in discovered}
        for runtime in user_imported:
            if runtime.directory_path in found:
                continue
            if await self.inspector.refresh(runtime):
                runtimes.append(runtime)
            else:
                LOGGER.warning("User imported Java is no longer usable, dropping %s", runtime.directory_path)
        return runtimes

    async def _verify_prefix(self) -> None:
        targets = self._runtimes[: self.settings.verify_limit]
        if not targets:
            return
        LOGGER.info("Verifying %d Java runtimes", len(targets))
        results = await asyncio.gather(*(self.get_verification(runtime) for runtime in targets), return_exceptions=True)
        for runtime, result in zip(targets, results):
            if isinstance(result, BaseException):
                LOGGER.warning("Could not verify %s: %s", runtime.directory_path, result)
            elif not result.is_genuine:
                LOGGER.warning("Java in %s may not be genuine: %s", runtime.directory_path, result.fail_reason)
            else:
                LOGGER.info("Verified %s (%s)", runtime.directory_path, result.vendor.friendly_name)

    async def _fetch_runtime(self) -> None:
        if self.fetcher is None:
            LOGGER.warning("No Java found and no download source configured")
            return

        destination = self.download_directory or get_runtime_download_directory()
        platform_id = self.host.platform_id
        LOGGER.info("No Java found, downloading a runtime for %s into %s", platform_id, destination)
        try:
            destination.mkdir(parents=True, exist_ok=True)
            fetched = await self.fetcher(platform_id, destination)
        except Exception as exc:
            LOGGER.warning("Java download failed: %s", exc)
            return
        if fetched is None:
            LOGGER.warning("Java download did not produce a runtime")
            return

        runtime = await self.inspector.create(self.resolve_java_directory(Path(fetched)), user_imported=True)
        if runtime is None:
            LOGGER.warning("Downloaded Java in %s cannot be run", fetched)
            return
        self._set_runtimes(self._runtimes + [runtime])
        await self.get_verification(runtime)

    def _load_cache(self) -> Tuple[List[JavaRuntime], bool]:
        """Read the cached Java list.

        Returns the records and whether they can be used without a new search.
        Records whose executable disappeared are left out, and the rest are
        still returned so user imported runtimes survive the search.
        """

        try:
            with open(self.cache_file, encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return [], False
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable Java list cache %s: %s", self.cache_file, exc)
            return [], False

        if not isinstance(data, dict) or data.get("version") != JAVA_LIST_CACHE_VERSION:
            LOGGER.info("Java list cache is outdated, a new search is required")
            return [], False

        runtimes: List[JavaRuntime] = []
        intact = True
        for entry in data.get("runtimes") or []:
            try:
                runtime = JavaRuntime.from_dict(entry)
            except (KeyError, TypeError, ValueError) as exc:
                LOGGER.warning("Ignoring malformed Java list cache: %s", exc)
                return [], False
            if runtime.compatibility is Compatibility.ERROR:
                continue
            if not runtime.java_executable.is_file():
                LOGGER.info("Cached Java %s disappeared, a new search is required", runtime.directory_path)
                intact = False
                continue
            runtimes.append(runtime)
        return runtimes, intact

    def _write_cache(self, payload: str) -> None:
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.cache_file.with_suffix(self.cache_file.suffix + ".tmp")
        temp_file.write_text(payload, encoding="utf-8")
        os.replace(temp_file, self.cache_file)

    async def _save_cache(self) -> None:
        payload = json.dumps(
            {
                "version": JAVA_LIST_CACHE_VERSION,
                "runtimes": [runtime.to_dict() for runtime in self._runtimes],
            },
            indent=2,
        )
        try:
            await asyncio.to_thread(self._write_cache, payload)
        except OSError as exc:
            LOGGER.warning("Failed to store the Java list cache %s: %s", self.cache_file, exc)
