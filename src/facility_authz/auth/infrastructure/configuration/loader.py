"""
Configuration loader.

Owns the active configuration snapshot. Loads and reloads are serialized by a
single writer lock; a new snapshot is built completely before the reference is
swapped, so readers only ever see a whole snapshot.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional

from ....core.exceptions import ConfigurationError, ConfigurationSourceError
from ...application.services.conditions import ConditionRegistry
from ...domain.protocols.service_protocols import ConfigurationSourceProtocol
from .snapshot import ConfigurationSnapshot, build_snapshot


logger = logging.getLogger(__name__)

ReloadListener = Callable[[ConfigurationSnapshot], Awaitable[None]]


class ConfigurationLoader:
    """
    Loads, validates and hot-reloads the authorization configuration.

    Args:
        source: Configuration source
        conditions: Registry used to validate condition names
    """

    def __init__(
        self,
        source: ConfigurationSourceProtocol,
        conditions: Optional[ConditionRegistry] = None
    ):
        self._source = source
        self._conditions = conditions or ConditionRegistry()
        self._snapshot: Optional[ConfigurationSnapshot] = None
        self._version = 0
        self._lock = asyncio.Lock()
        self._listeners: List[ReloadListener] = []
        self._watch_task: Optional[asyncio.Task] = None
        self._last_fingerprint: Optional[str] = None

    @property
    def source(self) -> ConfigurationSourceProtocol:
        return self._source

    @property
    def conditions(self) -> ConditionRegistry:
        return self._conditions

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def version(self) -> int:
        """Version of the active snapshot (0 before the first load)."""
        return self._version

    @property
    def snapshot(self) -> ConfigurationSnapshot:
        """The active snapshot; raises ``ConfigurationError`` when nothing is loaded."""
        snapshot = self._snapshot
        if snapshot is None:
            raise ConfigurationError("Authorization configuration is not loaded")
        return snapshot

    def add_reload_listener(self, listener: ReloadListener) -> None:
        """Register an async callable awaited after every successful (re)load."""
        self._listeners.append(listener)

    def remove_reload_listener(self, listener: ReloadListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def load(self) -> ConfigurationSnapshot:
        """Load the configuration unless a snapshot is already active."""
        if self._snapshot is not None:
            return self._snapshot
        return await self.reload_all()

    async def _read_source(self) -> Mapping[str, Any]:
        try:
            return await self._source.load()
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationSourceError(
                f"Failed to read configuration from {self._source.describe()}: {e}",
                details={"source": self._source.describe()}
            )

    async def reload_all(self) -> ConfigurationSnapshot:
        """
        Reload every configuration document and swap in a new snapshot.

        On failure the previous snapshot stays active and the error propagates.
        Returns only after every reload listener has completed.
        """
        async with self._lock:
            # Fingerprint before the read so an edit made during it stays pending
            fingerprint = await self._source.fingerprint()
            raw = await self._read_source()
            try:
                snapshot = build_snapshot(raw, self._conditions, self._version + 1, fingerprint)
            except ConfigurationError as e:
                logger.error(f"Configuration from {self._source.describe()} rejected: {e.message}")
                for issue in e.details.get("issues", []):
                    logger.error(f"  - {issue}")
                raise

            self._snapshot = snapshot
            self._version = snapshot.version
            self._last_fingerprint = fingerprint
            logger.info(
                f"Loaded authorization configuration v{snapshot.version} from {self._source.describe()}"
            )

            for listener in list(self._listeners):
                try:
                    await listener(snapshot)
                except Exception as e:
                    # Stale cache entries are still rejected by their version stamp
                    logger.error(f"Reload listener {listener!r} failed: {e}")

            return snapshot

    async def validate(self, raw: Optional[Mapping[str, Any]] = None) -> ConfigurationSnapshot:
        """
        Validate configuration without activating it.

        Validates ``raw`` when given, otherwise the current source contents.
        Raises ``ConfigurationError`` listing every issue.
        """
        if raw is None:
            raw = await self._read_source()
        return build_snapshot(raw, self._conditions, self._version + 1)

    def get_configuration(self, name: str) -> Mapping[str, Any]:
        """Read-only view of a raw configuration document of the active snapshot."""
        return self.snapshot.document(name)

    async def check_for_changes(self) -> bool:
        """Reload when the source fingerprint changed. Returns True if reloaded."""
        fingerprint = await self._source.fingerprint()
        if fingerprint is None or fingerprint == self._last_fingerprint:
            return False
        logger.info(f"Configuration change detected in {self._source.describe()}")
        await self.reload_all()
        return True

    async def _watch(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.check_for_changes()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Hot reload failed, keeping configuration v{self._version}: {e}")

    def start_watching(self, interval: float = 5.0) -> asyncio.Task:
        """Start polling the source for changes."""
        if self._watch_task is None or self._watch_task.done():
            self._watch_task = asyncio.create_task(self._watch(interval))
            logger.info(f"Watching {self._source.describe()} every {interval}s")
        return self._watch_task

    async def stop_watching(self) -> None:
        task, self._watch_task = self._watch_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def close(self) -> None:
        await self.stop_watching()
        self._listeners.clear()
