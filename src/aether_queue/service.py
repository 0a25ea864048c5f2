"""Application facade composing the queue engine components.

MediaQueueApp owns one item store and wires ingestion, scheduling,
thumbnails and session persistence around it. Front ends (the CLI, tests)
talk to this class instead of the individual components.
"""

import logging
from pathlib import PurePath
from typing import Any, Iterable, List, Optional

from .config import AppConfig
from .engine.base import ConversionEngine
from .engine.events import EngineEventRouter
from .exceptions import QueueBusyError, SessionDecisionPending
from .models import ConversionSettings, SettingsOverride
from .naming import render_name
from .notifications import NotificationCenter
from .queue.backends import KeyValueStore
from .queue.ingestion import IngestionPipeline, IngestionResult, UploadSession
from .queue.models import QueueItem, QueueStats, compute_queue_stats
from .queue.scheduler import ConversionScheduler, DrainSummary
from .queue.session import (
    AppPreferences,
    PreferencesRepository,
    SessionPersistence,
    SettingsRepository,
)
from .queue.store import ItemStore
from .queue.thumbnails import ThumbnailLoader
from .settings import clean_overrides, has_effective_override, resolve

logger = logging.getLogger(__name__)


class MediaQueueApp:
    def __init__(
        self,
        engine: ConversionEngine,
        kv: KeyValueStore,
        config: Optional[AppConfig] = None,
        notifications: Optional[NotificationCenter] = None,
        upload: Optional[UploadSession] = None,
    ):
        self.config = config or AppConfig()
        self.engine = engine
        self.kv = kv
        self.notifications = notifications or NotificationCenter()

        self.store = ItemStore()
        self.router = EngineEventRouter()
        self.settings_repo = SettingsRepository(kv)
        self.preferences_repo = PreferencesRepository(kv)
        self.settings: ConversionSettings = self.settings_repo.load()

        ingestion_cfg = self.config.ingestion
        self.thumbnails = ThumbnailLoader(
            self.store,
            engine,
            chunk_size=ingestion_cfg.chunk_size,
            yield_s=ingestion_cfg.thumbnail_yield_s,
        )
        self.session = SessionPersistence(self.store, kv, self.thumbnails)
        self.ingestion = IngestionPipeline(
            self.store,
            engine,
            notifications=self.notifications,
            chunk_size=ingestion_cfg.chunk_size,
            chunk_yield_s=ingestion_cfg.chunk_yield_s,
            upload=upload,
        )
        self.scheduler = ConversionScheduler(
            self.store,
            engine,
            get_settings=lambda: self.settings,
            notifications=self.notifications,
            router=self.router,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def preferences(self) -> AppPreferences:
        return self.preferences_repo.load()

    def auto_restore_enabled(self) -> bool:
        configured = self.config.session.auto_restore_session
        if configured is not None:
            return configured
        return self.preferences.auto_restore_session

    async def startup(self) -> bool:
        """Load the previous session.

        Returns:
            True if the caller must restore or discard before anything else
        """
        return await self.session.startup(self.auto_restore_enabled())

    async def restore_session(self) -> None:
        await self.session.restore()

    async def discard_session(self) -> None:
        await self.session.discard()

    def set_auto_restore(self, enabled: bool) -> None:
        self.preferences_repo.save(AppPreferences(auto_restore_session=enabled))

    async def aclose(self) -> None:
        self.session.detach()
        await self.engine.aclose()
        self.kv.close()

    def _require_idle(self, action: str) -> None:
        if self.session.needs_decision:
            raise SessionDecisionPending(
                f"Cannot {action}: restore or discard the previous session first"
            )
        if self.scheduler.is_running or self.store.is_processing:
            raise QueueBusyError(f"Cannot {action} while the queue is processing")

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    async def add_paths(self, paths: Iterable[str]) -> IngestionResult:
        """Ingest paths and request thumbnails for the new visual items."""
        self._require_idle("add files")
        result = await self.ingestion.ingest(paths)
        if result.new_items:
            await self.thumbnails.load(result.new_items)
        return result

    def cancel_upload(self) -> None:
        self.ingestion.cancel()

    async def remove(self, ids: List[str]) -> int:
        if self.store.is_processing:
            return 0
        present = {item.id for item in self.store.items}
        gone = [item_id for item_id in ids if item_id in present]
        removed = self.store.remove_items(ids)
        if removed:
            await self.thumbnails.delete(gone)
        return removed

    async def clear(self) -> None:
        if self.store.is_processing:
            return
        ids = [item.id for item in self.store.items]
        self.store.clear_queue()
        logger.info("Cleared %d item(s)", len(ids))
        await self.thumbnails.delete(ids)

    def resume(self, retry_errors: bool = True) -> int:
        return self.store.resume_queue(retry_errors)

    def retry_completed(self) -> int:
        return self.store.retry_completed()

    def retry_conflicts(self) -> int:
        return self.store.retry_conflicts()

    def stats(self) -> QueueStats:
        return compute_queue_stats(self.store.items)

    def find(self, key: str) -> Optional[QueueItem]:
        """Look an item up by id, input path or file name."""
        for item in self.store.items:
            if key in (item.id, item.input_path, item.file_name):
                return item
        return None

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process(self, retry_errors: bool = True) -> Optional[DrainSummary]:
        self._require_idle("start processing")
        return await self.scheduler.start_processing(retry_errors)

    async def process_selected(self) -> Optional[DrainSummary]:
        self._require_idle("start processing")
        return await self.scheduler.drain_selected()

    async def stop(self) -> None:
        await self.scheduler.stop()

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def update_settings(self, **updates: Any) -> ConversionSettings:
        self.settings = self.settings_repo.update(**updates)
        return self.settings

    def reset_settings(self) -> ConversionSettings:
        self.settings = self.settings_repo.reset()
        return self.settings

    def set_item_override(self, item_id: str, override: Optional[SettingsOverride]) -> None:
        """Store only the keys that differ from global; identical overrides clear."""
        self.store.set_overrides(item_id, clean_overrides(override, self.settings))

    def effective_settings(self, item_id: str) -> Optional[ConversionSettings]:
        item = self.store.get_item(item_id)
        if item is None:
            return None
        return resolve(self.settings, item.override_settings)

    def has_custom_settings(self, item_id: str) -> bool:
        item = self.store.get_item(item_id)
        return item is not None and has_effective_override(item.override_settings, self.settings)

    def preview_name(self, item_id: str) -> Optional[str]:
        settings = self.effective_settings(item_id)
        if settings is None:
            return None
        item = self.store.get_item(item_id)
        stem = PurePath(item.file_name).stem
        return render_name(stem, settings.naming_config)
