"""Session persistence: the item collection, global settings and preferences.

Three JSON documents live in the key-value store:
- ``aether-media-queue``: the ordered item collection (never selection state)
- ``aether-media-settings``: global conversion settings, versioned and migrated
- ``aether-media-app-settings``: app preferences such as auto-restore

On startup a non-empty stored collection is a "previous session" that must
be explicitly restored or discarded unless auto-restore is enabled.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..models import ConversionSettings, NamingBlock, NamingBlockParams, NamingConfig
from .backends import KeyValueStore
from .models import QueueItem
from .store import ItemStore
from .thumbnails import ThumbnailLoader

logger = logging.getLogger(__name__)

QUEUE_KEY = "aether-media-queue"
SETTINGS_KEY = "aether-media-settings"
APP_SETTINGS_KEY = "aether-media-app-settings"

QUEUE_SCHEMA_VERSION = 1
SETTINGS_SCHEMA_VERSION = 2

INTERRUPTED_MESSAGE = "Interrupted"


# ----------------------------------------------------------------------
# Queue
# ----------------------------------------------------------------------


class SessionPersistence:
    """Mirrors the item store into durable storage and runs the restore handshake."""

    def __init__(
        self,
        store: ItemStore,
        kv: KeyValueStore,
        thumbnails: Optional[ThumbnailLoader] = None,
    ):
        self.store = store
        self.kv = kv
        self.thumbnails = thumbnails
        self.has_persisted_queue = False
        self.session_restore_handled = True
        self._unsubscribe = None

    @property
    def needs_decision(self) -> bool:
        return self.has_persisted_queue and not self.session_restore_handled

    def attach(self) -> None:
        """Start saving the collection after every store mutation."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.add_listener(self.save)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def save(self, items: List[QueueItem]) -> None:
        self.kv.set(
            QUEUE_KEY,
            {
                "version": QUEUE_SCHEMA_VERSION,
                "state": {"items": [item.model_dump(mode="json") for item in items]},
            },
        )

    def load(self) -> List[QueueItem]:
        """Read the stored collection into the store and raise the session flags.

        Raises:
            ValueError: If the stored queue was written by a newer version
        """
        raw = self.kv.get(QUEUE_KEY)
        if not raw:
            return []

        version = raw.get("version", QUEUE_SCHEMA_VERSION)
        if version > QUEUE_SCHEMA_VERSION:
            raise ValueError(
                f"Stored queue version {version} is newer than "
                f"current version {QUEUE_SCHEMA_VERSION}. Please update the application."
            )

        items = []
        for entry in (raw.get("state") or {}).get("items") or []:
            try:
                items.append(QueueItem.model_validate(entry))
            except ValidationError as e:
                logger.warning("Dropping unreadable stored item: %s", e)

        self.store.replace_items(items)
        if items:
            self.has_persisted_queue = True
            self.session_restore_handled = False
        logger.info("Loaded %d item(s) from previous session", len(items))
        return items

    def confirm_restore(self) -> None:
        self.session_restore_handled = True
        self.has_persisted_queue = False

    async def restore(self) -> None:
        """Keep the previous session and drop stale thumbnails."""
        self.confirm_restore()
        if self.thumbnails is not None:
            await self.thumbnails.revalidate()

    async def discard(self) -> None:
        """Drop the previous session; thumbnail cleanup is best effort."""
        if self.thumbnails is not None:
            await self.thumbnails.cleanup_all()
        self.store.clear_queue()
        self.has_persisted_queue = False
        self.session_restore_handled = True

    async def startup(self, auto_restore: bool) -> bool:
        """Load, recover interrupted items, and auto-restore when preferred.

        Args:
            auto_restore: App preference to keep the previous session silently

        Returns:
            True if an explicit restore/discard decision is still required
        """
        self.load()
        self.store.recover_interrupted(INTERRUPTED_MESSAGE)
        self.attach()

        if not self.has_persisted_queue:
            return False
        if auto_restore:
            await self.restore()
            return False
        return True


# ----------------------------------------------------------------------
# Settings
# ----------------------------------------------------------------------


def _legacy_naming_config(settings: Dict[str, Any]) -> NamingConfig:
    strategy = settings.pop("naming_strategy", "original")
    prefix = NamingBlockParams(value=settings.pop("naming_prefix", None) or None)
    random_params = NamingBlockParams(length=settings.pop("random_length", None) or None)
    sanitize = bool(settings.pop("sanitize_names", False))

    layouts = {
        "original": [("original", None)],
        "prefix": [("prefix", prefix)],
        "random": [("random", random_params)],
        "date": [("date", None)],
        "prefix_original": [("prefix", prefix), ("original", None)],
        "original_date": [("original", None), ("date", None)],
    }
    layout = layouts.get(strategy)
    if layout is None:
        logger.warning("Unknown legacy naming strategy %r, using original name", strategy)
        layout = layouts["original"]

    blocks = [NamingBlock(type=block_type, params=params) for block_type, params in layout]
    return NamingConfig(blocks=blocks, sanitize_enabled=sanitize)


def migrate_settings(settings: Dict[str, Any], from_version: int) -> Dict[str, Any]:
    """Migrate stored settings from an older schema version to current.

    Args:
        settings: Stored settings dict
        from_version: Schema version the settings were written with

    Returns:
        Settings dict compatible with SETTINGS_SCHEMA_VERSION

    Raises:
        ValueError: If from_version is newer than SETTINGS_SCHEMA_VERSION
    """
    if from_version > SETTINGS_SCHEMA_VERSION:
        raise ValueError(
            f"Settings schema version {from_version} is newer than "
            f"current version {SETTINGS_SCHEMA_VERSION}. Please update the application."
        )

    migrated = dict(settings)
    if from_version < 2:
        # v1: single naming strategy and a boolean overwrite flag
        if "naming_config" not in migrated:
            migrated["naming_config"] = _legacy_naming_config(migrated).model_dump(mode="json")
        else:
            for key in ("naming_strategy", "naming_prefix", "random_length", "sanitize_names"):
                migrated.pop(key, None)
        if "overwrite_existing" in migrated:
            overwrite = migrated.pop("overwrite_existing")
            migrated.setdefault("conflict_mode", "overwrite" if overwrite else "skip")

    return migrated


class SettingsRepository:
    """Loads and saves the global conversion settings."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def load(self) -> ConversionSettings:
        raw = self.kv.get(SETTINGS_KEY)
        if not raw:
            return ConversionSettings()

        version = raw.get("version", 1)
        state = raw.get("state") or {}
        settings_data = migrate_settings(state.get("settings") or {}, version)
        if state.get("output_directory") and "output_directory" not in settings_data:
            settings_data["output_directory"] = state["output_directory"]

        try:
            return ConversionSettings.model_validate(settings_data)
        except ValidationError as e:
            logger.warning("Stored settings are invalid, using defaults: %s", e)
            return ConversionSettings()

    def save(self, settings: ConversionSettings) -> None:
        self.kv.set(
            SETTINGS_KEY,
            {
                "version": SETTINGS_SCHEMA_VERSION,
                "state": {"settings": settings.model_dump(mode="json")},
            },
        )

    def update(self, **updates: Any) -> ConversionSettings:
        """Apply field updates to the stored settings, validating the result."""
        current = self.load().model_dump()
        current.update(updates)
        settings = ConversionSettings.model_validate(current)
        self.save(settings)
        return settings

    def reset(self) -> ConversionSettings:
        settings = ConversionSettings()
        self.save(settings)
        return settings


# ----------------------------------------------------------------------
# App preferences
# ----------------------------------------------------------------------


class AppPreferences(BaseModel):
    auto_restore_session: bool = Field(
        default=False, description="Keep the previous session without asking"
    )


class PreferencesRepository:
    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def load(self) -> AppPreferences:
        raw = self.kv.get(APP_SETTINGS_KEY)
        if not raw:
            return AppPreferences()
        try:
            return AppPreferences.model_validate(raw.get("state") or {})
        except ValidationError as e:
            logger.warning("Stored preferences are invalid, using defaults: %s", e)
            return AppPreferences()

    def save(self, preferences: AppPreferences) -> None:
        self.kv.set(APP_SETTINGS_KEY, {"version": 1, "state": preferences.model_dump()})
