"""Queue engine: item store, ingestion, scheduling and session persistence."""

from .backends import KeyValueStore
from .cancellation import CancellationToken
from .ingestion import IngestionPipeline, IngestionResult, UploadSession
from .models import (
    AddResult,
    FileDescriptor,
    ProcessStatus,
    QueueItem,
    QueueStats,
    ThumbnailStatus,
    compute_queue_stats,
)
from .scheduler import ConversionScheduler, DrainSummary, build_conversion_request
from .session import (
    APP_SETTINGS_KEY,
    QUEUE_KEY,
    SETTINGS_KEY,
    AppPreferences,
    PreferencesRepository,
    SessionPersistence,
    SettingsRepository,
    migrate_settings,
)
from .sqlite_backend import SQLiteKeyValueStore
from .store import ItemStore
from .thumbnails import ThumbnailLoader

__all__ = [
    "KeyValueStore",
    "SQLiteKeyValueStore",
    "CancellationToken",
    "IngestionPipeline",
    "IngestionResult",
    "UploadSession",
    "AddResult",
    "FileDescriptor",
    "ProcessStatus",
    "QueueItem",
    "QueueStats",
    "ThumbnailStatus",
    "compute_queue_stats",
    "ConversionScheduler",
    "DrainSummary",
    "build_conversion_request",
    "APP_SETTINGS_KEY",
    "QUEUE_KEY",
    "SETTINGS_KEY",
    "AppPreferences",
    "PreferencesRepository",
    "SessionPersistence",
    "SettingsRepository",
    "migrate_settings",
    "ItemStore",
    "ThumbnailLoader",
]
