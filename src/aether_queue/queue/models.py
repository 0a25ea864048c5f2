"""Pydantic models for queue items and their lifecycle.

This module defines the type-safe models used throughout the queue system.
All models use Pydantic for validation and serialization.
"""

import time
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from ..models import MediaType, SettingsOverride


class ProcessStatus(str, Enum):
    """Item processing states with explicit semantics.

    State transitions:
        pending → processing      (scheduler picks the item up)
        processing → completed    (engine reports success with an output path)
        processing → error        (engine reports failure, message attached)
        processing → cancelled    (stop or per-item cancel observed as such)
        processing → conflict     (engine refused to touch an existing output)
        cancelled/error → pending (resume)
        completed → pending       (retry completed only)
        conflict → pending        (retry conflicts only)

    Any other transition is silently ignored.
    """

    PENDING = "pending"  # Queued, not started
    PROCESSING = "processing"  # The single in-flight conversion
    COMPLETED = "completed"  # Output written
    ERROR = "error"  # Engine or transport failure
    CANCELLED = "cancelled"  # Stopped before completion
    CONFLICT = "conflict"  # Output path already existed


TERMINAL_STATUSES = frozenset(
    {
        ProcessStatus.COMPLETED,
        ProcessStatus.ERROR,
        ProcessStatus.CANCELLED,
        ProcessStatus.CONFLICT,
    }
)

VALID_TRANSITIONS = {
    ProcessStatus.PENDING: frozenset({ProcessStatus.PROCESSING}),
    ProcessStatus.PROCESSING: frozenset(TERMINAL_STATUSES),
    ProcessStatus.COMPLETED: frozenset({ProcessStatus.PENDING}),
    ProcessStatus.ERROR: frozenset({ProcessStatus.PENDING}),
    ProcessStatus.CANCELLED: frozenset({ProcessStatus.PENDING}),
    ProcessStatus.CONFLICT: frozenset({ProcessStatus.PENDING}),
}


def is_valid_transition(current: str, target: str) -> bool:
    return ProcessStatus(target) in VALID_TRANSITIONS[ProcessStatus(current)]


class ThumbnailStatus(str, Enum):
    PENDING = "pending"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


def _now_ms() -> int:
    return int(time.time() * 1000)


class FileDescriptor(BaseModel):
    """Validated file reference handed to the item store."""

    path: str = Field(..., description="Absolute input path")
    name: str = Field(..., description="Display name")
    size: int = Field(default=0, ge=0, description="File size in bytes")
    media_type: MediaType = Field(..., description="Media category")


class QueueItem(BaseModel):
    """One tracked input file with its processing and thumbnail lifecycle."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Stable item id")
    input_path: str = Field(..., description="Absolute input path (unique in the queue)")
    file_name: str = Field(..., description="Display name")
    file_size: int = Field(default=0, ge=0, description="File size in bytes")
    media_type: MediaType = Field(..., description="Media category")
    thumbnail_path: Optional[str] = Field(default=None, description="Generated thumbnail")
    thumbnail_status: ThumbnailStatus = Field(default=ThumbnailStatus.PENDING)
    status: ProcessStatus = Field(default=ProcessStatus.PENDING, description="Current state")
    progress: int = Field(default=0, ge=0, le=100, description="Conversion progress")
    override_settings: Optional[SettingsOverride] = Field(
        default=None, description="Per-item settings override (None = inherit all)"
    )
    error_message: Optional[str] = Field(default=None, description="Last failure message")
    output_path: Optional[str] = Field(default=None, description="Converted file path")
    created_at: int = Field(default_factory=_now_ms, description="Insertion time (epoch ms)")

    @field_serializer("override_settings")
    def _serialize_override(self, value: Optional[SettingsOverride]) -> Optional[Dict[str, Any]]:
        # Only explicitly set keys survive a round trip
        return value.to_dict() if value is not None else None


class AddResult(BaseModel):
    """Outcome of ItemStore.add_items."""

    added: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    new_items: List[QueueItem] = Field(default_factory=list)


class QueueStats(BaseModel):
    """Aggregate counts over the whole collection."""

    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    error: int = 0
    cancelled: int = 0
    conflict: int = 0

    @property
    def processed(self) -> int:
        return self.completed + self.error + self.cancelled + self.conflict

    @property
    def succeeded(self) -> int:
        return self.completed

    @property
    def failed(self) -> int:
        return self.error


def compute_queue_stats(items: List[QueueItem]) -> QueueStats:
    counts: Dict[str, int] = {status.value: 0 for status in ProcessStatus}
    for item in items:
        counts[ProcessStatus(item.status).value] += 1
    return QueueStats(total=len(items), **counts)
