"""Conversion scheduler: single-flight drains over the item store.

Two entry points share one running gate:
- drain(): repeatedly take the next pending item in collection order
- drain_selected(): walk the selected pending, cancelled or error items in selection order

At most one conversion is in flight at any time. stop() cancels the drain
token (no further items are picked up) and asks the engine to cancel the
item currently in flight.

While the scheduler awaits convert_file for an item, the awaited result is
the only authority for that item's terminal state; engine push events for
it only move the progress bar. Push events for any other item are applied
directly.
"""

import logging
from typing import Callable, List, Optional

from pydantic import BaseModel

from ..engine.base import (
    ConversionEngine,
    ConversionRequest,
    ConversionResult,
    NamingBlockRequest,
    NamingRequest,
    ProgressEvent,
    ResizeRequest,
)
from ..engine.events import EngineEventRouter
from ..exceptions import (
    ConversionCancelled,
    EngineError,
    OutputConflict,
    is_cancellation,
    is_conflict,
)
from ..formats import get_default_output_format, get_extension, normalize_extension
from ..models import DEFAULT_PREFIX_VALUE, DEFAULT_RANDOM_LENGTH, ConversionSettings, NamingConfig
from ..notifications import NotificationCenter
from ..settings import resolve
from .cancellation import CancellationToken
from .models import ProcessStatus, QueueItem, compute_queue_stats
from .store import ItemStore

logger = logging.getLogger(__name__)

CANCELLED_BY_USER = "Cancelled by user"
UNKNOWN_ERROR = "Unknown error"
SUMMARY_DURATION_MS = 5000

_SELECTABLE_STATUSES = frozenset(
    {ProcessStatus.PENDING.value, ProcessStatus.CANCELLED.value, ProcessStatus.ERROR.value}
)


class DrainSummary(BaseModel):
    """Aggregate counts over the whole collection after a drain."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    conflict: int = 0


def output_format_for(item: QueueItem, settings: ConversionSettings) -> str:
    """Pick the output format: category setting, else source extension, else default."""
    ext = get_extension(item.input_path)
    if item.media_type == "video":
        fmt = settings.video_format or ext
    elif item.media_type == "image":
        fmt = settings.image_format or normalize_extension(ext)
    else:
        fmt = settings.audio_format or ext
    return fmt or get_default_output_format(item.media_type)


def naming_request_for(config: NamingConfig) -> NamingRequest:
    blocks = []
    for block in config.blocks:
        params = block.params
        if block.type == "prefix":
            value = params.value if params and params.value else DEFAULT_PREFIX_VALUE
            blocks.append(NamingBlockRequest(type="prefix", value=value))
        elif block.type == "random":
            length = params.length if params and params.length else DEFAULT_RANDOM_LENGTH
            blocks.append(NamingBlockRequest(type="random", length=length))
        else:
            blocks.append(NamingBlockRequest(type=block.type))
    return NamingRequest(blocks=blocks, sanitize_enabled=config.sanitize_enabled)


def build_conversion_request(
    item: QueueItem, global_settings: ConversionSettings
) -> ConversionRequest:
    """Assemble the engine request for one item.

    Every field comes from the item's effective settings except
    conflict_mode, which is always the global policy.
    """
    effective = resolve(global_settings, item.override_settings)

    resize = None
    if effective.resize_enabled:
        resize = ResizeRequest(
            width=effective.resize_width,
            height=effective.resize_height,
            mode=effective.resize_mode,
            background_color=effective.background_color,
        )

    return ConversionRequest(
        id=item.id,
        input_path=item.input_path,
        output_format=output_format_for(item, effective),
        quality_percent=effective.quality_percent,
        strip_metadata=effective.strip_metadata,
        is_muted=effective.is_muted,
        resize_config=resize,
        naming_config=naming_request_for(effective.naming_config),
        output_directory=effective.output_directory or None,
        conflict_mode=global_settings.conflict_mode,
        processing_enabled=effective.processing_enabled,
        max_bitrate=effective.max_bitrate or None,
    )


class ConversionScheduler:
    """Runs conversions one at a time against the engine."""

    def __init__(
        self,
        store: ItemStore,
        engine: ConversionEngine,
        get_settings: Callable[[], ConversionSettings],
        notifications: Optional[NotificationCenter] = None,
        router: Optional[EngineEventRouter] = None,
    ):
        self.store = store
        self.engine = engine
        self.get_settings = get_settings
        self.notifications = notifications or NotificationCenter()
        self._token: Optional[CancellationToken] = None
        self._current_item_id: Optional[str] = None

        if router is not None:
            router.on_progress(self.handle_progress_event)
            router.on_complete(self.handle_complete_event)

    @property
    def is_running(self) -> bool:
        return self._token is not None

    @property
    def current_item_id(self) -> Optional[str]:
        return self._current_item_id

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def start_processing(self, retry_errors: bool = True) -> Optional[DrainSummary]:
        """Resume cancelled (and optionally error) items, then drain.

        Returns:
            DrainSummary, or None if a drain is already running
        """
        if self.is_running or self.store.is_processing:
            return None
        self.store.resume_queue(retry_errors)
        return await self.drain()

    async def drain(self) -> Optional[DrainSummary]:
        """Process pending items in collection order until none remain or stopped."""
        token = self._acquire()
        if token is None:
            return None
        try:
            while not token.cancelled:
                item = self.store.get_next_pending_item()
                if item is None:
                    break
                await self._process_item(item.id)
        finally:
            self._release()
        return self._summarize()

    async def drain_selected(self) -> Optional[DrainSummary]:
        """Process the selected pending/cancelled/error items in selection order."""
        token = self._acquire()
        if token is None:
            return None
        try:
            candidates: List[str] = []
            for item_id in self.store.selected_ids:
                item = self.store.get_item(item_id)
                if item is not None and item.status in _SELECTABLE_STATUSES:
                    candidates.append(item_id)
            for item_id in candidates:
                if token.cancelled:
                    break
                item = self.store.get_item(item_id)
                if item is None or item.status not in _SELECTABLE_STATUSES:
                    continue
                if item.status != ProcessStatus.PENDING:
                    self.store.reset_to_pending([item_id])
                await self._process_item(item_id)
        finally:
            self._release()
        return self._summarize()

    async def stop(self) -> None:
        """Stop picking up items and cancel the one in flight (best effort)."""
        if self._token is not None:
            self._token.cancel()

        item_id = self._current_item_id
        if item_id is None:
            return
        logger.info("Requesting cancellation of %s", item_id)
        try:
            await self.engine.cancel_conversion(item_id)
        except EngineError as e:
            logger.warning("Cancel request for %s failed: %s", item_id, e)

    def _acquire(self) -> Optional[CancellationToken]:
        if self.is_running or self.store.is_processing:
            logger.debug("Drain refused: already processing")
            return None
        self._token = CancellationToken()
        self.store.set_processing(True)
        return self._token

    def _release(self) -> None:
        self._token = None
        self._current_item_id = None
        self.store.set_processing(False)

    # ------------------------------------------------------------------
    # One item
    # ------------------------------------------------------------------

    async def _process_item(self, item_id: str) -> str:
        item = self.store.get_item(item_id)
        if item is None:
            return ProcessStatus.ERROR.value
        if not self.store.update_status(item_id, ProcessStatus.PROCESSING):
            return item.status

        self._current_item_id = item_id
        try:
            request = build_conversion_request(item, self.get_settings())
            result = await self.engine.convert_file(request)
            return self._apply_result(result)

        except ConversionCancelled:
            self.store.update_status(item_id, ProcessStatus.CANCELLED, CANCELLED_BY_USER)
            return ProcessStatus.CANCELLED.value

        except OutputConflict as e:
            logger.warning("Output exists for %s: %s", item.file_name, e)
            self.store.update_status(item_id, ProcessStatus.CONFLICT, str(e))
            return ProcessStatus.CONFLICT.value

        except EngineError as e:
            message = str(e)
            if is_cancellation(message):
                self.store.update_status(item_id, ProcessStatus.CANCELLED, CANCELLED_BY_USER)
                return ProcessStatus.CANCELLED.value
            logger.warning("Conversion failed for %s: %s", item.file_name, message)
            self.store.update_status(item_id, ProcessStatus.ERROR, message or UNKNOWN_ERROR)
            return ProcessStatus.ERROR.value

        except Exception as e:
            logger.exception("Unexpected failure converting %s", item.file_name)
            self.store.update_status(
                item_id, ProcessStatus.ERROR, f"{type(e).__name__}: {e}"
            )
            return ProcessStatus.ERROR.value

        finally:
            self._current_item_id = None

    def _apply_result(self, result: ConversionResult) -> str:
        if result.success and result.output_path:
            self.store.set_output_path(result.id, result.output_path)
            self.store.update_status(result.id, ProcessStatus.COMPLETED)
            return ProcessStatus.COMPLETED.value

        message = result.error_message or UNKNOWN_ERROR
        if is_cancellation(message):
            self.store.update_status(result.id, ProcessStatus.CANCELLED, CANCELLED_BY_USER)
            return ProcessStatus.CANCELLED.value
        if is_conflict(message):
            self.store.update_status(result.id, ProcessStatus.CONFLICT, message)
            return ProcessStatus.CONFLICT.value
        self.store.update_status(result.id, ProcessStatus.ERROR, message)
        return ProcessStatus.ERROR.value

    # ------------------------------------------------------------------
    # Engine push events
    # ------------------------------------------------------------------

    def handle_progress_event(self, event: ProgressEvent) -> None:
        self.store.update_progress(event.id, event.progress)
        if event.id == self._current_item_id:
            return
        if event.status in (ProcessStatus.ERROR.value, ProcessStatus.CANCELLED.value):
            self.store.update_status(event.id, ProcessStatus(event.status), event.message)

    def handle_complete_event(self, result: ConversionResult) -> None:
        if result.id == self._current_item_id:
            return
        self._apply_result(result)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _summarize(self) -> DrainSummary:
        stats = compute_queue_stats(self.store.items)
        summary = DrainSummary(
            processed=stats.processed,
            succeeded=stats.succeeded,
            failed=stats.failed,
            cancelled=stats.cancelled,
            conflict=stats.conflict,
        )
        if summary.processed == 0:
            return summary

        notify = self.notifications.notify
        notify(f"{summary.processed} files processed", "info", SUMMARY_DURATION_MS)
        if summary.succeeded:
            notify(f"{summary.succeeded} files successful", "success", SUMMARY_DURATION_MS)
        if summary.failed:
            notify(f"{summary.failed} files failed", "error", SUMMARY_DURATION_MS)
        if summary.cancelled:
            notify(f"{summary.cancelled} files cancelled", "warning", SUMMARY_DURATION_MS)
        if summary.conflict:
            notify(
                f"{summary.conflict} files skipped (already exist)", "warning", SUMMARY_DURATION_MS
            )
        return summary
