"""Item store: the canonical ordered collection of queue items.

The store is the only owner of the collection. Every other component
(ingestion, scheduler, session persistence, engine events) mutates items
through the operations below, never directly. Callers receive copies, so a
returned QueueItem can be read freely without affecting the store.

Concurrency:
- Every operation is synchronous and runs under a re-entrant lock, so no
  caller can observe a half-applied mutation
- Listeners are notified after collection mutations with a snapshot of the
  items (selection and expansion changes do not notify)
"""

import logging
import threading
from typing import Callable, Iterable, List, Optional

from ..models import SettingsOverride
from .models import (
    AddResult,
    FileDescriptor,
    TERMINAL_STATUSES,
    ProcessStatus,
    QueueItem,
    ThumbnailStatus,
    is_valid_transition,
)

logger = logging.getLogger(__name__)

ItemsListener = Callable[[List[QueueItem]], None]


class ItemStore:
    """Ordered queue items plus selection and expansion cursor state."""

    def __init__(self, items: Optional[Iterable[QueueItem]] = None):
        self._lock = threading.RLock()
        self._items: List[QueueItem] = [item.model_copy(deep=True) for item in items or []]
        self._selected_ids: List[str] = []
        self._expanded_id: Optional[str] = None
        self._last_clicked_id: Optional[str] = None
        self._is_processing = False
        self._listeners: List[ItemsListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: ItemsListener) -> Callable[[], None]:
        """Register a collection-mutation listener.

        Returns:
            Callable that unregisters the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.items
        for listener in list(self._listeners):
            listener(snapshot)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[QueueItem]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._items]

    def __len__(self) -> int:
        return len(self._items)

    def get_item(self, item_id: str) -> Optional[QueueItem]:
        with self._lock:
            item = self._find(item_id)
            return item.model_copy(deep=True) if item else None

    def _find(self, item_id: str) -> Optional[QueueItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    @property
    def selected_ids(self) -> List[str]:
        with self._lock:
            return list(self._selected_ids)

    @property
    def expanded_id(self) -> Optional[str]:
        return self._expanded_id

    @property
    def last_clicked_id(self) -> Optional[str]:
        return self._last_clicked_id

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    def set_processing(self, value: bool) -> None:
        with self._lock:
            self._is_processing = value

    def get_next_pending_item(self) -> Optional[QueueItem]:
        """First item in collection order whose status is pending."""
        with self._lock:
            for item in self._items:
                if item.status == ProcessStatus.PENDING:
                    return item.model_copy(deep=True)
            return None

    def get_selected_items(self) -> List[QueueItem]:
        """Selected items, in collection order."""
        with self._lock:
            selected = set(self._selected_ids)
            return [item.model_copy(deep=True) for item in self._items if item.id in selected]

    # ------------------------------------------------------------------
    # Collection mutations
    # ------------------------------------------------------------------

    def add_items(self, files: Iterable[FileDescriptor]) -> AddResult:
        """Append new files as pending items, skipping known input paths.

        Args:
            files: Validated file descriptors, in the order to enqueue them

        Returns:
            AddResult with added/skipped counts and copies of the new items
        """
        files = list(files)
        with self._lock:
            known_paths = {item.input_path for item in self._items}
            new_items: List[QueueItem] = []

            for f in files:
                if f.path in known_paths:
                    continue
                known_paths.add(f.path)
                new_items.append(
                    QueueItem(
                        input_path=f.path,
                        file_name=f.name,
                        file_size=f.size,
                        media_type=f.media_type,
                    )
                )

            skipped = len(files) - len(new_items)
            if not new_items:
                return AddResult(added=0, skipped=skipped, new_items=[])

            self._items.extend(new_items)
            result = AddResult(
                added=len(new_items),
                skipped=skipped,
                new_items=[item.model_copy(deep=True) for item in new_items],
            )
            self._notify()
            return result

    def remove_items(self, ids: Iterable[str]) -> int:
        """Delete items by id; no-op while processing.

        Returns:
            Number of items removed
        """
        with self._lock:
            if self._is_processing:
                logger.debug("remove_items ignored while processing")
                return 0
            doomed = set(ids)
            before = len(self._items)
            self._items = [item for item in self._items if item.id not in doomed]
            removed = before - len(self._items)
            self._selected_ids = [i for i in self._selected_ids if i not in doomed]
            if self._expanded_id in doomed:
                self._expanded_id = None
            if removed:
                self._notify()
            return removed

    def clear_queue(self) -> None:
        """Drop every item and all UI state; no-op while processing."""
        with self._lock:
            if self._is_processing:
                logger.debug("clear_queue ignored while processing")
                return
            self._items = []
            self._selected_ids = []
            self._expanded_id = None
            self._last_clicked_id = None
            self._notify()

    def replace_items(self, items: Iterable[QueueItem]) -> None:
        """Install a restored collection, dropping duplicate input paths."""
        with self._lock:
            seen = set()
            restored = []
            for item in items:
                if item.input_path in seen:
                    logger.warning("Dropping duplicate restored item: %s", item.input_path)
                    continue
                seen.add(item.input_path)
                restored.append(item.model_copy(deep=True))
            self._items = restored
            self._selected_ids = []
            self._expanded_id = None
            self._notify()

    # ------------------------------------------------------------------
    # Status and progress
    # ------------------------------------------------------------------

    def update_status(
        self, item_id: str, status: ProcessStatus, message: Optional[str] = None
    ) -> bool:
        """Apply a state transition.

        Invalid transitions (including overwriting a terminal state with
        another terminal state) are ignored.

        Returns:
            True if the transition was applied
        """
        target = ProcessStatus(status)
        with self._lock:
            item = self._find(item_id)
            if item is None:
                return False
            if not is_valid_transition(item.status, target):
                logger.debug(
                    "Ignoring transition %s -> %s for %s", item.status, target.value, item_id
                )
                return False
            item.status = target.value
            item.error_message = message
            if target == ProcessStatus.COMPLETED:
                item.progress = 100
            self._notify()
            return True

    def update_progress(self, item_id: str, progress: int) -> None:
        """Set progress (clamped to 0..100); ignored once the item is terminal."""
        with self._lock:
            item = self._find(item_id)
            if item is None:
                return
            if ProcessStatus(item.status) in TERMINAL_STATUSES:
                logger.debug("Progress for %s ignored in state %s", item_id, item.status)
                return
            item.progress = max(0, min(100, int(progress)))
            self._notify()

    def set_output_path(self, item_id: str, output_path: str) -> None:
        with self._lock:
            item = self._find(item_id)
            if item is None:
                return
            item.output_path = output_path
            self._notify()

    def _reset(self, item: QueueItem) -> None:
        item.status = ProcessStatus.PENDING.value
        item.progress = 0
        item.error_message = None

    def _reset_where(self, statuses: Iterable[ProcessStatus]) -> int:
        wanted = {ProcessStatus(s).value for s in statuses}
        with self._lock:
            count = 0
            for item in self._items:
                if item.status in wanted:
                    self._reset(item)
                    count += 1
            if count:
                self._notify()
            return count

    def resume_queue(self, retry_errors: bool) -> int:
        """Move cancelled (and optionally error) items back to pending."""
        statuses = [ProcessStatus.CANCELLED]
        if retry_errors:
            statuses.append(ProcessStatus.ERROR)
        return self._reset_where(statuses)

    def retry_completed(self) -> int:
        return self._reset_where([ProcessStatus.COMPLETED])

    def retry_conflicts(self) -> int:
        return self._reset_where([ProcessStatus.CONFLICT])

    def reset_to_pending(self, ids: Iterable[str]) -> int:
        """Re-pend specific cancelled/error items (selected-subset drain)."""
        wanted = set(ids)
        resettable = {ProcessStatus.CANCELLED.value, ProcessStatus.ERROR.value}
        with self._lock:
            count = 0
            for item in self._items:
                if item.id in wanted and item.status in resettable:
                    self._reset(item)
                    count += 1
            if count:
                self._notify()
            return count

    def recover_interrupted(self, message: str = "Interrupted") -> int:
        """Crash recovery: items persisted mid-conversion become cancelled."""
        with self._lock:
            count = 0
            for item in self._items:
                if item.status == ProcessStatus.PROCESSING:
                    item.status = ProcessStatus.CANCELLED.value
                    item.error_message = message
                    count += 1
            if count:
                logger.info("Recovered %d interrupted item(s)", count)
                self._notify()
            return count

    # ------------------------------------------------------------------
    # Thumbnails
    # ------------------------------------------------------------------

    def set_thumbnail(self, item_id: str, thumbnail_path: str) -> None:
        with self._lock:
            item = self._find(item_id)
            if item is None:
                return
            item.thumbnail_path = thumbnail_path
            item.thumbnail_status = ThumbnailStatus.LOADED.value
            self._notify()

    def set_thumbnail_loading(self, item_id: str) -> None:
        """Only a pending thumbnail moves to loading."""
        with self._lock:
            item = self._find(item_id)
            if item is None or item.thumbnail_status != ThumbnailStatus.PENDING:
                return
            item.thumbnail_status = ThumbnailStatus.LOADING.value
            self._notify()

    def set_thumbnail_error(self, item_id: str) -> None:
        with self._lock:
            item = self._find(item_id)
            if item is None:
                return
            item.thumbnail_status = ThumbnailStatus.ERROR.value
            self._notify()

    def mark_thumbnails_missing(self, thumbnail_paths: Iterable[str]) -> int:
        """Flip every item whose thumbnail path is in the set to error."""
        missing = set(thumbnail_paths)
        with self._lock:
            count = 0
            for item in self._items:
                if item.thumbnail_path and item.thumbnail_path in missing:
                    item.thumbnail_status = ThumbnailStatus.ERROR.value
                    count += 1
            if count:
                self._notify()
            return count

    # ------------------------------------------------------------------
    # Overrides
    # ------------------------------------------------------------------

    def update_overrides(self, item_id: str, overrides: SettingsOverride) -> None:
        """Shallow-merge an override into the item's current override."""
        with self._lock:
            item = self._find(item_id)
            if item is None:
                return
            current = item.override_settings or SettingsOverride()
            item.override_settings = current.merged_with(overrides)
            self._notify()

    def set_overrides(self, item_id: str, overrides: Optional[SettingsOverride]) -> None:
        """Replace the override wholesale; None clears it."""
        with self._lock:
            item = self._find(item_id)
            if item is None:
                return
            if overrides is None or overrides.is_empty():
                item.override_settings = None
            else:
                item.override_settings = overrides.model_copy(deep=True)
            self._notify()

    def clear_overrides(self, item_id: str) -> None:
        self.set_overrides(item_id, None)

    def clear_all_overrides(self) -> None:
        with self._lock:
            for item in self._items:
                item.override_settings = None
            self._notify()

    # ------------------------------------------------------------------
    # Selection (UI state, never persisted)
    # ------------------------------------------------------------------

    def select_item(self, item_id: str, multi: bool = False) -> None:
        with self._lock:
            if multi:
                self.toggle_selection(item_id)
            else:
                self._selected_ids = [item_id]
            self._last_clicked_id = item_id

    def toggle_selection(self, item_id: str) -> None:
        with self._lock:
            if item_id in self._selected_ids:
                self._selected_ids.remove(item_id)
            else:
                self._selected_ids.append(item_id)

    def add_to_selection(self, item_id: str) -> None:
        """Select an item without toggling; a repeat is a no-op."""
        with self._lock:
            if item_id not in self._selected_ids:
                self._selected_ids.append(item_id)
            self._last_clicked_id = item_id

    def select_range(self, from_id: str, to_id: str) -> None:
        """Add the inclusive index range between two items to the selection."""
        with self._lock:
            ids = [item.id for item in self._items]
            if from_id not in ids or to_id not in ids:
                return
            start, end = sorted((ids.index(from_id), ids.index(to_id)))
            for item_id in ids[start:end + 1]:
                if item_id not in self._selected_ids:
                    self._selected_ids.append(item_id)
            self._last_clicked_id = to_id

    def select_all(self) -> None:
        with self._lock:
            self._selected_ids = [item.id for item in self._items]

    def deselect_all(self) -> None:
        with self._lock:
            self._selected_ids = []

    def set_expanded_id(self, item_id: Optional[str]) -> None:
        with self._lock:
            self._expanded_id = item_id
