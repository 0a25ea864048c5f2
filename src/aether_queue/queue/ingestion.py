"""Ingestion pipeline: raw paths in, validated queue items out.

Paths are classified by extension, deduplicated against the collection,
then resolved through the engine's batch metadata lookup in fixed-size
chunks. Each chunk is committed to the item store before the next one
starts, and a cancellation token is checked before every chunk and every
record so an upload can be cut off part-way.
"""

import asyncio
import logging
from typing import Callable, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..engine.base import ConversionEngine, FileInfoResult
from ..exceptions import EngineError
from ..formats import get_file_name, media_type_for_path
from ..notifications import NotificationCenter
from .cancellation import CancellationToken
from .models import FileDescriptor, QueueItem
from .store import ItemStore

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 50
DEFAULT_CHUNK_YIELD_S = 0.01


class UploadSession:
    """Progress state of one ingestion run.

    ``on_progress`` is called with the session after every state change;
    the CLI uses it to drive a progress bar.
    """

    def __init__(self, on_progress: Optional[Callable[["UploadSession"], None]] = None):
        self.is_uploading = False
        self.is_complete = False
        self.total_files = 0
        self.processed_files = 0
        self.on_progress = on_progress
        self._token: Optional[CancellationToken] = None

    def _changed(self) -> None:
        if self.on_progress:
            self.on_progress(self)

    def start(self, total: int) -> CancellationToken:
        self._token = CancellationToken()
        self.is_uploading = True
        self.is_complete = False
        self.total_files = total
        self.processed_files = 0
        self._changed()
        return self._token

    def update_processed(self, count: int) -> None:
        self.processed_files = count
        self._changed()

    def cancel(self) -> None:
        if self._token:
            self._token.cancel()
        self._token = None
        self.is_uploading = False
        self.is_complete = False
        self._changed()

    def finish(self) -> None:
        self._token = None
        self.is_complete = True
        self._changed()

    def dismiss(self) -> None:
        self.is_uploading = False
        self.is_complete = False
        self._changed()


class IngestionResult(BaseModel):
    """Final tallies of one ingestion run."""

    added: int = Field(default=0, ge=0, description="Items newly created")
    already_present: int = Field(default=0, ge=0, description="Paths already queued")
    unsupported: int = Field(default=0, ge=0, description="Paths with unknown extensions")
    cancelled: bool = Field(default=False, description="Run was cut off by cancel")
    committed: int = Field(default=0, ge=0, description="Items committed before cancel")
    abandoned: int = Field(default=0, ge=0, description="New paths never committed")
    new_items: List[QueueItem] = Field(default_factory=list)


class IngestionPipeline:
    """Turns path lists into queue items through the engine's metadata lookup."""

    def __init__(
        self,
        store: ItemStore,
        engine: ConversionEngine,
        notifications: Optional[NotificationCenter] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_yield_s: float = DEFAULT_CHUNK_YIELD_S,
        upload: Optional[UploadSession] = None,
    ):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.store = store
        self.engine = engine
        self.notifications = notifications or NotificationCenter()
        self.chunk_size = chunk_size
        self.chunk_yield_s = chunk_yield_s
        self.upload = upload or UploadSession()

    def cancel(self) -> None:
        self.upload.cancel()

    async def ingest(self, paths: Iterable[str]) -> IngestionResult:
        """Ingest raw paths.

        Args:
            paths: File paths in any order; repeats and unsupported files are tallied

        Returns:
            IngestionResult with the counts and copies of the new items
        """
        paths = list(paths)
        result = IngestionResult()
        if not paths:
            return result

        known = {item.input_path for item in self.store.items}
        new_paths: List[str] = []
        for path in paths:
            if media_type_for_path(path) is None:
                result.unsupported += 1
            elif path in known:
                result.already_present += 1
            else:
                known.add(path)
                new_paths.append(path)

        if not new_paths:
            self._notify_skipped(result)
            return result

        token = self.upload.start(len(new_paths))
        processed = 0

        for start in range(0, len(new_paths), self.chunk_size):
            if token.cancelled:
                break
            chunk = new_paths[start:start + self.chunk_size]

            try:
                records = await self.engine.get_files_info_batch(chunk)
            except EngineError as e:
                logger.warning("Metadata lookup failed for %d file(s): %s", len(chunk), e)
                processed += len(chunk)
                self.upload.update_processed(processed)
                continue

            descriptors = self._resolve(records, token)
            if descriptors and not token.cancelled:
                added = self.store.add_items(descriptors)
                result.added += added.added
                result.already_present += added.skipped
                result.new_items.extend(added.new_items)
                for item in added.new_items:
                    if item.media_type == "audio":
                        self.store.set_thumbnail_error(item.id)

            processed += len(chunk)
            self.upload.update_processed(processed)
            await asyncio.sleep(self.chunk_yield_s)

        if token.cancelled:
            result.cancelled = True
            result.committed = result.added
            result.abandoned = len(new_paths) - result.added
            if result.committed:
                self.notifications.notify(f"{result.committed} files uploaded", "success")
            if result.abandoned:
                self.notifications.notify(f"{result.abandoned} files cancelled", "warning")
        else:
            self.upload.finish()
            self.notifications.notify(f"{result.added} files added", "success")
        self._notify_skipped(result)

        logger.info(
            "Ingested %d new, %d already present, %d unsupported%s",
            result.added,
            result.already_present,
            result.unsupported,
            " (cancelled)" if result.cancelled else "",
        )
        return result

    def _resolve(
        self, records: List[FileInfoResult], token: CancellationToken
    ) -> List[FileDescriptor]:
        descriptors = []
        for record in records:
            if token.cancelled:
                break
            if record.info is not None:
                descriptors.append(
                    FileDescriptor(
                        path=record.info.path,
                        name=record.info.name,
                        size=record.info.size,
                        media_type=record.info.media_type,
                    )
                )
                continue

            media_type = media_type_for_path(record.path)
            if media_type is None:
                continue
            if record.error:
                logger.warning("No metadata for %s: %s", record.path, record.error)
            descriptors.append(
                FileDescriptor(
                    path=record.path,
                    name=get_file_name(record.path),
                    size=0,
                    media_type=media_type,
                )
            )
        return descriptors

    def _notify_skipped(self, result: IngestionResult) -> None:
        if result.already_present:
            self.notifications.notify(f"{result.already_present} files already in list", "warning")
        if result.unsupported:
            self.notifications.notify(
                f"{result.unsupported} files in unsupported format", "error"
            )
