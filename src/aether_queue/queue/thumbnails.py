"""Thumbnail generation, revalidation and cleanup for queue items.

Audio items never get a thumbnail. Everything here is best effort: an
engine failure marks the affected thumbnails as error and never propagates.
"""

import asyncio
import logging
from typing import Iterable, List

from ..engine.base import ConversionEngine, ThumbnailRequest
from ..exceptions import EngineError
from .models import QueueItem, ThumbnailStatus
from .store import ItemStore

logger = logging.getLogger(__name__)

DEFAULT_THUMBNAIL_YIELD_S = 0.05


def _chunks(values: List, size: int):
    for start in range(0, len(values), size):
        yield values[start:start + size]


class ThumbnailLoader:
    def __init__(
        self,
        store: ItemStore,
        engine: ConversionEngine,
        chunk_size: int = 50,
        yield_s: float = DEFAULT_THUMBNAIL_YIELD_S,
    ):
        self.store = store
        self.engine = engine
        self.chunk_size = chunk_size
        self.yield_s = yield_s

    async def load(self, items: Iterable[QueueItem]) -> int:
        """Generate thumbnails for visual items still in the pending state.

        Returns:
            Number of thumbnails loaded
        """
        eligible = [
            item
            for item in items
            if item.media_type != "audio" and item.thumbnail_status == ThumbnailStatus.PENDING
        ]
        for item in eligible:
            self.store.set_thumbnail_loading(item.id)

        loaded = 0
        for chunk in _chunks(eligible, self.chunk_size):
            requests = [
                ThumbnailRequest(id=item.id, input_path=item.input_path, media_type=item.media_type)
                for item in chunk
            ]
            try:
                results = await self.engine.generate_thumbnails_batch(requests)
            except EngineError as e:
                logger.warning("Thumbnail batch failed for %d item(s): %s", len(chunk), e)
                for item in chunk:
                    self.store.set_thumbnail_error(item.id)
                continue

            answered = set()
            for result in results:
                answered.add(result.id)
                if result.success and result.thumbnail_path:
                    self.store.set_thumbnail(result.id, result.thumbnail_path)
                    loaded += 1
                else:
                    if result.error_message:
                        logger.debug("Thumbnail failed for %s: %s", result.id, result.error_message)
                    self.store.set_thumbnail_error(result.id)

            for item in chunk:
                if item.id not in answered:
                    self.store.set_thumbnail_error(item.id)

        return loaded

    async def revalidate(self) -> int:
        """Flip loaded thumbnails whose files no longer exist to error.

        Returns:
            Number of items marked missing
        """
        paths = [
            item.thumbnail_path
            for item in self.store.items
            if item.thumbnail_path and item.thumbnail_status == ThumbnailStatus.LOADED
        ]
        if not paths:
            return 0

        missing_count = 0
        chunks = list(_chunks(paths, self.chunk_size))
        for index, chunk in enumerate(chunks):
            try:
                results = await self.engine.get_files_info_batch(chunk)
            except EngineError as e:
                logger.warning("Thumbnail revalidation failed for %d path(s): %s", len(chunk), e)
                continue

            missing = {r.path for r in results if r.error is not None}
            if missing:
                missing_count += self.store.mark_thumbnails_missing(missing)

            if index + 1 < len(chunks):
                await asyncio.sleep(self.yield_s)

        if missing_count:
            logger.info("%d stale thumbnail(s) marked as error", missing_count)
        return missing_count

    async def delete(self, ids: List[str]) -> None:
        if not ids:
            return
        try:
            await self.engine.delete_thumbnails(ids)
        except EngineError as e:
            logger.warning("Thumbnail cleanup failed for %d item(s): %s", len(ids), e)

    async def cleanup_all(self) -> None:
        try:
            await self.engine.cleanup_all_thumbnails()
        except EngineError as e:
            logger.warning("Failed to clean up thumbnails: %s", e)
