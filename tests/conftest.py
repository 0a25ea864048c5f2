import asyncio
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Union

import pytest

from aether_queue.engine.base import (
    ConversionEngine,
    ConversionRequest,
    ConversionResult,
    FileInfo,
    FileInfoResult,
    ThumbnailRequest,
    ThumbnailResult,
)
from aether_queue.exceptions import ConversionCancelled, EngineError
from aether_queue.formats import get_file_name, media_type_for_path
from aether_queue.notifications import NotificationCenter
from aether_queue.queue import ItemStore, SQLiteKeyValueStore
from aether_queue.queue.models import FileDescriptor


class FakeEngine(ConversionEngine):
    """In-memory conversion engine.

    - Metadata: every path resolves unless listed in ``missing``
    - ``on_metadata`` is called with the call index inside each metadata lookup
    - Conversions succeed unless ``outcomes`` maps the input file name to a
      ConversionResult or an exception
    - With ``hold`` set, conversions wait until released or cancelled
    """

    def __init__(self):
        self.missing: Set[str] = set()
        self.fail_metadata_calls: Set[int] = set()
        self.metadata_calls: List[List[str]] = []
        self.on_metadata: Optional[Callable[[int], None]] = None
        self.fail_thumbnails = False
        self.thumbnail_calls: List[List[str]] = []
        self.deleted_thumbnails: List[str] = []
        self.cleanup_calls = 0
        self.outcomes: Dict[str, Union[ConversionResult, Exception]] = {}
        self.requests: List[ConversionRequest] = []
        self.cancel_requests: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.hold = False
        self.started = asyncio.Event()
        self._release = asyncio.Event()
        self._cancelled: Set[str] = set()

    def release(self) -> None:
        self._release.set()

    async def get_files_info_batch(self, paths: List[str]) -> List[FileInfoResult]:
        call_index = len(self.metadata_calls)
        self.metadata_calls.append(list(paths))
        if self.on_metadata is not None:
            self.on_metadata(call_index)
        if call_index in self.fail_metadata_calls:
            raise EngineError("metadata service unavailable")

        results = []
        for path in paths:
            media_type = media_type_for_path(path)
            if path in self.missing or media_type is None:
                results.append(FileInfoResult(path=path, info=None, error="File not found"))
            else:
                info = FileInfo(path=path, name=get_file_name(path), size=1024, media_type=media_type)
                results.append(FileInfoResult(path=path, info=info))
        return results

    async def generate_thumbnail(self, request: ThumbnailRequest) -> ThumbnailResult:
        return (await self.generate_thumbnails_batch([request]))[0]

    async def generate_thumbnails_batch(
        self, requests: List[ThumbnailRequest]
    ) -> List[ThumbnailResult]:
        self.thumbnail_calls.append([r.id for r in requests])
        if self.fail_thumbnails:
            raise EngineError("thumbnailer crashed")
        return [
            ThumbnailResult(id=r.id, thumbnail_path=f"/tmp/thumbs/{r.id}.jpg", success=True)
            for r in requests
        ]

    async def delete_thumbnails(self, ids: List[str]) -> None:
        self.deleted_thumbnails.extend(ids)

    async def cleanup_all_thumbnails(self) -> None:
        self.cleanup_calls += 1

    async def convert_file(self, request: ConversionRequest) -> ConversionResult:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.started.set()
        try:
            if self.hold:
                await self._release.wait()
            else:
                await asyncio.sleep(0)
            if request.id in self._cancelled:
                raise ConversionCancelled("Conversion cancelled")

            outcome = self.outcomes.get(get_file_name(request.input_path))
            if isinstance(outcome, Exception):
                raise outcome
            if outcome is not None:
                return outcome.model_copy(update={"id": request.id})
            return ConversionResult(
                id=request.id,
                success=True,
                output_path=f"{request.input_path}.out.{request.output_format}",
            )
        finally:
            self.in_flight -= 1

    async def cancel_conversion(self, item_id: str) -> None:
        self.cancel_requests.append(item_id)
        self._cancelled.add(item_id)
        self._release.set()

    async def check_file_exists(self, path: str) -> bool:
        return path not in self.missing


def descriptor(path: str, size: int = 100) -> FileDescriptor:
    return FileDescriptor(
        path=path, name=get_file_name(path), size=size, media_type=media_type_for_path(path)
    )


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def store():
    return ItemStore()


@pytest.fixture
def notifications():
    return NotificationCenter()


@pytest.fixture
def temp_db():
    """Create temporary database path for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield str(Path(tmpdir) / "test_session.db")


@pytest.fixture
def kv():
    store = SQLiteKeyValueStore()
    yield store
    store.close()


def add_paths(store: ItemStore, *paths: str) -> List[str]:
    """Add paths to a store and return the new item ids in order."""
    result = store.add_items([descriptor(p) for p in paths])
    return [item.id for item in result.new_items]

