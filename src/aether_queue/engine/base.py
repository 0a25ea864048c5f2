"""Conversion engine interface and its wire models.

The engine is an external process that does the actual media work
(metadata probing, thumbnails, transcoding). The queue only talks to it
through this interface: request/response calls plus push events for
progress and completion.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import BackgroundColor, ConflictMode, MediaType, NamingBlockType, ResizeMode


class WireModel(BaseModel):
    """Base for engine payloads; accepts both snake_case and camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)


class FileInfo(WireModel):
    path: str
    name: str
    size: int = Field(default=0, ge=0)
    media_type: MediaType = Field(..., alias="mediaType")


class FileInfoResult(WireModel):
    """Per-path outcome of a batch metadata lookup."""

    path: str
    info: Optional[FileInfo] = None
    error: Optional[str] = None


class ThumbnailRequest(WireModel):
    id: str
    input_path: str
    media_type: MediaType


class ThumbnailResult(WireModel):
    id: str
    thumbnail_path: Optional[str] = Field(default=None, alias="thumbnailPath")
    success: bool = False
    error_message: Optional[str] = Field(default=None, alias="errorMessage")


class ResizeRequest(WireModel):
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    mode: ResizeMode
    background_color: BackgroundColor


class NamingBlockRequest(WireModel):
    """One naming block as the engine expects it (no ids, params inlined)."""

    type: NamingBlockType
    value: Optional[str] = None
    length: Optional[int] = None


class NamingRequest(WireModel):
    blocks: List[NamingBlockRequest] = Field(default_factory=list)
    sanitize_enabled: bool = False


class ConversionRequest(WireModel):
    """Fully resolved instruction for converting one item."""

    id: str
    input_path: str
    output_format: str
    quality_percent: int = Field(..., ge=0, le=100)
    strip_metadata: bool = False
    is_muted: bool = False
    resize_config: Optional[ResizeRequest] = None
    naming_config: Optional[NamingRequest] = None
    output_directory: Optional[str] = None
    conflict_mode: ConflictMode = "skip"
    processing_enabled: bool = True
    max_bitrate: Optional[int] = None


class ConversionResult(WireModel):
    id: str
    success: bool = False
    output_path: Optional[str] = Field(default=None, alias="outputPath")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")


class ProgressEvent(WireModel):
    id: str
    progress: int = Field(default=0, ge=0, le=100)
    status: Optional[str] = None
    message: Optional[str] = None


class ConversionEngine(ABC):
    """Async client surface of the external conversion engine.

    Implementations raise:
    - ConversionCancelled when the engine reports a cancelled conversion
    - EngineError for engine-reported failures
    - EngineTransportError when the engine cannot be reached
    """

    @abstractmethod
    async def get_files_info_batch(self, paths: List[str]) -> List[FileInfoResult]:
        """Look up name/size/category for each path, one result per path."""
        pass

    @abstractmethod
    async def generate_thumbnail(self, request: ThumbnailRequest) -> ThumbnailResult:
        pass

    @abstractmethod
    async def generate_thumbnails_batch(
        self, requests: List[ThumbnailRequest]
    ) -> List[ThumbnailResult]:
        pass

    @abstractmethod
    async def delete_thumbnails(self, ids: List[str]) -> None:
        """Best-effort removal of the thumbnails of the given item ids."""
        pass

    @abstractmethod
    async def cleanup_all_thumbnails(self) -> None:
        pass

    @abstractmethod
    async def convert_file(self, request: ConversionRequest) -> ConversionResult:
        """Run one conversion to completion and report its outcome."""
        pass

    @abstractmethod
    async def cancel_conversion(self, item_id: str) -> None:
        pass

    @abstractmethod
    async def check_file_exists(self, path: str) -> bool:
        pass

    async def aclose(self) -> None:
        """Release transport resources; nothing to do by default."""
        return None
