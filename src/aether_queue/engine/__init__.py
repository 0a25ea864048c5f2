"""Client side of the external conversion engine."""

from .base import (
    ConversionEngine,
    ConversionRequest,
    ConversionResult,
    FileInfo,
    FileInfoResult,
    NamingBlockRequest,
    NamingRequest,
    ProgressEvent,
    ResizeRequest,
    ThumbnailRequest,
    ThumbnailResult,
)
from .events import COMPLETE_EVENT, PROGRESS_EVENT, EngineEventRouter
from .http_client import HttpConversionEngine

__all__ = [
    "ConversionEngine",
    "ConversionRequest",
    "ConversionResult",
    "FileInfo",
    "FileInfoResult",
    "NamingBlockRequest",
    "NamingRequest",
    "ProgressEvent",
    "ResizeRequest",
    "ThumbnailRequest",
    "ThumbnailResult",
    "EngineEventRouter",
    "PROGRESS_EVENT",
    "COMPLETE_EVENT",
    "HttpConversionEngine",
]
