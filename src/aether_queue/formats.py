"""Media extension tables and output-format helpers."""

from pathlib import PurePath
from typing import List, Optional

VIDEO_EXTENSIONS = ("mp4", "mkv", "mov", "webm", "avi", "wmv", "flv", "m4v")
IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "webp", "bmp", "tiff", "tif")
AUDIO_EXTENSIONS = ("mp3", "aac", "m4a", "ogg", "wav", "flac", "wma", "opus")

ALL_EXTENSIONS = VIDEO_EXTENSIONS + IMAGE_EXTENSIONS + AUDIO_EXTENSIONS

VIDEO_OUTPUT_FORMATS = ["mp4", "mkv", "mov", "webm"]
IMAGE_OUTPUT_FORMATS = ["jpg", "png", "webp"]
AUDIO_OUTPUT_FORMATS = ["mp3", "aac", "m4a", "ogg"]

DEFAULT_OUTPUT_FORMATS = {
    "video": "mp4",
    "image": "png",
    "audio": "mp3",
}


def get_extension(file_path: str) -> str:
    """Lowercase extension without the dot ('' if none)."""
    name = get_file_name(file_path)
    if "." not in name.lstrip("."):
        return ""
    return name.rsplit(".", 1)[-1].lower()


def get_file_name(file_path: str) -> str:
    """Final path component, accepting both separators."""
    return PurePath(file_path.replace("\\", "/")).name


def get_media_type(extension: str) -> Optional[str]:
    """Classify an extension as video, image or audio.

    Args:
        extension: Extension with or without leading dot, any case

    Returns:
        "video", "image", "audio", or None when unsupported
    """
    ext = extension.lower().lstrip(".")
    if ext in VIDEO_EXTENSIONS:
        return "video"
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in AUDIO_EXTENSIONS:
        return "audio"
    return None


def media_type_for_path(file_path: str) -> Optional[str]:
    return get_media_type(get_extension(file_path))


def normalize_extension(extension: str) -> str:
    ext = extension.lower().lstrip(".")
    if ext == "jpeg":
        return "jpg"
    return ext


def get_available_output_formats(media_type: str) -> List[str]:
    """Output formats the engine accepts for a media category."""
    if media_type == "video":
        # Video sources may also be exported as audio-only
        return VIDEO_OUTPUT_FORMATS + AUDIO_OUTPUT_FORMATS
    if media_type == "image":
        return list(IMAGE_OUTPUT_FORMATS)
    if media_type == "audio":
        return list(AUDIO_OUTPUT_FORMATS)
    raise ValueError(f"Unknown media type: {media_type}")


def get_default_output_format(media_type: str) -> str:
    try:
        return DEFAULT_OUTPUT_FORMATS[media_type]
    except KeyError:
        raise ValueError(f"Unknown media type: {media_type}")
