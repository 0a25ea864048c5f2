"""Pydantic models for conversion settings, naming templates and overrides."""

import uuid
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

MediaType = Literal["video", "image", "audio"]
VideoFormat = Literal["mp4", "mkv", "mov", "webm"]
ImageFormat = Literal["jpg", "png", "webp"]
AudioFormat = Literal["mp3", "aac", "m4a", "ogg"]
ResizeMode = Literal["fill", "cover", "contain"]
BackgroundColor = Literal["transparent", "black", "white"]
ConflictMode = Literal["skip", "overwrite", "keep_both"]
NamingBlockType = Literal["original", "prefix", "random", "date"]

DEFAULT_RANDOM_LENGTH = 8
DEFAULT_PREFIX_VALUE = "file"

# Settings whose global value may legitimately be None
NULLABLE_SETTINGS = frozenset(
    {"video_format", "image_format", "audio_format", "output_directory", "max_bitrate"}
)


def _new_block_id() -> str:
    return f"block-{uuid.uuid4()}"


class NamingBlockParams(BaseModel):
    """Optional parameters of a naming block."""

    value: Optional[str] = Field(default=None, description="Literal text for prefix blocks")
    length: Optional[int] = Field(
        default=None, ge=1, le=64, description="Token length for random blocks"
    )


class NamingBlock(BaseModel):
    """One unit of the output filename template."""

    id: str = Field(default_factory=_new_block_id, description="Stable block identifier")
    type: NamingBlockType = Field(..., description="Block kind")
    params: Optional[NamingBlockParams] = Field(default=None, description="Block parameters")


class NamingConfig(BaseModel):
    """Ordered naming blocks plus the sanitize toggle.

    Block order is concatenation order. At least one block always remains;
    every edit returns a new config and leaves the original untouched.
    """

    blocks: List[NamingBlock] = Field(
        default_factory=lambda: [NamingBlock(id="default-original", type="original")],
        description="Ordered naming blocks",
    )
    sanitize_enabled: bool = Field(
        default=False, description="Strip special characters from the assembled name"
    )

    @field_validator("blocks")
    @classmethod
    def at_least_one_block(cls, v: List[NamingBlock]) -> List[NamingBlock]:
        if not v:
            raise ValueError("naming config needs at least one block")
        return v

    def add_block(
        self, block_type: NamingBlockType, params: Optional[NamingBlockParams] = None
    ) -> "NamingConfig":
        block = NamingBlock(type=block_type, params=params)
        return self.model_copy(update={"blocks": [*self.blocks, block]})

    def remove_block(self, block_id: str) -> "NamingConfig":
        """Drop a block; removing the last remaining block is a no-op."""
        if len(self.blocks) <= 1:
            return self
        remaining = [b for b in self.blocks if b.id != block_id]
        if len(remaining) == len(self.blocks):
            return self
        return self.model_copy(update={"blocks": remaining})

    def move_block(self, block_id: str, new_index: int) -> "NamingConfig":
        blocks = list(self.blocks)
        index = next((i for i, b in enumerate(blocks) if b.id == block_id), None)
        if index is None:
            return self
        block = blocks.pop(index)
        new_index = max(0, min(new_index, len(blocks)))
        blocks.insert(new_index, block)
        return self.model_copy(update={"blocks": blocks})

    def update_block(self, block_id: str, params: NamingBlockParams) -> "NamingConfig":
        blocks = [
            b.model_copy(update={"params": params}) if b.id == block_id else b
            for b in self.blocks
        ]
        return self.model_copy(update={"blocks": blocks})


class ConversionSettings(BaseModel):
    """Global conversion defaults applied to every queue item."""

    video_format: Optional[VideoFormat] = Field(
        default=None, description="Video output format (None = keep original)"
    )
    image_format: Optional[ImageFormat] = Field(
        default=None, description="Image output format (None = keep original)"
    )
    audio_format: Optional[AudioFormat] = Field(
        default=None, description="Audio output format (None = keep original)"
    )
    quality_percent: int = Field(default=80, ge=0, le=100, description="Output quality")
    resize_enabled: bool = Field(default=False, description="Resize visual media")
    resize_width: int = Field(default=1920, gt=0, description="Target width in pixels")
    resize_height: int = Field(default=1080, gt=0, description="Target height in pixels")
    resize_mode: ResizeMode = Field(default="contain", description="Fit strategy")
    background_color: BackgroundColor = Field(
        default="black", description="Padding colour for contain mode"
    )
    is_muted: bool = Field(default=False, description="Drop audio tracks")
    strip_metadata: bool = Field(default=False, description="Remove container metadata")
    naming_config: NamingConfig = Field(
        default_factory=NamingConfig, description="Output filename template"
    )
    output_directory: Optional[str] = Field(
        default=None, description="Output directory (None = next to the source file)"
    )
    conflict_mode: ConflictMode = Field(
        default="skip", description="Policy when the output path already exists"
    )
    processing_enabled: bool = Field(
        default=True, description="When off, files are renamed/relocated only"
    )
    max_bitrate: Optional[int] = Field(
        default=None, gt=0, description="Optional bitrate cap in kbps"
    )


class SettingsOverride(BaseModel):
    """Per-item partial settings.

    A field overrides the global value only when it was explicitly set, even
    if it was set to None. Unset fields inherit. ``model_fields_set`` is the
    source of truth, so persisted overrides carry set fields only.
    """

    video_format: Optional[VideoFormat] = None
    image_format: Optional[ImageFormat] = None
    audio_format: Optional[AudioFormat] = None
    quality_percent: Optional[int] = Field(default=None, ge=0, le=100)
    resize_enabled: Optional[bool] = None
    resize_width: Optional[int] = Field(default=None, gt=0)
    resize_height: Optional[int] = Field(default=None, gt=0)
    resize_mode: Optional[ResizeMode] = None
    background_color: Optional[BackgroundColor] = None
    is_muted: Optional[bool] = None
    strip_metadata: Optional[bool] = None
    naming_config: Optional[NamingConfig] = None
    output_directory: Optional[str] = None
    conflict_mode: Optional[ConflictMode] = None
    processing_enabled: Optional[bool] = None
    max_bitrate: Optional[int] = Field(default=None, gt=0)

    def overridden(self) -> Dict[str, Any]:
        """Explicitly set fields mapped to their values, in declaration order.

        None on a field whose global value cannot be None means "inherit".
        """
        return {
            name: getattr(self, name)
            for name in type(self).model_fields
            if name in self.model_fields_set
            and (getattr(self, name) is not None or name in NULLABLE_SETTINGS)
        }

    def is_empty(self) -> bool:
        return not self.overridden()

    def merged_with(self, other: "SettingsOverride") -> "SettingsOverride":
        """Shallow merge: fields set on ``other`` win."""
        return SettingsOverride(**{**self.overridden(), **other.overridden()})

    def to_dict(self) -> Dict[str, Any]:
        return {
            name: value.model_dump(mode="json") if isinstance(value, BaseModel) else value
            for name, value in self.overridden().items()
        }
