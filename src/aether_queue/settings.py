"""Settings resolution: global defaults layered with per-item overrides.

This module provides utilities for:
- Resolving the effective settings of an item (global < override)
- Detecting whether an override actually differs from global
- Pruning an override down to the keys that differ
"""

import copy
from typing import Any, Optional

from pydantic import BaseModel

from .models import ConversionSettings, SettingsOverride


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality for settings values.

    Models are compared by their dumped field values, so two naming configs
    with identical blocks are equal even when they are distinct objects.
    """
    if isinstance(a, BaseModel):
        a = a.model_dump()
    if isinstance(b, BaseModel):
        b = b.model_dump()

    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[k], b[k]) for k in a)

    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))

    # bool is an int subclass; True must not equal 1 here
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def resolve(
    global_settings: ConversionSettings, override: Optional[SettingsOverride]
) -> ConversionSettings:
    """Merge override keys onto a copy of the global settings.

    Args:
        global_settings: Global conversion defaults
        override: Per-item override (None means no override)

    Returns:
        New ConversionSettings; the inputs are never mutated
    """
    if override is None or override.is_empty():
        return global_settings.model_copy(deep=True)
    return global_settings.model_copy(update=copy.deepcopy(override.overridden()), deep=True)


def has_effective_override(
    override: Optional[SettingsOverride], global_settings: ConversionSettings
) -> bool:
    """True if at least one overridden key differs from its global value."""
    if override is None:
        return False
    for key, value in override.overridden().items():
        if not deep_equal(value, getattr(global_settings, key)):
            return True
    return False


def clean_overrides(
    override: Optional[SettingsOverride], global_settings: ConversionSettings
) -> Optional[SettingsOverride]:
    """Prune an override to the keys that differ from global.

    Returns:
        Minimal override, or None when nothing differs
    """
    if override is None:
        return None
    differing = {
        key: value
        for key, value in override.overridden().items()
        if not deep_equal(value, getattr(global_settings, key))
    }
    if not differing:
        return None
    return SettingsOverride(**differing)
