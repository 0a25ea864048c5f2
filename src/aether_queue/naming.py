"""Output filename preview from a naming template.

The conversion engine assembles the real output name; this mirrors its rules
so a caller can show what a template will produce before submitting work.
"""

import random
import re
import string
from datetime import datetime
from typing import Callable, Optional

from .models import DEFAULT_PREFIX_VALUE, DEFAULT_RANDOM_LENGTH, NamingConfig

RANDOM_ALPHABET = string.ascii_lowercase + string.digits
MIN_RANDOM_LENGTH = 4
MAX_RANDOM_LENGTH = 32

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_-]")
_UNDERSCORE_RUNS = re.compile(r"_+")


def sanitize_filename(name: str) -> str:
    """Lowercase, spaces to underscores, drop everything outside [a-z0-9_-]."""
    cleaned = _UNSAFE_CHARS.sub("", name.lower().replace(" ", "_"))
    cleaned = _UNDERSCORE_RUNS.sub("_", cleaned).strip("_")
    return cleaned or "file"


def random_token(length: int, rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random()
    length = max(MIN_RANDOM_LENGTH, min(length, MAX_RANDOM_LENGTH))
    return "".join(rng.choice(RANDOM_ALPHABET) for _ in range(length))


def render_name(
    original_stem: str,
    config: NamingConfig,
    now: Optional[Callable[[], datetime]] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """Assemble a filename stem from the naming blocks.

    Args:
        original_stem: Source filename without extension
        config: Naming template
        now: Clock for date blocks (default: datetime.now)
        rng: Random source for random blocks

    Returns:
        Filename stem, never empty
    """
    now = now or datetime.now
    parts = []

    for block in config.blocks:
        params = block.params
        if block.type == "original":
            parts.append(original_stem)
        elif block.type == "prefix":
            value = params.value if params and params.value else DEFAULT_PREFIX_VALUE
            parts.append(value)
        elif block.type == "random":
            length = params.length if params and params.length else DEFAULT_RANDOM_LENGTH
            parts.append(random_token(length, rng))
        elif block.type == "date":
            stamp = now()
            parts.append(stamp.strftime("%Y%m%d%H%M%S") + f"{stamp.microsecond // 1000:03d}")

    result = "_".join(p for p in parts if p)
    if config.sanitize_enabled:
        result = sanitize_filename(result)
    return result or "unnamed"
