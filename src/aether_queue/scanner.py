from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set

from .formats import ALL_EXTENSIONS


def _suffixes(extensions: Optional[Iterable[str]]) -> Set[str]:
    """Normalize extensions to lowercase dotted suffixes ('MP4' -> '.mp4')."""
    chosen = extensions or ALL_EXTENSIONS
    return {("." + ext.lstrip(".")).lower() for ext in chosen}


def _media_files(folder: Path, recursive: bool, suffixes: Set[str]) -> Iterator[Path]:
    candidates = folder.rglob("*") if recursive else folder.glob("*")
    for candidate in candidates:
        if candidate.is_file() and candidate.suffix.lower() in suffixes:
            yield candidate


def scan_input(
    input_path: str,
    recursive: bool = False,
    limit: Optional[int] = None,
    extensions: Optional[List[str]] = None,
) -> List[Path]:
    """
    Expand an input path into candidate media files.

    A file is returned as-is whatever its extension, so ingestion can count
    it as unsupported. A folder yields the media files inside it.

    Args:
        input_path: File or folder path.
        recursive: Descend into subfolders.
        limit: Max number of files to return.
        extensions: Allowed extensions for folder expansion (e.g. ['mp4', 'png']).
            Defaults to every supported media extension.

    Returns:
        Paths sorted by their string form.
    """
    path = Path(input_path)
    if path.is_file():
        return [path]
    if not path.is_dir():
        raise FileNotFoundError(f"Input path not found: {input_path}")

    found = sorted(_media_files(path, recursive, _suffixes(extensions)), key=str)
    return found[:limit] if limit else found


def scan_inputs(
    input_paths: Iterable[str],
    recursive: bool = False,
    extensions: Optional[List[str]] = None,
) -> List[str]:
    """Scan several inputs and return absolute path strings in input order."""
    return [
        str(found.resolve())
        for input_path in input_paths
        for found in scan_input(input_path, recursive=recursive, extensions=extensions)
    ]
