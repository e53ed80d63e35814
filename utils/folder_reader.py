"""
Folder reader: lists bill images in a folder (non-recursive) and loads them as InputFile triples.
Used for the input folder and for resubmitting the pending folder.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

from core.models import InputFile
from utils.image_utils import MIME_BY_EXTENSION, mime_from_name

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset(MIME_BY_EXTENSION)


def iter_images(folder: str | Path) -> Iterator[Path]:
    """Yield image files in folder, sorted by name. Missing folder yields nothing."""
    root = Path(folder)
    if not root.is_dir():
        logger.warning("Image folder not found: %s", root)
        return
    for path in sorted(root.iterdir()):
        if path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS:
            yield path


def load_input_files(folder: str | Path) -> list[tuple[Path, InputFile]]:
    """Read every image in folder into memory. Returns (source path, InputFile) pairs."""
    out: list[tuple[Path, InputFile]] = []
    for path in iter_images(folder):
        mime = mime_from_name(path.name)
        if mime is None:
            continue
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.warning("Skip unreadable file %s: %s", path, e)
            continue
        out.append((path, InputFile(name=path.name, data=data, mime_type=mime)))
    return out
