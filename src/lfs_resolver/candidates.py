"""Discovery of candidate source images and the modified-image list."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path

IMAGES_SUBDIR = "images"
logger = logging.getLogger(__name__)


def is_raster_image(path: str | Path) -> bool:
    """True for ``image/*`` media types other than SVG."""

    media_type, _ = mimetypes.guess_type(str(path))
    if not media_type:
        return False
    return media_type.startswith("image/") and "svg" not in media_type


def find_candidate_images(source_dir: Path) -> list[str]:
    """Return source-relative names of raster images under ``<source_dir>/images``."""

    images_root = source_dir / IMAGES_SUBDIR
    if not images_root.is_dir():
        logger.warning("Image directory %s does not exist", images_root)
        return []
    return sorted(
        path.relative_to(source_dir).as_posix()
        for path in images_root.rglob("*")
        if path.is_file() and is_raster_image(path)
    )


def read_modified_list(path: Path | None, *, source_dir: Path) -> list[str]:
    """Read the whitespace separated modified-file list written by the CI diff step.

    Entries are repository paths; they are rebased onto ``source_dir``. Entries
    outside ``<source_dir>/images``, non-raster files and deleted files are skipped.
    """

    if path is None or not path.exists():
        return []

    source_root = source_dir.resolve()
    names: list[str] = []
    seen: set[str] = set()
    for token in path.read_text("utf-8").split():
        entry = Path(token)
        if not entry.is_absolute():
            entry = Path.cwd() / entry
        try:
            relative = entry.resolve().relative_to(source_root).as_posix()
        except ValueError:
            logger.warning("Skipping modified file outside %s: %s", source_dir, token)
            continue
        if not relative.startswith(f"{IMAGES_SUBDIR}/"):
            logger.info("Skipping modified file outside %s/: %s", IMAGES_SUBDIR, token)
            continue
        if not is_raster_image(relative):
            logger.info("Skipping modified non-image file: %s", token)
            continue
        if not (source_dir / relative).is_file():
            logger.warning("Skipping modified file that no longer exists: %s", token)
            continue
        if relative in seen:
            continue
        seen.add(relative)
        names.append(relative)
    return names
