"""Writes rendered images under the media directory."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class MediaStore:
    """Per-book image files: ``<media_dir>/book_<id>/...``."""

    def __init__(self, media_dir: str | Path):
        self.media_dir = Path(media_dir)

    def _book_dir(self, book_id: int) -> Path:
        path = self.media_dir / f"book_{book_id}"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def save_cover(self, book_id: int, data: bytes) -> Path:
        path = self._book_dir(book_id) / "cover.png"
        path.write_bytes(data)
        logger.info("Cover saved: %s (%d bytes)", path, len(data))
        return path

    def save_illustration(self, book_id: int, position: int, data: bytes) -> Path:
        path = self._book_dir(book_id) / f"illustration_{position:03d}.png"
        path.write_bytes(data)
        logger.debug("Illustration saved: %s (%d bytes)", path, len(data))
        return path
