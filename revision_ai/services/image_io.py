from __future__ import annotations

import asyncio
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError
from loguru import logger

from revision_ai.core.errors import ValidationError
from revision_ai.core.result import Failure, Result, Success
from revision_ai.models.domain import SelectedImage



def check_image_size(data: bytes, max_bytes: int) -> Result[bytes]:
    """Shared size gate for uploads and backend dispatch."""
    if len(data) > max_bytes:
        size_mb = len(data) / (1024 * 1024)
        max_mb = max_bytes / (1024 * 1024)
        return Failure(ValidationError(f"Image too large: {size_mb:.1f}MB (max {max_mb:g}MB)"))
    return Success(data)


@dataclass(frozen=True)
class ImageInfo:
    width: int
    height: int
    format: str | None
    size_bytes: int


@dataclass
class ImageSourceService:
    """
    Resolves a user-selected image into raw bytes.

    Features:
    - Accepts in-memory bytes or a filesystem path (bytes win when both exist)
    - Reads files off the event loop
    - Rejects empty payloads and network paths before any backend call
    - Reads dimensions/format with Pillow for segmentation requests
    """
    max_file_size_mb: int = 10

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    async def load_bytes(self, image: SelectedImage) -> Result[bytes]:
        if image.data is not None:
            data = image.data
            logger.debug(f"Using image bytes directly ({len(data)} bytes)")
        elif image.path is not None:
            loaded = await self._read_path(Path(image.path))
            if loaded.is_failure:
                return loaded
            data = loaded.value_or(b"")
            logger.debug(f"Loaded image from path {image.path} ({len(data)} bytes)")
        else:
            return Failure(ValidationError("Image has neither path nor bytes - cannot process"))

        if len(data) == 0:
            return Failure(ValidationError("Image data is empty - cannot process"))

        if image.declared_size is not None and image.declared_size != len(data):
            logger.warning(
                f"Declared size {image.declared_size} does not match "
                f"resolved size {len(data)} for {image.name}"
            )

        return Success(data)

    async def _read_path(self, path: Path) -> Result[bytes]:
        if str(path).startswith(("http:", "https:")):
            return Failure(ValidationError("Network images are not supported"))
        if not path.exists():
            return Failure(ValidationError(f"Image file does not exist: {path}"))
        try:
            return Success(await asyncio.to_thread(path.read_bytes))
        except OSError as e:
            return Failure(ValidationError(f"Cannot read image file {path}: {e}"))

    def check_size(self, data: bytes) -> Result[bytes]:
        return check_image_size(data, self.max_file_size_bytes)

    def inspect(self, data: bytes) -> Result[ImageInfo]:
        """Read width/height/format without decoding the full raster."""
        try:
            with Image.open(BytesIO(data)) as img:
                w, h = img.size
                fmt = img.format
        except (UnidentifiedImageError, OSError) as e:
            return Failure(ValidationError(
                f"Invalid or corrupted image file: {e}. "
                f"Please ensure the file is a valid image (JPEG, PNG, WebP)."
            ))
        logger.debug(f"Inspected image: format={fmt}, size={w}x{h}")
        return Success(ImageInfo(width=w, height=h, format=fmt, size_bytes=len(data)))
