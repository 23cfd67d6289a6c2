"""
PhotoBazaar Backend: Image Storage Service
===========================================

What:  Validates uploaded images and writes them to disk in two areas.
How:   Extension and size checks run first (cheap), then Pillow decodes the
       bytes to confirm a real JPEG/PNG/WEBP and read its dimensions. The
       untouched original goes to the private area; resized display and
       thumbnail copies go to the public area.

Directory Structure:
    storage/
    ├── originals/               private; reachable only via a download grant
    │   └── 2025/03/14/<uuid>.jpg
    └── public/                  served at /uploads/<path>
        ├── 2025/03/14/<uuid>.jpg        display copy
        ├── 2025/03/14/<uuid>_thumb.jpg  thumbnail
        └── avatars/2025/03/14/<uuid>.jpg

Validation order:
    1. Extension     no bytes inspected
    2. Size          Content-Length, then the actual byte count
    3. Pillow decode rejects renamed or truncated files
"""

import asyncio
import io
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiofiles
from PIL import Image, ImageOps, UnidentifiedImageError

from photobazaar.config import settings
from photobazaar.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Pillow format name → stored extension
ALLOWED_FORMATS = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "WEBP": ".webp",
}
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}

MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}

ORIGINALS_DIR = "originals"
PUBLIC_DIR = "public"
PUBLIC_URL_PREFIX = "/uploads"
AVATAR_MAX_EDGE = 512


@dataclass
class ImageInfo:
    format: str
    extension: str
    width: int
    height: int


@dataclass
class StoredImage:
    original_path: str
    image_url: str
    thumbnail_url: str
    width: int
    height: int
    file_size: int
    format: str


class FileService:
    """
    Owns every read and write under `storage_root`.

    Paths persisted in the database are always relative to the area root
    (originals/ or public/), never absolute.
    """

    def __init__(self, storage_root: Optional[str] = None):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.originals_root = self.storage_root / ORIGINALS_DIR
        self.public_root = self.storage_root / PUBLIC_DIR
        self.originals_root.mkdir(parents=True, exist_ok=True)
        self.public_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: Optional[str]) -> str:
        """Returns the lowercase extension, or raises ValidationError."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext or 'unknown'}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="photo",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        max_mb = settings.max_file_size / (1024 * 1024)

        if content_length and content_length > settings.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB. Please upload a smaller image.",
                field="photo",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )

        if actual_size == 0:
            raise ValidationError(message="Uploaded file is empty", field="photo")

        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"File size ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="photo",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def inspect_image(self, content: bytes) -> ImageInfo:
        """
        Decode the bytes with Pillow and return format and dimensions.

        `verify()` walks the file structure without decoding pixels, which
        catches truncated and renamed files. It leaves the image unusable,
        so dimensions are read from a second open.
        """
        try:
            with Image.open(io.BytesIO(content)) as candidate:
                candidate.verify()
            with Image.open(io.BytesIO(content)) as image:
                fmt = (image.format or "").upper()
                width, height = image.size
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
            raise ValidationError(
                message="The uploaded file is not a valid image.",
                field="photo",
                context={"error": type(e).__name__},
            )

        if fmt not in ALLOWED_FORMATS:
            raise ValidationError(
                message=f"Image format '{fmt or 'unknown'}' is not supported. Use JPEG, PNG or WEBP.",
                field="photo",
                context={"detected_format": fmt, "allowed": sorted(ALLOWED_FORMATS)},
            )
        return ImageInfo(format=fmt, extension=ALLOWED_FORMATS[fmt], width=width, height=height)

    # ── Paths ─────────────────────────────────────────────────────────────

    def _generate_relative_path(self, extension: str, prefix: str = "") -> str:
        """<prefix>/YYYY/MM/DD/<uuid><ext>"""
        date_dir = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        relative = f"{date_dir}/{uuid.uuid4()}{extension}"
        return f"{prefix}/{relative}" if prefix else relative

    def _resolve_within(self, root: Path, relative_path: str) -> Path:
        full_path = (root / relative_path).resolve()
        if not full_path.is_relative_to(root):
            raise ValidationError(message="Invalid file path")
        return full_path

    def resolve_public(self, relative_path: str) -> Path:
        full_path = self._resolve_within(self.public_root, relative_path)
        if not full_path.is_file():
            raise NotFoundError(resource="file", resource_id=relative_path)
        return full_path

    def resolve_original(self, relative_path: str) -> Path:
        full_path = self._resolve_within(self.originals_root, relative_path)
        if not full_path.is_file():
            logger.error("Original missing on disk: %s", relative_path)
            raise FileStorageError(
                message="The original file for this photo is unavailable.",
                context={"path": relative_path},
            )
        return full_path

    def public_url(self, relative_path: str) -> str:
        return f"{PUBLIC_URL_PREFIX}/{relative_path}"

    def public_path_from_url(self, url: Optional[str]) -> Optional[Path]:
        if not url or not url.startswith(PUBLIC_URL_PREFIX + "/"):
            return None
        return self.public_root / url[len(PUBLIC_URL_PREFIX) + 1:]

    # ── Writing ───────────────────────────────────────────────────────────

    async def store_file(self, root: Path, relative_path: str, content: bytes) -> Path:
        """Write bytes under `root`; raises FileStorageError on OS failures."""
        absolute_path = root / relative_path
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": str(absolute_path), "os_error": str(e)},
            )
        logger.info("File stored: %s (%d bytes)", relative_path, len(content))
        return absolute_path

    @staticmethod
    def _render(content: bytes, max_edge: int) -> bytes:
        """Downscale to fit `max_edge` and re-encode as JPEG."""
        with Image.open(io.BytesIO(content)) as image:
            image = ImageOps.exif_transpose(image)
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            image.thumbnail((max_edge, max_edge))
            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=85, optimize=True)
            return buffer.getvalue()

    async def render_variant(self, content: bytes, max_edge: int) -> bytes:
        # Pillow work is CPU bound; keep it off the event loop
        return await asyncio.to_thread(self._render, content, max_edge)

    async def store_photo(
        self,
        filename: Optional[str],
        content: bytes,
        content_length: Optional[int] = None,
    ) -> StoredImage:
        """
        Full upload pipeline for a marketplace photo.

        Returns relative/public locations for the original, display copy and
        thumbnail. Files already written are removed if a later step fails.
        """
        self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        info = self.inspect_image(content)

        original_rel = self._generate_relative_path(info.extension)
        display_rel = original_rel.rsplit(".", 1)[0] + ".jpg"
        thumb_rel = original_rel.rsplit(".", 1)[0] + "_thumb.jpg"

        written = []
        try:
            written.append(await self.store_file(self.originals_root, original_rel, content))
            display = await self.render_variant(content, settings.display_max_edge)
            written.append(await self.store_file(self.public_root, display_rel, display))
            thumbnail = await self.render_variant(content, settings.thumbnail_max_edge)
            written.append(await self.store_file(self.public_root, thumb_rel, thumbnail))
        except Exception:
            for path in written:
                await self.cleanup_file(str(path))
            raise

        return StoredImage(
            original_path=original_rel,
            image_url=self.public_url(display_rel),
            thumbnail_url=self.public_url(thumb_rel),
            width=info.width,
            height=info.height,
            file_size=len(content),
            format=info.format.lower(),
        )

    async def store_avatar(
        self,
        filename: Optional[str],
        content: bytes,
        content_length: Optional[int] = None,
    ) -> str:
        """Store a profile image and return its public URL."""
        self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        self.inspect_image(content)
        rendered = await self.render_variant(content, AVATAR_MAX_EDGE)
        relative = self._generate_relative_path(".jpg", prefix="avatars")
        await self.store_file(self.public_root, relative, rendered)
        return self.public_url(relative)

    async def remove_public_url(self, url: Optional[str]) -> None:
        path = self.public_path_from_url(url)
        if path is not None:
            await self.cleanup_file(str(path))

    async def remove_photo_files(self, original_path: str, *urls: Optional[str]) -> None:
        await self.cleanup_file(str(self.originals_root / original_path))
        for url in urls:
            await self.remove_public_url(url)

    async def cleanup_file(self, file_path: str) -> None:
        """
        Best-effort delete used after a failed upload or a rolled back insert.
        Missing files are ignored; other failures are logged, not raised.
        """
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))

    @staticmethod
    def media_type_for(path: Path) -> str:
        return MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream")


file_service = FileService()
