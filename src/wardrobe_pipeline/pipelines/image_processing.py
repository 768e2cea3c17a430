"""Pillow adapter producing the clean image and its thumbnail."""

import asyncio
import io

from PIL import Image, UnidentifiedImageError

from core.errors import Provider, UnsupportedFormatError

JPEG_QUALITY = 90
WHITE = (255, 255, 255)


def _to_rgb(img: Image.Image) -> Image.Image:
    """Flatten transparency onto a white background."""
    if img.mode == "P":
        img = img.convert("RGBA")
    if img.mode in ("RGBA", "LA"):
        if img.mode == "LA":
            img = img.convert("RGBA")
        background = Image.new("RGB", img.size, WHITE)
        background.paste(img, mask=img.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def _open(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise UnsupportedFormatError(
            f"Cannot decode image: {e}", provider=Provider.INTERNAL, cause=e
        ) from e
    return img


def _encode_jpeg(img: Image.Image) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, "JPEG", quality=JPEG_QUALITY)
    return buffer.getvalue()


def resize_to_fit(data: bytes, max_dimension: int) -> bytes:
    """Shrink so the longest side is at most max_dimension; never upscale."""
    with _open(data) as img:
        rgb = _to_rgb(img)
        rgb.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
        return _encode_jpeg(rgb)


def square_thumbnail(data: bytes, size: int) -> bytes:
    """Fit the image inside a size x size white square, centred."""
    with _open(data) as img:
        rgb = _to_rgb(img)
        rgb.thumbnail((size, size), Image.Resampling.LANCZOS)
        canvas = Image.new("RGB", (size, size), WHITE)
        offset = ((size - rgb.width) // 2, (size - rgb.height) // 2)
        canvas.paste(rgb, offset)
        return _encode_jpeg(canvas)


class PillowImageProcessor:
    """Runs the Pillow transforms off the event loop."""

    def __init__(self, clean_max_dimension: int = 1600, thumbnail_size: int = 200):
        self.clean_max_dimension = clean_max_dimension
        self.thumbnail_size = thumbnail_size

    async def clean_image(self, data: bytes) -> bytes:
        return await asyncio.to_thread(resize_to_fit, data, self.clean_max_dimension)

    async def thumbnail(self, data: bytes) -> bytes:
        return await asyncio.to_thread(square_thumbnail, data, self.thumbnail_size)
