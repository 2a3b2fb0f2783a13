# images.py
import base64
import io
from enum import Enum
from functools import lru_cache
from typing import Tuple

from PIL import Image, ImageDraw, ImageFont

from .config import MAX_UPLOAD_SIZE

PLACEHOLDER_SIZE = (512, 768)

FONT_PATHS = [
    "/System/Library/Fonts/Helvetica.ttc",  # macOS
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",  # Linux
    "arial.ttf"  # Windows
]


class PlaceholderKind(str, Enum):
    CONTENT_FILTERED = "CONTENT FILTERED"
    GENERATION_FAILED = "IMAGE GEN FAILED"
    AUTH_ERROR = "AUTH ERROR"


def load_font(size: int):
    for font_path in FONT_PATHS:
        try:
            return ImageFont.truetype(font_path, size)
        except OSError:
            continue
    return ImageFont.load_default()


def image_bytes_to_pil(b: bytes) -> Image.Image:
    return Image.open(io.BytesIO(b))


def to_data_uri(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('utf-8')}"


def data_uri_to_bytes(uri: str) -> Tuple[bytes, str]:
    """Inverse of to_data_uri; returns (bytes, mime type)."""
    header, _, payload = uri.partition(",")
    if not header.startswith("data:") or ";base64" not in header:
        raise ValueError("Not a base64 data URI")
    mime = header[len("data:"):].split(";")[0] or "application/octet-stream"
    return base64.b64decode(payload), mime


def _draw_centered(draw: ImageDraw.ImageDraw, text: str, y: int, font, fill: str):
    bbox = draw.textbbox((0, 0), text, font=font)
    w = bbox[2] - bbox[0]
    draw.text(((PLACEHOLDER_SIZE[0] - w) // 2, y), text, fill=fill, font=font)


@lru_cache(maxsize=None)
def create_placeholder_image(kind: PlaceholderKind) -> str:
    """Locally drawn stand-in panel so a failed page never stays blank."""
    width, height = PLACEHOLDER_SIZE
    canvas = Image.new("RGB", (width, height), "#1a1a1a")
    draw = ImageDraw.Draw(canvas)
    draw.rectangle([0, 0, width - 1, height - 1], outline="#333333", width=10)

    # warning sign
    draw.polygon([(256, 200), (356, 380), (156, 380)], fill="#ef4444")
    _draw_centered(draw, "!", 270, load_font(80), "#000000")

    _draw_centered(draw, kind.value, 430, load_font(30), "#eab308")
    _draw_centered(draw, "Try a different genre/tone", 490, load_font(20), "#666666")

    buf = io.BytesIO()
    canvas.save(buf, format="JPEG")
    return to_data_uri(buf.getvalue(), "image/jpeg")


def normalize_upload(image_data: bytes, max_size: int = MAX_UPLOAD_SIZE) -> Tuple[bytes, str]:
    """Downscale an uploaded reference, flatten transparency onto white, re-encode as JPEG."""
    img = image_bytes_to_pil(image_data)
    if img.mode in ('RGBA', 'LA', 'P'):
        if img.mode == 'P':
            img = img.convert('RGBA')
        background = Image.new('RGB', img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        img = background
    elif img.mode != 'RGB':
        img = img.convert('RGB')

    if img.size[0] > max_size or img.size[1] > max_size:
        img.thumbnail((max_size, max_size), Image.LANCZOS)

    output = io.BytesIO()
    img.save(output, format='JPEG', quality=85, optimize=True)
    return output.getvalue(), "image/jpeg"


def synthetic_reference() -> Tuple[bytes, str]:
    """Small blue test card used when no hero image has been uploaded."""
    canvas = Image.new("RGB", (128, 128), "#0000FF")
    draw = ImageDraw.Draw(canvas)
    draw.text((10, 50), "TEST", fill="#FFFFFF", font=load_font(20))
    buf = io.BytesIO()
    canvas.save(buf, format="JPEG")
    return buf.getvalue(), "image/jpeg"
