"""Image downsampling and re-encoding before upload."""

import base64
import io
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import InvalidInputError

# Register HEIC support
try:
    from pillow_heif import register_heif_opener
    register_heif_opener()
except ImportError:
    pass  # pillow-heif not installed, HEIC files won't be supported

logger = logging.getLogger(__name__)

MAX_EDGE = 800
JPEG_QUALITY = 70  # 0.7 on the canvas quality scale


@dataclass(frozen=True)
class EncodedImage:
    """Transport-ready JPEG payload."""

    data: bytes
    width: int
    height: int
    mime_type: str = "image/jpeg"

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("utf-8")

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"


def compute_target_size(width: int, height: int, max_edge: int = MAX_EDGE) -> Tuple[int, int]:
    """
    Bound the longest edge to ``max_edge``, keeping the aspect ratio.

    Images already within the bound keep their size. Scaled dimensions are
    truncated to whole pixels.

    Args:
        width: Source width in pixels
        height: Source height in pixels
        max_edge: Maximum allowed edge length

    Returns:
        Tuple of (width, height)
    """
    if width >= height:
        if width > max_edge:
            height = height * max_edge / width
            width = max_edge
    elif height > max_edge:
        width = width * max_edge / height
        height = max_edge

    return max(1, int(width)), max(1, int(height))


def is_image_type(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.lower().startswith("image/")


def preprocess(data: bytes, content_type: str) -> EncodedImage:
    """
    Downsample and re-encode an uploaded image as JPEG.

    Args:
        data: Raw file bytes
        content_type: Declared MIME type of the file

    Returns:
        EncodedImage with the compressed JPEG bytes

    Raises:
        InvalidInputError: if the declared type is not an image type or the
            bytes cannot be decoded
    """
    if not is_image_type(content_type):
        raise InvalidInputError(f"Please upload an image file (got {content_type or 'unknown type'})")

    try:
        image = Image.open(io.BytesIO(data))
        # JPEG decoders can scale down by 1/2..1/8 while decoding
        image.draft("RGB", compute_target_size(*image.size))
        image.load()
    except Image.DecompressionBombError as e:
        raise InvalidInputError(f"Image is too large to process: {e}") from e
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidInputError(f"Could not decode image: {e}") from e

    # Browsers decode photos upright
    image = ImageOps.exif_transpose(image)

    original_size = image.size
    target_size = compute_target_size(*original_size)

    # JPEG has no alpha channel
    if image.mode != "RGB":
        image = image.convert("RGB")
    if target_size != original_size:
        image = image.resize(target_size, Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=JPEG_QUALITY)
    encoded = buffer.getvalue()

    logger.debug(
        f"Preprocessed image {original_size[0]}x{original_size[1]} -> "
        f"{target_size[0]}x{target_size[1]} ({len(data)} -> {len(encoded)} bytes)"
    )
    return EncodedImage(data=encoded, width=target_size[0], height=target_size[1])


def preprocess_file(file_path: Union[str, Path]) -> EncodedImage:
    """Preprocess an image file, declaring its type from the file name."""
    file_path = Path(file_path)
    if not file_path.is_file():
        raise InvalidInputError(f"No such file: {file_path}")

    content_type, _ = mimetypes.guess_type(file_path.name)
    if content_type is None and file_path.suffix.lower() in {".heic", ".heif"}:
        content_type = "image/heic"
    if not is_image_type(content_type):
        raise InvalidInputError(f"Please upload an image file: {file_path.name}")

    return preprocess(file_path.read_bytes(), content_type)
