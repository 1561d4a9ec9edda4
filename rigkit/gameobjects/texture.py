import base64
import io

import numpy as np
from PIL import Image, UnidentifiedImageError

from rigkit.config import BACKGROUND_KEY_THRESHOLD, TEXTURE_MAX_SIZE
from rigkit.errors import TextureDecodeError


def decode_image(data) -> Image.Image:
    """
    Decode PNG/JPG bytes (or a path) into an RGBA image.
    """
    try:
        source = io.BytesIO(data) if isinstance(data, (bytes, bytearray)) else data
        with Image.open(source) as img:
            img.load()
            return img.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise TextureDecodeError(f"Could not decode texture: {e}") from e


def key_background(image: Image.Image, threshold: int = BACKGROUND_KEY_THRESHOLD) -> Image.Image:
    """
    Make near-white background pixels transparent.
    """
    pixels = np.array(image.convert("RGBA"), dtype=np.uint8)
    rgb = pixels[:, :, :3]
    background = np.all(rgb > threshold, axis=2)
    pixels[background, 3] = 0
    return Image.fromarray(pixels)


def load_portrait(data, threshold: int = BACKGROUND_KEY_THRESHOLD) -> Image.Image:
    return key_background(decode_image(data), threshold)


def fit_texture(image: Image.Image, max_size: int = TEXTURE_MAX_SIZE) -> Image.Image:
    """
    Downscale so the long edge is at most max_size, keeping aspect.
    """
    width, height = image.size
    if width <= max_size and height <= max_size:
        return image

    ratio = width / height
    if width > height:
        size = (max_size, max(1, round(max_size / ratio)))
    else:
        size = (max(1, round(max_size * ratio)), max_size)
    return image.resize(size, Image.Resampling.LANCZOS)


# ------------------------------------------------------------
# Encoding
# ------------------------------------------------------------

def encode_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def image_to_data_uri(image: Image.Image) -> str:
    return "data:image/png;base64," + base64.b64encode(encode_png(image)).decode("ascii")


def data_uri_to_image(uri: str) -> Image.Image:
    header, sep, payload = uri.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise TextureDecodeError("Expected a base64 data URI")
    try:
        raw = base64.b64decode(payload, validate=True)
    except ValueError as e:
        raise TextureDecodeError(f"Invalid base64 payload: {e}") from e
    return decode_image(raw)
