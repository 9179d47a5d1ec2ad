# image_processing.py
import base64
import binascii
import io
import logging
import re
from typing import Any, Dict, Optional

import cv2
import numpy as np
from pdf2image.exceptions import PDFPageCountError, PDFSyntaxError
from PIL import Image, UnidentifiedImageError

from config import MAX_IMAGE_BYTES, MAX_IMAGE_DIMENSION
from logging_utils import component_logger, log_event
from pdf_processor import PDFProcessor

logger = component_logger("image_processing")

_DATA_URL_PREFIX = re.compile(r"^data:[^,]*;base64,", re.IGNORECASE)


class ImagePayloadError(ValueError):
    """Rejected image upload, with the HTTP status to answer with."""

    def __init__(self, message: str, status: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def decode_image_base64(payload: Optional[str], max_bytes: int = MAX_IMAGE_BYTES) -> bytes:
    if not payload or not isinstance(payload, str):
        raise ImagePayloadError("Missing image")

    body = _DATA_URL_PREFIX.sub("", payload.strip(), count=1)
    body = "".join(body.split())
    try:
        data = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImagePayloadError("Image is not valid base64") from e

    if not data:
        raise ImagePayloadError("Missing image")
    if len(data) > max_bytes:
        raise ImagePayloadError(
            f"Image too large ({len(data)} bytes, max {max_bytes})", status=413
        )
    return data


def is_pdf(data: bytes) -> bool:
    return data[:4] == b"%PDF"


def open_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImagePayloadError("Could not decode image") from e
    return img


def downscale(img: Image.Image, max_dimension: int = MAX_IMAGE_DIMENSION) -> Image.Image:
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    if max(img.size) > max_dimension:
        img = img.copy()
        img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
    return img


def analyse_image_quality(img: Image.Image) -> Dict[str, Any]:
    """Blur and contrast profile; logged only, never used to reject an upload."""
    gray = cv2.cvtColor(np.array(img.convert("RGB")), cv2.COLOR_RGB2GRAY)
    sharpness = float(cv2.Laplacian(gray, cv2.CV_64F).var())
    contrast = float(gray.std())
    h, w = gray.shape[:2]
    return {
        "width": w,
        "height": h,
        "sharpness": round(sharpness, 1),
        "contrast": round(contrast, 1),
        "is_blurry": sharpness < 100,
        "is_low_contrast": contrast < 25,
    }


async def load_roster_image(
    data: bytes,
    max_dimension: int = MAX_IMAGE_DIMENSION,
    request_id: Optional[str] = None,
) -> Image.Image:
    """Decoded upload bytes -> a model-ready PIL image (PDFs contribute their first page)."""
    if is_pdf(data):
        try:
            page = await PDFProcessor.first_page(data)
        except (PDFPageCountError, PDFSyntaxError) as e:
            raise ImagePayloadError("Could not read PDF") from e
        if page is None:
            raise ImagePayloadError("PDF has no pages")
        img = page
    else:
        img = open_image(data)

    img = downscale(img, max_dimension)
    log_event(logger, "image_analysis", level=logging.INFO, request_id=request_id, **analyse_image_quality(img))
    return img
