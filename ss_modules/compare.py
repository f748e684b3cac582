"""
Image comparison helpers.

Used to document how closely the enhanced (stitched) capture's top viewport
matches the raw capture taken before any DOM change.
"""

import io
import logging
from typing import Optional

import cv2
import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)


def compare_images(img1: Image.Image, img2: Image.Image) -> float:
    """
    Compare two images for similarity using normalized cross-correlation.

    Returns:
        Float between 0.0 (completely different) and 1.0 (identical).
        Images of different size score 0.0.
    """
    arr1 = np.array(img1.convert("RGB"))
    arr2 = np.array(img2.convert("RGB"))

    if arr1.shape != arr2.shape:
        return 0.0

    gray1 = cv2.cvtColor(arr1, cv2.COLOR_RGB2GRAY)
    gray2 = cv2.cvtColor(arr2, cv2.COLOR_RGB2GRAY)

    norm1 = gray1.astype(np.float64) - np.mean(gray1)
    norm2 = gray2.astype(np.float64) - np.mean(gray2)

    numerator = np.sum(norm1 * norm2)
    denominator = np.sqrt(np.sum(norm1 ** 2) * np.sum(norm2 ** 2))

    if denominator == 0:
        # Flat images: correlation is undefined, fall back to pixel equality
        return compare_image_regions(img1, img2)

    correlation = numerator / denominator

    # Correlation is -1..1
    return float((correlation + 1) / 2)


def compare_image_regions(img1: Image.Image, img2: Image.Image) -> float:
    """Mean absolute pixel difference mapped to 0..1 similarity"""
    arr1 = np.array(img1.convert("RGB"))
    arr2 = np.array(img2.convert("RGB"))

    if arr1.shape != arr2.shape:
        return 0.0
    if arr1.size == 0:
        return 1.0

    diff = np.abs(arr1.astype(np.float64) - arr2.astype(np.float64))
    max_diff = 255.0 * arr1.size
    return float(1.0 - (np.sum(diff) / max_diff))


def top_viewport_similarity(raw_bytes: bytes, enhanced_bytes: bytes) -> Optional[float]:
    """
    Similarity between the raw viewport and the same-size top crop of the
    enhanced image. None when the enhanced image is smaller than the raw one
    or either image cannot be decoded.
    """
    try:
        raw = Image.open(io.BytesIO(raw_bytes))
        enhanced = Image.open(io.BytesIO(enhanced_bytes))
        raw.load()
        enhanced.load()
    except (OSError, ValueError) as e:
        logger.warning(f"[Compare] Could not decode images for comparison: {e}")
        return None

    width, height = raw.size
    if enhanced.width != width or enhanced.height < height:
        logger.debug(f"[Compare] Size mismatch raw={raw.size} enhanced={enhanced.size}")
        return None

    top = enhanced.crop((0, 0, width, height))
    return round(compare_images(raw, top), 4)
