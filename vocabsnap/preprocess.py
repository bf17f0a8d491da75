"""Image clean-up applied before OCR.

Workbook pages print headwords in red and example sentences in blue, are
often photographed sideways, and come off phone cameras far larger than
OCR needs. Every function here is image-in/image-out.
"""
from __future__ import annotations

import logging

import cv2
import numpy as np
from PIL import Image, ImageEnhance

logger = logging.getLogger(__name__)

CONTRAST_GAIN = 1.6
INK_LEVEL = 120  # below -> black
PAPER_LEVEL = 200  # above -> white
COLORED_INK_GRAY = 40


def downscale(image: Image.Image, max_width: int = 2400) -> Image.Image:
    w, h = image.size
    if w <= max_width:
        return image
    return image.resize((max_width, round(h * max_width / w)), Image.Resampling.LANCZOS)


def preprocess_image(image: Image.Image, max_width: int = 2400) -> Image.Image:
    """Grayscale, flatten colored ink, boost contrast, push ink/paper apart.

    Mid-tones are kept rather than hard-binarized so thin glyphs survive.
    Falls back to the original image if anything goes wrong.
    """
    try:
        img = downscale(image.convert("RGB"), max_width)
        rgb = np.asarray(img).astype(np.float32)
        r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]

        gray = 0.299 * r + 0.587 * g + 0.114 * b
        reddish = (r > 150) & (g < 100) & (b < 100)
        bluish = (b > 150) & (r < 100) & (g < 100)
        gray[reddish | bluish] = COLORED_INK_GRAY

        gray = np.clip((gray - 128.0) * CONTRAST_GAIN + 128.0, 0, 255)
        gray[gray < INK_LEVEL] = 0
        gray[gray > PAPER_LEVEL] = 255

        return Image.fromarray(gray.astype(np.uint8)).convert("RGB")
    except Exception as e:
        logger.warning("Preprocessing failed, using raw image: %s", e)
        return image


def enhance_for_retry(image: Image.Image) -> Image.Image:
    """Heavier clean-up for a second OCR attempt on a page that read empty."""
    try:
        gray = cv2.cvtColor(np.array(image.convert("RGB")), cv2.COLOR_RGB2GRAY)

        # Adaptive threshold copes with uneven lighting across the page.
        binary = cv2.adaptiveThreshold(
            gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
        )
        denoised = cv2.fastNlMeansDenoising(binary, None, 10, 7, 21)
        kernel = np.array([[-1, -1, -1], [-1, 9, -1], [-1, -1, -1]])
        sharpened = cv2.filter2D(denoised, -1, kernel)

        processed = ImageEnhance.Contrast(Image.fromarray(sharpened)).enhance(1.5)
        return processed.convert("RGB")
    except Exception as e:
        logger.warning("Retry enhancement failed, using image as-is: %s", e)
        return image


def rotate_image(image: Image.Image, degrees: int = 90) -> Image.Image:
    """Rotate clockwise in quarter turns (sideways photos)."""
    if degrees % 90 != 0:
        raise ValueError(f"rotation must be a multiple of 90 degrees, got {degrees}")
    turns = (degrees // 90) % 4
    if turns == 0:
        return image.copy()
    # PIL rotates counter-clockwise.
    return image.rotate(-90 * turns, expand=True)
