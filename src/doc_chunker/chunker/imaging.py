"""Image primitives and quality metrics used before OCR."""

import math
from dataclasses import dataclass

from PIL import Image, ImageEnhance, ImageFilter, ImageOps, ImageStat

from ..config import ImageQualityThresholds
from ..logger import logger

BRIGHTNESS_FACTOR = 1.1
CONTRAST_GAIN = 1.2
MEDIAN_SIZE = 3


def to_grayscale(image: Image.Image) -> Image.Image:
    return ImageOps.grayscale(image) if image.mode != "L" else image


def brighten(image: Image.Image, factor: float = BRIGHTNESS_FACTOR) -> Image.Image:
    return ImageEnhance.Brightness(image).enhance(factor)


def enhance_contrast(image: Image.Image, gain: float = CONTRAST_GAIN) -> Image.Image:
    """Linear contrast stretch: every pixel value is multiplied by ``gain``."""
    return image.point(lambda v: min(255, int(v * gain)))


def sharpen(image: Image.Image) -> Image.Image:
    return image.filter(ImageFilter.UnsharpMask(radius=1, percent=100, threshold=2))


def median_filter(image: Image.Image, size: int = MEDIAN_SIZE) -> Image.Image:
    return image.filter(ImageFilter.MedianFilter(size))


def rotate(image: Image.Image, degrees: int) -> Image.Image:
    """Rotate counter-clockwise by ``degrees``, growing the canvas to fit."""
    if degrees % 360 == 0:
        return image
    bands = len(image.getbands())
    fill = 255 if bands == 1 else (255,) * bands
    return image.rotate(degrees, expand=True, fillcolor=fill)


def entropy(image: Image.Image) -> float:
    """Average Shannon entropy (bits) of the image's bands."""
    bands = image.split()
    total = 0.0
    for band in bands:
        histogram = band.histogram()
        pixels = sum(histogram)
        if not pixels:
            continue
        total -= sum(
            (count / pixels) * math.log2(count / pixels) for count in histogram if count
        )
    return total / len(bands)


def stddev(image: Image.Image) -> float:
    """Average per-band standard deviation of pixel values."""
    values = ImageStat.Stat(image).stddev
    return sum(values) / len(values) if values else 0.0


@dataclass
class QualityAssessment:
    high_resolution: bool
    entropy: float
    stddev: float
    thresholds: ImageQualityThresholds

    @property
    def sharp(self) -> bool:
        return self.entropy > self.thresholds.min_entropy

    @property
    def good_contrast(self) -> bool:
        return self.stddev > self.thresholds.min_stddev

    @property
    def high_quality(self) -> bool:
        return self.high_resolution and self.sharp and self.good_contrast


def assess_quality(
    image: Image.Image,
    dpi: int | None = None,
    thresholds: ImageQualityThresholds | None = None,
) -> QualityAssessment:
    """Measure resolution, sharpness (entropy) and contrast (std-dev).

    Args:
        image: The rasterized page.
        dpi: Render resolution if known; otherwise read from the image info.
        thresholds: Limits for the three checks.
    """
    t = thresholds or ImageQualityThresholds()
    if dpi is None:
        info_dpi = image.info.get("dpi")
        dpi = int(info_dpi[0]) if info_dpi else 0
    return QualityAssessment(
        high_resolution=dpi >= t.high_resolution_dpi or image.width > t.high_resolution_width,
        entropy=entropy(image),
        stddev=stddev(image),
        thresholds=t,
    )


def should_preprocess(
    image: Image.Image,
    dpi: int | None = None,
    thresholds: ImageQualityThresholds | None = None,
) -> bool:
    """Preprocess unless the page is high resolution, sharp and contrasted.

    Preprocessing degrades already clean scans. If the assessment itself
    fails the page is preprocessed.
    """
    try:
        quality = assess_quality(image, dpi, thresholds)
    except (OSError, ValueError) as e:
        logger.warn("image quality assessment failed, preprocessing", error=str(e))
        return True

    logger.debug(
        "image quality assessed",
        high_resolution=quality.high_resolution,
        entropy=round(quality.entropy, 2),
        stddev=round(quality.stddev, 2),
        preprocess=not quality.high_quality,
    )
    return not quality.high_quality


def preprocess_for_ocr(image: Image.Image) -> Image.Image:
    """Grayscale, brighten, stretch contrast, sharpen, then median-filter."""
    image = to_grayscale(image)
    image = brighten(image)
    image = enhance_contrast(image)
    image = sharpen(image)
    return median_filter(image)
