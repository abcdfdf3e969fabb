"""
Certificate template loading.
"""

import logging
import os
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from .errors import TemplateNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateImage:
    """A decoded template raster. Coordinates in the layout refer to its pixels."""

    path: str
    width: int
    height: int
    image: Image.Image


def load_template(path: str) -> TemplateImage:
    """
    Open and fully decode a template image.

    Raises:
        TemplateNotFoundError: If the file is missing or is not a readable image
    """
    if not path or not os.path.exists(path):
        raise TemplateNotFoundError(f"Certificate template not found: {path}")

    try:
        with Image.open(path) as source:
            source.load()
            mode = "RGBA" if source.mode in ("RGBA", "LA", "P") else "RGB"
            image = source.convert(mode)
    except (UnidentifiedImageError, OSError) as e:
        raise TemplateNotFoundError(f"Certificate template could not be read: {path} ({e})") from e

    width, height = image.size
    logger.info(f"Loaded template {path} ({width}x{height} px)")
    return TemplateImage(path=path, width=width, height=height, image=image)
