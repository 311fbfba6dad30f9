"""
Image loading and tensor conversion.

Images are resized to fill the target resolution (scaled to cover it, then
centre cropped), converted to channel-first layout and scaled to [0, 1].
No mean/std standardization is applied.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
import torch
from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import ImageDecodeError, ImageIOError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_image(path: PathLike) -> Image.Image:
    """
    Load and decode an image file as RGB.

    Raises:
        ImageIOError: If the file cannot be opened
        ImageDecodeError: If the content cannot be decoded
    """
    try:
        image = Image.open(path)
    except UnidentifiedImageError as e:
        raise ImageDecodeError(f"Unsupported image format: {path}") from e
    except OSError as e:
        raise ImageIOError(f"Failed to read image {path}: {e}") from e

    try:
        with image:
            return image.convert("RGB")
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Failed to decode image {path}: {e}") from e


def image_to_tensor(
    path: PathLike, size: Optional[Tuple[int, int]] = None
) -> torch.Tensor:
    """
    Load an image as a normalized channel-first tensor.

    Args:
        path: Image file path
        size: Target (width, height); None keeps the original size

    Returns:
        float32 tensor with shape (3, height, width) and values in [0, 1]
    """
    image = load_image(path)
    if size is not None:
        image = ImageOps.fit(image, size, method=Image.Resampling.BILINEAR)

    data = np.asarray(image, dtype=np.uint8).transpose(2, 0, 1)
    tensor = torch.from_numpy(np.ascontiguousarray(data)).to(torch.float32) / 255.0

    logger.debug(f"Preprocessed {path} to shape {tuple(tensor.shape)}")
    return tensor
