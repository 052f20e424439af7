"""Image loading and validation utilities."""

from PIL import Image, ImageOps
import numpy as np
from pathlib import Path
from typing import Optional, Tuple
import logging

from ..core.errors import DegenerateImage

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = (800, 600)


class ImageLoader:
    """Decode an image file into a bounded RGBA pixel buffer."""

    SUPPORTED_FORMATS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}

    def __init__(self, path: Path, frame: int = 0,
                 max_size: Optional[Tuple[int, int]] = DEFAULT_MAX_SIZE):
        self.path = Path(path)
        self.frame = frame
        self.max_size = max_size
        self._validate_format()
        self._validate_frame_number()
        self._validate_max_size()

    def _validate_format(self) -> None:
        """Validate image format is supported."""
        if not self.path.exists():
            raise FileNotFoundError(f"Image file not found: {self.path}")

        if not self.path.is_file():
            raise ValueError(f"Path is not a file: {self.path}")

        suffix = self.path.suffix.lower()
        if suffix not in self.SUPPORTED_FORMATS:
            supported = ", ".join(sorted(self.SUPPORTED_FORMATS))
            raise ValueError(
                f"Unsupported format '{suffix}'. Supported formats: {supported}"
            )

    def _validate_frame_number(self) -> None:
        """Validate frame number is non-negative."""
        if self.frame < 0:
            raise ValueError(f"Frame number must be non-negative, got {self.frame}")

    def _validate_max_size(self) -> None:
        if self.max_size is not None and min(self.max_size) < 1:
            raise ValueError(f"max_size must be positive, got {self.max_size}")

    def load(self) -> np.ndarray:
        """Load image as an RGBA uint8 numpy array (H, W, 4)."""
        try:
            with Image.open(self.path) as img:
                logger.debug(f"Loaded image: {img.format} {img.mode} {img.size}")
                img.verify()

            # verify() leaves the image unusable, reopen for decoding
            with Image.open(self.path) as img:
                if img.format == "GIF" and getattr(img, "is_animated", False):
                    return self._extract_gif_frame(img)
                return self._process_static_image(img)

        except ValueError:
            raise
        except OSError as e:
            raise RuntimeError(f"Failed to load image {self.path}: {e}")

    def _extract_gif_frame(self, img: Image.Image) -> np.ndarray:
        """Extract specific frame from animated GIF."""
        total_frames = getattr(img, "n_frames", 1)

        if self.frame >= total_frames:
            raise ValueError(
                f"Frame {self.frame} not available. GIF has {total_frames} frames (0-{total_frames-1})"
            )

        try:
            img.seek(self.frame)
            logger.debug(f"Extracted frame {self.frame} from GIF")
            return self._process_static_image(img)
        except EOFError:
            raise ValueError(f"Cannot seek to frame {self.frame} in GIF")

    def _process_static_image(self, img: Image.Image) -> np.ndarray:
        """Convert a PIL image to a bounded RGBA numpy array."""
        img = ImageOps.exif_transpose(img)

        if img.mode != "RGBA":
            original_mode = img.mode
            img = img.convert("RGBA")
            logger.debug(f"Converted image from {original_mode} to RGBA")

        if self.max_size is not None and (img.width > self.max_size[0] or img.height > self.max_size[1]):
            original_size = img.size
            img = img.copy()
            img.thumbnail(self.max_size, Image.Resampling.LANCZOS)
            logger.info(f"Downscaled image from {original_size[0]}×{original_size[1]} "
                        f"to {img.width}×{img.height}")

        array = np.array(img)

        if array.ndim != 3 or array.shape[2] != 4:
            raise RuntimeError(f"Expected RGBA array, got shape {array.shape}")

        logger.debug(f"Converted to numpy array: {array.shape}")
        return array


def load_image(path: Path, frame: int = 0,
               max_size: Optional[Tuple[int, int]] = DEFAULT_MAX_SIZE) -> Tuple[np.ndarray, Tuple[int, int]]:
    """Convenience function to load image and return array + (height, width)."""
    loader = ImageLoader(path, frame, max_size=max_size)
    array = loader.load()
    return array, array.shape[:2]


def validate_image_dimensions(image: np.ndarray) -> None:
    """Validate a pixel buffer can be turned into a mosaic."""
    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise ValueError(f"Expected RGB or RGBA image, got shape {image.shape}")

    height, width = image.shape[:2]
    if width == 0 or height == 0:
        raise DegenerateImage(f"Image has no area: {width}×{height}")

    logger.debug(f"Image dimensions validated: {width}×{height} ({width * height:,} pixels)")
