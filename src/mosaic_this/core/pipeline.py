"""End-to-end mosaic generation: pixels -> gradient field -> relaxed sites -> tiles."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from .errors import DegenerateImage
from .gradient_field import GradientField, GradientFieldExtractor
from .palette import CLASSIC_ROMAN_PALETTE, Palette, load_palette
from .relaxation import AnisotropicRelaxer, RelaxationConfig, RelaxationReport
from .sites import Site, seed_grid_sites, seed_random_sites, tile_size_for_count
from .synthesis import Tile, TileSynthesizer
from ..utils.profiler import PerformanceProfiler

logger = logging.getLogger(__name__)

DEFAULT_TILE_SIZE = 10.0


@dataclass
class MosaicConfig:
    """Configuration bundle for one mosaic generation call.

    Exactly one of ``num_tiles`` and ``tile_size`` drives tile granularity:
    ``num_tiles`` scatters that many sites at random and derives the tile size
    from the image area, ``tile_size`` lays sites on a fixed grid. With
    neither, ``tile_size`` defaults to 10 pixels.
    """

    num_tiles: Optional[int] = None
    tile_size: Optional[float] = None
    grout_width: float = 1.0
    rotation_variance: float = 5.0
    palette: Sequence[Any] = field(default_factory=lambda: list(CLASSIC_ROMAN_PALETTE))
    iterations: int = 5
    seed: Optional[int] = None
    snap_to_edges: bool = False
    max_workers: Optional[int] = None
    search_radius: Optional[float] = None
    deadline_seconds: Optional[float] = None

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.num_tiles is not None and self.tile_size is not None:
            raise ValueError("Specify either num_tiles or tile_size, not both")
        if self.num_tiles is None and self.tile_size is None:
            self.tile_size = DEFAULT_TILE_SIZE
        if self.num_tiles is not None and self.num_tiles < 1:
            raise ValueError(f"num_tiles must be at least 1, got {self.num_tiles}")
        if self.tile_size is not None and self.tile_size <= 0:
            raise ValueError(f"tile_size must be positive, got {self.tile_size}")
        if self.grout_width < 0:
            raise ValueError(f"grout_width must be non-negative, got {self.grout_width}")
        if self.rotation_variance < 0:
            raise ValueError(f"rotation_variance must be non-negative, got {self.rotation_variance}")

    def relaxation_config(self) -> RelaxationConfig:
        return RelaxationConfig(
            iterations=self.iterations,
            max_workers=self.max_workers,
            search_radius=self.search_radius,
            deadline_seconds=self.deadline_seconds,
        )


@dataclass
class MosaicResult:
    """Tiles plus the intermediate facts a caller may want to report."""

    tiles: List[Tile]
    width: int
    height: int
    tile_size: float
    palette: Palette
    relaxation: RelaxationReport
    field_max_magnitude: float

    @property
    def degraded(self) -> bool:
        """True when relaxation ran fewer iterations than requested."""
        return self.relaxation.stopped_early


def as_pixel_buffer(image: np.ndarray) -> np.ndarray:
    """
    Normalize an image array to a read-only (H, W, 4) uint8 RGBA buffer.

    Accepts grayscale (H, W), RGB (H, W, 3) or RGBA (H, W, 4) arrays, either
    uint8 or float in [0, 1]. The caller's array is never modified.
    """
    array = np.asarray(image)
    if array.ndim == 2:
        array = array[:, :, np.newaxis].repeat(3, axis=2)
    if array.ndim != 3 or array.shape[2] not in (3, 4):
        raise ValueError(f"Expected (H, W), (H, W, 3) or (H, W, 4) image, got shape {array.shape}")

    if array.dtype != np.uint8:
        if np.issubdtype(array.dtype, np.floating):
            array = np.round(np.clip(array, 0.0, 1.0) * 255.0)
        array = np.clip(array, 0, 255).astype(np.uint8)

    if array.shape[2] == 3:
        alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
        array = np.concatenate([array, alpha], axis=2)

    buffer = array.view()
    buffer.flags.writeable = False
    return buffer


class MosaicGenerator:
    """Run the forward mosaic pipeline for one configuration."""

    def __init__(self, config: Optional[MosaicConfig] = None,
                 profiler: Optional[PerformanceProfiler] = None):
        self.config = config or MosaicConfig()
        self.profiler = profiler if profiler is not None else PerformanceProfiler()
        self.palette = load_palette(self.config.palette)
        if len(self.palette) == 0:
            raise ValueError("Palette has no valid entries")
        self.extractor = GradientFieldExtractor()
        self.relaxer = AnisotropicRelaxer(self.config.relaxation_config())

    def generate(self, image: np.ndarray,
                 should_stop: Optional[Callable[[], bool]] = None) -> MosaicResult:
        """
        Generate tiles approximating ``image``.

        Args:
            image: Pixel buffer or any array accepted by ``as_pixel_buffer``
            should_stop: Optional cancellation callable polled between
                relaxation iterations

        Returns:
            MosaicResult whose tile count equals the number of seeded sites

        Raises:
            DegenerateImage: if the image has zero width or height
        """
        pixels = as_pixel_buffer(image)
        height, width = pixels.shape[:2]
        if width == 0 or height == 0:
            raise DegenerateImage(f"Image has no area: {width}×{height}")

        rng = np.random.default_rng(self.config.seed)
        logger.info(f"Generating mosaic for {width}×{height} image")

        gradient_field = self.profiler.measure("gradient_field", self.extractor.extract, pixels)
        tile_size, sites = self.profiler.measure("site_seeding", self._seed_sites, width, height, rng)
        report = self.profiler.measure("relaxation", self._relax, sites, gradient_field,
                                       width, height, should_stop)
        if report.stopped_early:
            logger.warning(
                f"Using sites from {report.iterations_completed} of "
                f"{report.iterations_requested} relaxation iterations ({report.stop_reason})"
            )
        tiles = self.profiler.measure("tile_synthesis", self._synthesize,
                                      report.sites, pixels, tile_size, rng)

        return MosaicResult(
            tiles=tiles,
            width=width,
            height=height,
            tile_size=tile_size,
            palette=self.palette,
            relaxation=report,
            field_max_magnitude=gradient_field.max_magnitude(),
        )

    def _seed_sites(self, width: int, height: int, rng: np.random.Generator):
        if self.config.num_tiles is not None:
            tile_size = tile_size_for_count(width, height, self.config.num_tiles)
            sites = seed_random_sites(self.config.num_tiles, width, height, rng)
        else:
            tile_size = float(self.config.tile_size)
            sites = seed_grid_sites(width, height, tile_size, rng)
        logger.info(f"Seeded {len(sites)} sites, tile size {tile_size:.2f}px")
        return tile_size, sites

    def _relax(self, sites: List[Site], gradient_field: GradientField, width: int, height: int,
               should_stop: Optional[Callable[[], bool]]) -> RelaxationReport:
        return self.relaxer.run(sites, gradient_field, width, height, should_stop=should_stop)

    def _synthesize(self, sites: List[Site], pixels: np.ndarray, tile_size: float,
                    rng: np.random.Generator) -> List[Tile]:
        synthesizer = TileSynthesizer(
            self.palette,
            tile_size,
            grout_width=self.config.grout_width,
            rotation_variance=self.config.rotation_variance,
            snap_to_edges=self.config.snap_to_edges,
            rng=rng,
        )
        return synthesizer.synthesize(sites, pixels)


def generate_mosaic(image: np.ndarray, config: Optional[MosaicConfig] = None,
                    **overrides) -> MosaicResult:
    """
    Convenience function to generate a mosaic in one call.

    Args:
        image: Input image array
        config: Base configuration; keyword overrides build one when omitted
        **overrides: MosaicConfig fields, e.g. ``num_tiles=400, seed=7``

    Returns:
        MosaicResult
    """
    if config is None:
        config = MosaicConfig(**overrides)
    elif overrides:
        values: Dict[str, Any] = dict(config.__dict__)
        values.update(overrides)
        if "num_tiles" in overrides and "tile_size" not in overrides:
            values["tile_size"] = None
        if "tile_size" in overrides and "num_tiles" not in overrides:
            values["num_tiles"] = None
        config = MosaicConfig(**values)
    return MosaicGenerator(config).generate(image)
