"""MosaicThis - Convert images into edge-aligned tile mosaics."""

__version__ = "0.1.0"
__author__ = "MosaicThis Team"
__description__ = "Convert images into edge-aligned, palette-quantized tile mosaics"

from .core.errors import DegenerateImage, InvalidColorFormat
from .core.gradient_field import GradientField, extract_gradient_field
from .core.palette import Palette, PaletteEntry, load_palette, nearest_index
from .core.relaxation import AnisotropicRelaxer, RelaxationConfig, relax
from .core.sites import Site
from .core.synthesis import Tile, align_tile_to_edge, synthesize
from .core.pipeline import MosaicConfig, MosaicGenerator, MosaicResult, generate_mosaic
from .core.csv_export import CSVExporter
from .core.svgout import SVGGenerator
from .utils.image import load_image

__all__ = [
    "DegenerateImage",
    "InvalidColorFormat",
    "GradientField",
    "extract_gradient_field",
    "Palette",
    "PaletteEntry",
    "load_palette",
    "nearest_index",
    "AnisotropicRelaxer",
    "RelaxationConfig",
    "relax",
    "Site",
    "Tile",
    "align_tile_to_edge",
    "synthesize",
    "MosaicConfig",
    "MosaicGenerator",
    "MosaicResult",
    "generate_mosaic",
    "CSVExporter",
    "SVGGenerator",
    "load_image",
]
