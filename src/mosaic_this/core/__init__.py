"""Core processing modules for MosaicThis."""

from .errors import DegenerateImage, InvalidColorFormat
from .gradient_field import GradientField, GradientFieldExtractor, extract_gradient_field
from .palette import CLASSIC_ROMAN_PALETTE, Palette, PaletteEntry, load_palette, nearest_index
from .sites import Site, seed_grid_sites, seed_random_sites, tile_size_for_count
from .relaxation import AnisotropicRelaxer, RelaxationConfig, RelaxationReport, relax
from .synthesis import Tile, TileSynthesizer, align_tile_to_edge, synthesize
from .pipeline import MosaicConfig, MosaicGenerator, MosaicResult, generate_mosaic
from .csv_export import CSVExporter, export_to_csv
from .svgout import SVGGenerator

__all__ = [
    "DegenerateImage",
    "InvalidColorFormat",
    "GradientField",
    "GradientFieldExtractor",
    "extract_gradient_field",
    "CLASSIC_ROMAN_PALETTE",
    "Palette",
    "PaletteEntry",
    "load_palette",
    "nearest_index",
    "Site",
    "seed_grid_sites",
    "seed_random_sites",
    "tile_size_for_count",
    "AnisotropicRelaxer",
    "RelaxationConfig",
    "RelaxationReport",
    "relax",
    "Tile",
    "TileSynthesizer",
    "align_tile_to_edge",
    "synthesize",
    "MosaicConfig",
    "MosaicGenerator",
    "MosaicResult",
    "generate_mosaic",
    "CSVExporter",
    "export_to_csv",
    "SVGGenerator",
]
