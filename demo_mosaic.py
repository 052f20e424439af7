#!/usr/bin/env python3
"""Demonstration of the mosaic pipeline, stage by stage and end to end."""

from pathlib import Path

import numpy as np
from mosaic_this.core.gradient_field import extract_gradient_field
from mosaic_this.core.palette import CLASSIC_ROMAN_PALETTE, load_palette
from mosaic_this.core.sites import seed_grid_sites
from mosaic_this.core.relaxation import AnisotropicRelaxer, RelaxationConfig
from mosaic_this.core.synthesis import synthesize
from mosaic_this.core.pipeline import MosaicConfig, MosaicGenerator, as_pixel_buffer
from mosaic_this.core.svgout import SVGGenerator
from mosaic_this.core.csv_export import CSVExporter

OUTPUT_DIR = Path("demo_output")


def create_test_image():
    """Create a synthetic test image with straight and curved edges."""
    image = np.full((120, 160, 3), [210, 190, 150], dtype=np.uint8)

    # Diagonal band
    y, x = np.ogrid[:120, :160]
    band = np.abs(x - y - 20) < 12
    image[band] = [198, 93, 59]

    # Disc
    mask = (x - 110)**2 + (y - 70)**2 < 30**2
    image[mask] = [31, 58, 95]

    # Horizontal stripe
    image[95:105, :60] = [85, 107, 47]

    return image


def demo_stages():
    """Run each stage by hand and report what it produced."""
    print("=== Stage-by-Stage Demo ===")

    pixels = as_pixel_buffer(create_test_image())
    height, width = pixels.shape[:2]
    rng = np.random.default_rng(7)

    field = extract_gradient_field(pixels)
    edges = field.edge_mask()
    print(f"Gradient field: max magnitude {field.max_magnitude():.1f}, "
          f"{int(edges.sum())} strong-edge pixels")

    sites = seed_grid_sites(width, height, 10.0, rng)
    print(f"Seeded {len(sites)} sites on a jittered grid")

    report = AnisotropicRelaxer(RelaxationConfig(iterations=5)).run(sites, field, width, height)
    moved = np.mean([np.hypot(a.x - b.x, a.y - b.y) for a, b in zip(sites, report.sites)])
    print(f"Relaxation: {report.iterations_completed} iterations, mean displacement {moved:.2f}px, "
          f"empty cells per iteration {report.empty_cells}")

    palette = load_palette(CLASSIC_ROMAN_PALETTE)
    tiles = synthesize(report.sites, pixels, palette, tile_size=10.0, grout_width=1.0,
                       rotation_variance=5.0, rng=rng)
    counts = {}
    for tile in tiles:
        counts[tile.color_name] = counts.get(tile.color_name, 0) + 1
    print(f"Synthesized {len(tiles)} tiles")
    for name, count in sorted(counts.items(), key=lambda item: -item[1]):
        print(f"  {name}: {count}")


def demo_end_to_end():
    """Generate a mosaic in one call and write SVG and CSV outputs."""
    print("\n=== End-to-End Demo ===")

    OUTPUT_DIR.mkdir(exist_ok=True)
    image = create_test_image()
    height, width = image.shape[:2]

    for label, options in [
        ("grid", {"tile_size": 8.0}),
        ("scattered", {"num_tiles": 300}),
        ("snapped", {"tile_size": 8.0, "snap_to_edges": True, "rotation_variance": 0.0}),
    ]:
        generator = MosaicGenerator(MosaicConfig(seed=7, **options))
        result = generator.generate(image)

        svg = SVGGenerator(width, height, background="#5A5A55")
        svg_path = OUTPUT_DIR / f"mosaic_{label}.svg"
        svg.save_svg(svg.generate_svg(result.tiles, title=f"Mosaic ({label})"), svg_path)
        CSVExporter().save_csv(result.tiles, OUTPUT_DIR / f"mosaic_{label}.csv")

        info = svg.get_svg_info(result.tiles)
        print(f"{label}: {info['total_tiles']} tiles, {info['color_groups']} colors, "
              f"tile size {result.tile_size:.2f}px -> {svg_path}")
        print(generator.profiler.format_summary(f"{label} timings"))


if __name__ == "__main__":
    print("🧱 MosaicThis Pipeline Demonstration")
    print("=" * 50)

    demo_stages()
    demo_end_to_end()
