"""Command-line interface for MosaicThis."""

import json
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

import click

from .utils.image import load_image, validate_image_dimensions
from .core.palette import CLASSIC_ROMAN_PALETTE
from .core.pipeline import MosaicConfig, MosaicGenerator
from .core.svgout import SVGGenerator
from .core.csv_export import CSVExporter


class ProgressBar:
    """Simple progress bar for CLI operations."""

    def __init__(self, total_steps: int, description: str = "Processing"):
        self.total_steps = total_steps
        self.current_step = 0
        self.description = description
        self.start_time = time.time()

    def update(self, step_name: str) -> None:
        """Update progress bar with current step."""
        self.current_step += 1
        percentage = (self.current_step / self.total_steps) * 100
        elapsed = time.time() - self.start_time

        bar_length = 30
        filled_length = int(bar_length * self.current_step // self.total_steps)
        bar = "█" * filled_length + "░" * (bar_length - filled_length)

        click.echo(
            f"\r{self.description}: [{bar}] {percentage:.1f}% - {step_name}",
            nl=False,
        )

        if self.current_step == self.total_steps:
            click.echo(f" ✓ Complete ({elapsed:.1f}s)")


def read_palette_file(path: Path) -> List[dict]:
    """Read a JSON palette: a list of {"hex": ..., "name": ...} objects."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise click.BadParameter(
            "palette file must contain a JSON list of {\"hex\", \"name\"} objects",
            param_hint="--palette",
        )
    return data


@click.command()
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@click.option("--frame", default=0, help="GIF frame number (default: 0)", type=int)
@click.option(
    "--tiles",
    default=None,
    help="Target tile count; tiles are scattered and relaxed",
    type=click.IntRange(1, 100000),
)
@click.option(
    "--tile-size",
    default=None,
    help="Tile size in pixels for the fixed grid (default: 10)",
    type=click.FloatRange(1.0, 500.0),
)
@click.option(
    "--grout",
    default=1.0,
    help="Grout width between tiles in pixels (default: 1.0)",
    type=click.FloatRange(0.0, 100.0),
)
@click.option(
    "--rotation-variance",
    default=5.0,
    help="Random rotation jitter in degrees (default: 5)",
    type=click.FloatRange(0.0, 180.0),
)
@click.option(
    "--iterations",
    default=5,
    help="Relaxation iterations (default: 5)",
    type=click.IntRange(0, 100),
)
@click.option("--seed", default=None, help="Random seed for reproducible output", type=int)
@click.option("--snap-edges", is_flag=True, help="Snap edge angles to 45° steps")
@click.option(
    "--palette",
    "palette_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON palette file (default: classic Roman)",
)
@click.option("--max-width", default=800, help="Downscale wider images (default: 800)", type=click.IntRange(3, 8192))
@click.option("--max-height", default=600, help="Downscale taller images (default: 600)", type=click.IntRange(3, 8192))
@click.option("--workers", default=None, help="Threads for pixel assignment", type=click.IntRange(1, 64))
@click.option(
    "--csv",
    "csv_output",
    default=None,
    type=click.Path(path_type=Path),
    help="Also write the tile table as CSV",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option(
    "-o",
    "--output",
    required=True,
    type=click.Path(path_type=Path),
    help="Output SVG file path",
)
def main(
    input_file: Path,
    output: Path,
    frame: int,
    tiles: Optional[int],
    tile_size: Optional[float],
    grout: float,
    rotation_variance: float,
    iterations: int,
    seed: Optional[int],
    snap_edges: bool,
    palette_file: Optional[Path],
    max_width: int,
    max_height: int,
    workers: Optional[int],
    csv_output: Optional[Path],
    verbose: bool,
) -> None:
    """Convert an image into an edge-aligned tile mosaic.

    Examples:
        mosaicify photo.jpg -o mosaic.svg
        mosaicify photo.jpg --tiles 800 --grout 0.5 -o mosaic.svg --csv tiles.csv
        mosaicify photo.png --tile-size 12 --snap-edges --seed 7 -o mosaic.svg
    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format='%(levelname)s: %(message)s',
    )

    click.echo("🧱 MosaicThis v0.1.0 - Image to Tile Mosaic Converter")
    click.echo()

    if tiles is not None and tile_size is not None:
        click.echo("❌ Error: use either --tiles or --tile-size, not both", err=True)
        sys.exit(2)

    if output.exists():
        if not click.confirm(f"Output file {output} exists. Overwrite?"):
            click.echo("Aborted.")
            return

    total_steps = 4 if csv_output is None else 5
    progress = ProgressBar(total_steps, "Converting")

    try:
        progress.update("Loading image")
        image, (height, width) = load_image(input_file, frame, max_size=(max_width, max_height))
        validate_image_dimensions(image)

        if verbose:
            click.echo(f"\nImage dimensions: {width}x{height}")

        palette = read_palette_file(palette_file) if palette_file else list(CLASSIC_ROMAN_PALETTE)

        progress.update("Generating tiles")
        config = MosaicConfig(
            num_tiles=tiles,
            tile_size=tile_size,
            grout_width=grout,
            rotation_variance=rotation_variance,
            palette=palette,
            iterations=iterations,
            seed=seed,
            snap_to_edges=snap_edges,
            max_workers=workers,
        )
        generator = MosaicGenerator(config)
        if generator.palette.dropped:
            click.echo(
                f"\n⚠️  Skipped {generator.palette.dropped} palette entries with invalid colors",
                err=True,
            )
        result = generator.generate(image)

        progress.update("Generating SVG")
        svg = SVGGenerator(width, height)
        svg_content = svg.generate_svg(result.tiles, title=input_file.stem)

        progress.update("Saving SVG")
        svg.save_svg(svg_content, output)

        if csv_output is not None:
            progress.update("Saving CSV")
            CSVExporter().save_csv(result.tiles, csv_output)

        colors_used = len({tile.color_hex for tile in result.tiles})
        click.echo(f"\n✅ Successfully created {output}")
        click.echo("📊 Final statistics:")
        click.echo(f"   Tiles: {len(result.tiles)}")
        click.echo(f"   Tile size: {result.tile_size:.2f}px")
        click.echo(f"   Colors used: {colors_used}/{len(result.palette)}")
        click.echo(
            f"   Relaxation: {result.relaxation.iterations_completed}/"
            f"{result.relaxation.iterations_requested} iterations"
        )

        if verbose:
            click.echo(generator.profiler.format_summary("Stage timings"))

    except Exception as e:
        click.echo(f"\n❌ Error: {e}", err=True)
        if verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
