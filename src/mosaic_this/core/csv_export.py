"""Flat CSV serialization of tile lists."""

import csv
import io
import logging
from pathlib import Path
from typing import Sequence

from .synthesis import TILE_FIELDS, Tile

logger = logging.getLogger(__name__)


class CSVExporter:
    """Write tiles as a comma-delimited table with a fixed column order."""

    def __init__(self, precision: int = 3):
        self.precision = precision

    def _format_number(self, num: float) -> str:
        """Format number with specified precision."""
        return f"{num:.{self.precision}f}"

    def _row(self, tile: Tile) -> list:
        return [
            tile.tile_id,
            self._format_number(tile.x),
            self._format_number(tile.y),
            self._format_number(tile.width),
            self._format_number(tile.height),
            tile.color_hex,
            tile.color_name,
            self._format_number(tile.rotation_degrees),
        ]

    def to_csv(self, tiles: Sequence[Tile]) -> str:
        """Render tiles as CSV text, header first, one row per tile."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(TILE_FIELDS)
        for tile in tiles:
            writer.writerow(self._row(tile))
        return buffer.getvalue()

    def save_csv(self, tiles: Sequence[Tile], output_path: Path) -> None:
        """Write the CSV table to ``output_path``."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8", newline="") as f:
            f.write(self.to_csv(tiles))
        logger.info(f"CSV with {len(tiles)} tiles saved to {output_path}")


def export_to_csv(tiles: Sequence[Tile], precision: int = 3) -> str:
    """Convenience function to render tiles as CSV text."""
    return CSVExporter(precision=precision).to_csv(tiles)
