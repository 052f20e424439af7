"""SVG generation with tiles grouped by color."""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from xml.sax.saxutils import escape, quoteattr

from .synthesis import Tile

logger = logging.getLogger(__name__)


class SVGGenerator:
    """Generate an SVG document of rotated rectangles, one group per tile color."""

    def __init__(self, width: int, height: int, precision: int = 3, background: Optional[str] = None):
        self.width = width
        self.height = height
        self.precision = precision
        self.background = background

    def generate_svg(self, tiles: Sequence[Tile], title: Optional[str] = None) -> str:
        """Generate complete SVG for a tile list."""
        if not tiles:
            logger.warning("No tiles provided for SVG generation")
            return self._generate_empty_svg()

        groups = self.group_by_color(tiles)
        logger.info(f"Generating SVG with {len(tiles)} tiles in {len(groups)} color groups, "
                    f"size={self.width}×{self.height}")

        header = self._generate_header(title)
        defs = self._generate_defs(groups)
        background = self._generate_background()
        body = self._generate_color_groups(groups)
        footer = self._generate_footer()

        parts = [header, defs]
        if background:
            parts.append(background)
        parts.extend([body, footer])
        svg_content = "\n".join(parts)

        if not self._validate_svg_structure(svg_content):
            logger.error("Generated SVG failed basic validation")
            raise ValueError("Invalid SVG structure generated")

        return svg_content

    @staticmethod
    def group_by_color(tiles: Sequence[Tile]) -> Dict[str, List[Tile]]:
        """Group tiles by identical color_hex, groups in first-seen order."""
        groups: Dict[str, List[Tile]] = {}
        for tile in tiles:
            groups.setdefault(tile.color_hex, []).append(tile)
        return groups

    def _generate_header(self, title: Optional[str] = None) -> str:
        """Generate SVG header with proper viewBox and namespace."""
        title_elem = f'\n    <title>{escape(title)}</title>' if title else ''

        return f'''<?xml version="1.0" encoding="UTF-8"?>
<svg width="{self.width}" height="{self.height}" viewBox="0 0 {self.width} {self.height}"
     xmlns="http://www.w3.org/2000/svg"
     class="mosaic-svg">{title_elem}'''

    def _generate_defs(self, groups: Dict[str, List[Tile]]) -> str:
        """Generate one CSS fill class per color group."""
        rules = "\n".join(
            f"        .tile-{idx} {{ fill: {color}; }}"
            for idx, color in enumerate(groups)
        )
        return f"    <defs>\n    <style><![CDATA[\n{rules}\n    ]]></style>\n    </defs>"

    def _generate_background(self) -> str:
        if not self.background:
            return ""
        return (f'    <rect x="0" y="0" width="{self.width}" height="{self.height}" '
                f'fill={quoteattr(self.background)} class="grout"/>')

    def _generate_color_groups(self, groups: Dict[str, List[Tile]]) -> str:
        """Generate one <g> per color with its tiles."""
        group_elements = []

        for idx, (color, group_tiles) in enumerate(groups.items()):
            name = group_tiles[0].color_name or "unknown"
            group_header = (f'    <g id="color-group-{idx}" data-color={quoteattr(color)} '
                            f'data-color-name={quoteattr(name)}>')
            rects = [f"        {self._generate_tile_element(tile, idx)}" for tile in group_tiles]
            group_elements.append(f"{group_header}\n" + "\n".join(rects) + "\n    </g>")

        return "\n".join(group_elements)

    def _generate_tile_element(self, tile: Tile, group_idx: int) -> str:
        """Generate a rect rotated about the tile's own center."""
        x = self._format_number(tile.x)
        y = self._format_number(tile.y)
        width = self._format_number(tile.width)
        height = self._format_number(tile.height)
        center_x, center_y = tile.center
        cx = self._format_number(center_x)
        cy = self._format_number(center_y)
        rotation = self._format_number(tile.rotation_degrees)

        return (f'<rect x="{x}" y="{y}" width="{width}" height="{height}" '
                f'class="tile-{group_idx}" data-tile-id="{tile.tile_id}" '
                f'transform="rotate({rotation} {cx} {cy})"/>')

    def _generate_footer(self) -> str:
        """Generate SVG footer."""
        return "</svg>"

    def _generate_empty_svg(self) -> str:
        """Generate empty SVG when no tiles are provided."""
        return f'''<?xml version="1.0" encoding="UTF-8"?>
<svg width="{self.width}" height="{self.height}" viewBox="0 0 {self.width} {self.height}"
     xmlns="http://www.w3.org/2000/svg">
    <text x="{self.width//2}" y="{self.height//2}"
          text-anchor="middle" dominant-baseline="middle"
          fill="#999" font-family="sans-serif" font-size="24">
        No tiles to display
    </text>
</svg>'''

    def _format_number(self, num: float) -> str:
        """Format number with specified precision."""
        return f"{num:.{self.precision}f}"

    def _validate_svg_structure(self, svg_content: str) -> bool:
        """Perform basic validation of SVG structure."""
        required_elements = [
            '<?xml version="1.0"',
            '<svg',
            'viewBox=',
            'xmlns="http://www.w3.org/2000/svg"',
            '</svg>'
        ]

        for element in required_elements:
            if element not in svg_content:
                logger.error(f"Missing required SVG element: {element}")
                return False

        group_open = svg_content.count('<g ')
        group_close = svg_content.count('</g>')
        if group_open != group_close:
            logger.error(f"Unbalanced group tags: {group_open} open, {group_close} close")
            return False

        return True

    def save_svg(self, svg_content: str, output_path: Path) -> None:
        """Save SVG content to file."""
        output_path = Path(output_path)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)

            with open(output_path, "w", encoding="utf-8") as f:
                f.write(svg_content)

            logger.info(f"SVG saved successfully to {output_path}")

        except OSError as e:
            logger.error(f"Failed to save SVG to {output_path}: {e}")
            raise

    def get_svg_info(self, tiles: Sequence[Tile]) -> Dict[str, int]:
        """Get information about the SVG that would be generated."""
        return {
            'width': self.width,
            'height': self.height,
            'precision': self.precision,
            'color_groups': len(self.group_by_color(tiles)),
            'total_tiles': len(tiles),
        }
