"""Perceptual palette quantization in CIE L*a*b* space.

Palette colors are converted once at load time through the standard chain
sRGB (8-bit) -> linear RGB -> CIE XYZ -> D65-normalised L*a*b*, and sampled
image colors are matched to the entry with the smallest Euclidean L*a*b*
distance.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Mapping, Sequence, Tuple, Union

import numpy as np
from skimage.color import rgb2lab

from .errors import InvalidColorFormat

logger = logging.getLogger(__name__)

HEX_PATTERN = re.compile(r"^#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})$")

# Stone and glass tesserae colors of a classic Roman floor mosaic
CLASSIC_ROMAN_PALETTE = [
    {"hex": "#F2EDE4", "name": "marble white"},
    {"hex": "#F5F5DC", "name": "beige"},
    {"hex": "#D2B48C", "name": "travertine"},
    {"hex": "#C8A165", "name": "ochre"},
    {"hex": "#C65D3B", "name": "terracotta"},
    {"hex": "#8B4513", "name": "sienna brown"},
    {"hex": "#7B1E1E", "name": "oxblood red"},
    {"hex": "#556B2F", "name": "olive green"},
    {"hex": "#2F4F4F", "name": "slate"},
    {"hex": "#1F3A5F", "name": "lapis blue"},
    {"hex": "#8A8A85", "name": "tuff gray"},
    {"hex": "#2B2B2B", "name": "basalt black"},
]

RGB = Tuple[int, int, int]
PaletteItem = Union[Mapping[str, str], Tuple[str, str], "PaletteEntry"]


def parse_hex(hex_color: str) -> RGB:
    """Parse a 6-hex-digit color, with or without a leading '#'.

    Raises:
        InvalidColorFormat: if the string is not a 6-hex-digit color
    """
    match = HEX_PATTERN.fullmatch(hex_color) if isinstance(hex_color, str) else None
    if match is None:
        raise InvalidColorFormat(f"Invalid hex color: {hex_color!r}")
    return tuple(int(group, 16) for group in match.groups())


def rgbs_to_lab(colors: np.ndarray) -> np.ndarray:
    """Convert (N, 3) 8-bit RGB colors to (N, 3) L*a*b* (D65, 2° observer)."""
    colors = np.asarray(colors, dtype=np.float64).reshape(-1, 3)
    if colors.shape[0] == 0:
        return np.zeros((0, 3), dtype=np.float64)
    normalized = np.clip(colors, 0.0, 255.0) / 255.0
    return rgb2lab(normalized[np.newaxis, :, :])[0]


def rgb_to_lab(rgb: Sequence[float]) -> Tuple[float, float, float]:
    """Convert a single 8-bit RGB color to an (L, a, b) tuple."""
    lab = rgbs_to_lab(np.asarray(rgb, dtype=np.float64)[:3])[0]
    return float(lab[0]), float(lab[1]), float(lab[2])


@dataclass(frozen=True)
class PaletteEntry:
    """A named palette color with its cached L*a*b* coordinates."""

    hex: str
    name: str
    lab: Tuple[float, float, float]

    @property
    def rgb(self) -> RGB:
        return parse_hex(self.hex)

    @classmethod
    def from_hex(cls, hex_color: str, name: str) -> "PaletteEntry":
        r, g, b = parse_hex(hex_color)
        return cls(hex=f"#{r:02X}{g:02X}{b:02X}", name=name, lab=rgb_to_lab((r, g, b)))


class Palette:
    """Immutable ordered palette supporting nearest-color lookup."""

    def __init__(self, entries: Iterable[PaletteEntry], dropped: int = 0):
        self._entries: Tuple[PaletteEntry, ...] = tuple(entries)
        self._lab = np.array([entry.lab for entry in self._entries], dtype=np.float64).reshape(-1, 3)
        self._lab.flags.writeable = False
        self.dropped = dropped

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PaletteEntry]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> PaletteEntry:
        return self._entries[index]

    def __repr__(self) -> str:
        return f"Palette({len(self)} entries, dropped={self.dropped})"

    @property
    def entries(self) -> Tuple[PaletteEntry, ...]:
        return self._entries

    @property
    def lab(self) -> np.ndarray:
        """Cached (N, 3) L*a*b* matrix in palette order."""
        return self._lab

    def nearest(self, rgb: Sequence[float]) -> Tuple[int, float]:
        """Index and L*a*b* distance of the entry closest to ``rgb``.

        A plain linear scan; ``np.argmin`` returns the first minimum, so ties
        go to the lowest palette index.
        """
        if not self._entries:
            raise ValueError("Cannot match a color against an empty palette")
        sample = np.asarray(rgb_to_lab(rgb), dtype=np.float64)
        distances = np.sqrt(np.sum((self._lab - sample) ** 2, axis=1))
        index = int(np.argmin(distances))
        return index, float(distances[index])

    def nearest_index(self, rgb: Sequence[float]) -> int:
        """Index of the entry closest to ``rgb`` in L*a*b* space."""
        return self.nearest(rgb)[0]


def _coerce_entry(item: PaletteItem) -> Tuple[str, str]:
    if isinstance(item, PaletteEntry):
        return item.hex, item.name
    if isinstance(item, Mapping):
        return item.get("hex"), item.get("name", "")
    try:
        hex_color, name = item
    except (TypeError, ValueError):
        raise InvalidColorFormat(f"Expected a (hex, name) pair, got {item!r}")
    return hex_color, name


def load_palette(entries: Iterable[PaletteItem]) -> Palette:
    """
    Build a palette from ``{hex, name}`` mappings, ``(hex, name)`` pairs or entries.

    Malformed entries (bad hex string, wrong shape) are logged and skipped,
    so callers can detect a shortened palette by comparing ``len(palette)``
    with the input length (or reading ``palette.dropped``).

    Args:
        entries: Ordered palette definition

    Returns:
        Palette with L*a*b* values computed once per entry
    """
    loaded: List[PaletteEntry] = []
    dropped = 0

    for position, item in enumerate(entries):
        name = None
        try:
            hex_color, name = _coerce_entry(item)
            loaded.append(PaletteEntry.from_hex(hex_color, name))
        except InvalidColorFormat as e:
            dropped += 1
            logger.warning(f"Skipping palette entry {position} ({name!r}): {e}")

    logger.debug(f"Loaded palette with {len(loaded)} entries ({dropped} dropped)")
    return Palette(loaded, dropped=dropped)


def nearest_index(palette: Palette, rgb: Sequence[float]) -> int:
    """Index of the palette entry perceptually closest to ``rgb``."""
    return palette.nearest_index(rgb)
