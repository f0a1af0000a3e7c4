"""
Hex grid battlefield model.

Cells are addressed by offset coordinates (row, col) on a flat-top,
row-staggered grid laid over a lat/lon bounding box. Each cell carries
terrain, per-faction visibility flags and a layered visual-style stack.
"""

import math
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Iterator, Optional

from .config import BattlefieldConfig, ElevationBand
from .errors import ScenarioError
from .styles import DEFAULT_STYLES, VisualStyle

logger = logging.getLogger(__name__)

METERS_PER_DEGREE_LAT = 111320
NEUTRAL = "neutral"
FOG_STYLE = "invisible"

HeightSampler = Callable[[float, float], float]  # (lon, lat) -> metres


class TerrainType(Enum):
    PLAIN = "plain"
    HILL = "hill"
    MOUNTAIN = "mountain"
    URBAN = "urban"
    WATER = "water"
    FOREST = "forest"
    DESERT = "desert"
    DEFAULT = "default"


def terrain_from_str(value: str) -> TerrainType:
    try:
        return TerrainType(value)
    except ValueError:
        return TerrainType.DEFAULT


def hex_distance(row1: int, col1: int, row2: int, col2: int) -> float:
    """
    Distance between two offset-coordinate hexes.

    Odd rows are shifted half a column, so the result is a half-step
    float when the rows differ in parity.
    """
    x1 = col1 + (row1 % 2) * 0.5
    x2 = col2 + (row2 % 2) * 0.5
    dx = x2 - x1
    dy = row2 - row1
    return max(abs(dx), abs(dy), abs(dx + dy))


# (row, col) steps to the six touching cells; odd rows sit half a column east
EVEN_ROW_NEIGHBORS = ((-1, -1), (-1, 0), (0, -1), (0, 1), (1, -1), (1, 0))
ODD_ROW_NEIGHBORS = ((-1, 0), (-1, 1), (0, -1), (0, 1), (1, 0), (1, 1))


def neighbor_offsets(row: int) -> tuple[tuple[int, int], ...]:
    return ODD_ROW_NEIGHBORS if row % 2 else EVEN_ROW_NEIGHBORS


def meters_to_degrees_lat(meters: float) -> float:
    return meters / METERS_PER_DEGREE_LAT


def meters_to_degrees_lon(meters: float, lat: float) -> float:
    return meters / (METERS_PER_DEGREE_LAT * math.cos(math.radians(lat)))


@dataclass
class GeoPoint:
    lon: float
    lat: float
    height: float = 0.0


@dataclass
class HexPosition:
    """Grid coordinate plus sampled points: [centre, v0..v5]."""
    row: int
    col: int
    points: list[GeoPoint] = field(default_factory=list)


@dataclass
class TerrainAttributes:
    terrain_type: TerrainType = TerrainType.DEFAULT
    elevation: float = 0.0
    passability: dict[str, bool] = field(
        default_factory=lambda: {"land": True, "naval": False, "air": True}
    )
    composition: dict[str, float] = field(default_factory=dict)


@dataclass
class HexVisibility:
    visible_to: dict[str, bool] = field(default_factory=dict)
    visual_styles: list[VisualStyle] = field(default_factory=list)


@dataclass
class BattlefieldState:
    control_faction: str = NEUTRAL


@dataclass
class HexCell:
    """Individual hex cell in the grid."""
    hex_id: str
    position: HexPosition
    terrain: TerrainAttributes = field(default_factory=TerrainAttributes)
    battlefield: BattlefieldState = field(default_factory=BattlefieldState)
    visibility: HexVisibility = field(default_factory=HexVisibility)
    is_objective: bool = False
    resource: Optional[str] = None

    @property
    def row(self) -> int:
        return self.position.row

    @property
    def col(self) -> int:
        return self.position.col

    @property
    def center(self) -> Optional[GeoPoint]:
        return self.position.points[0] if self.position.points else None

    @property
    def vertices(self) -> list[GeoPoint]:
        return self.position.points[1:]

    @property
    def control_faction(self) -> str:
        return self.battlefield.control_faction

    def is_visible_to(self, faction: str) -> bool:
        return self.visibility.visible_to.get(faction, False)

    # Visual style stack
    def add_visual_style(self, style: Optional[VisualStyle]):
        """Add a style, evicting any entry on the same (layer, priority)."""
        if style is None:
            return
        self.visibility.visual_styles = [
            s for s in self.visibility.visual_styles
            if not (s.layer == style.layer and s.priority == style.priority)
        ]
        self.visibility.visual_styles.append(style)

    def remove_visual_style_by_type(self, style_type: str):
        self.visibility.visual_styles = [
            s for s in self.visibility.visual_styles if s.type != style_type
        ]

    def get_top_visual_style(self, layer: str) -> Optional[VisualStyle]:
        """Highest-priority style on a layer (first stored wins a tie)."""
        top = None
        for style in self.visibility.visual_styles:
            if style.layer == layer and (top is None or style.priority > top.priority):
                top = style
        return top

    # Elevation
    def update_elevation(self, center_weight: float, vertex_weight: float) -> float:
        """
        Smooth elevation from the centre and vertex samples.

        Weights are applied as given (0.4 + 6 * 0.1 by default), not normalised.
        """
        center = self.center
        if center is None:
            return self.terrain.elevation
        vertices_sum = sum(pt.height for pt in self.vertices)
        self.terrain.elevation = center_weight * center.height + vertex_weight * vertices_sum
        return self.terrain.elevation

    def add_visual_style_by_elevation(
        self,
        bands: list[ElevationBand],
        styles: dict[str, VisualStyle],
    ) -> Optional[VisualStyle]:
        """Classify elevation into a band and apply its terrain preset."""
        chosen = None
        for band in bands:
            if band.below is None or self.terrain.elevation < band.below:
                chosen = band
                break
        if chosen is None:
            chosen = bands[-1]

        style = styles[chosen.style]
        self.terrain.terrain_type = terrain_from_str(style.type)
        self.add_visual_style(style)
        return style

    # Plain records
    def to_dict(self) -> dict:
        return {
            "hex_id": self.hex_id,
            "position": {
                "row": self.row,
                "col": self.col,
                "points": [[p.lon, p.lat, p.height] for p in self.position.points],
            },
            "terrain": {
                "terrain_type": self.terrain.terrain_type.value,
                "elevation": self.terrain.elevation,
                "passability": dict(self.terrain.passability),
                "composition": dict(self.terrain.composition),
            },
            "battlefield": {"control_faction": self.battlefield.control_faction},
            "visibility": {
                "visible_to": dict(self.visibility.visible_to),
                "visual_styles": [s.to_dict() for s in self.visibility.visual_styles],
            },
            "is_objective": self.is_objective,
            "resource": self.resource,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HexCell":
        try:
            pos = data["position"]
            terrain = data.get("terrain", {})
            visibility = data.get("visibility", {})
            return cls(
                hex_id=data["hex_id"],
                position=HexPosition(
                    row=int(pos["row"]),
                    col=int(pos["col"]),
                    points=[GeoPoint(*p) for p in pos.get("points", [])],
                ),
                terrain=TerrainAttributes(
                    terrain_type=terrain_from_str(terrain.get("terrain_type", "default")),
                    elevation=float(terrain.get("elevation", 0.0)),
                    passability=terrain.get("passability", {"land": True, "naval": False, "air": True}),
                    composition=terrain.get("composition", {}),
                ),
                battlefield=BattlefieldState(
                    control_faction=data.get("battlefield", {}).get("control_faction", NEUTRAL),
                ),
                visibility=HexVisibility(
                    visible_to=dict(visibility.get("visible_to", {})),
                    visual_styles=[VisualStyle.from_dict(s) for s in visibility.get("visual_styles", [])],
                ),
                is_objective=data.get("is_objective", False),
                resource=data.get("resource"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ScenarioError(f"Malformed hex cell record: {e}") from e


class HexGrid:
    """
    Grid provider: ordered collection of cells keyed by hex id.

    Cells keep their insertion (generation) order.
    """

    def __init__(self, cells: Iterable[HexCell] = (), styles: Optional[dict[str, VisualStyle]] = None):
        self.cells: dict[str, HexCell] = {}
        self._by_position: dict[tuple[int, int], HexCell] = {}
        self.styles = styles if styles is not None else dict(DEFAULT_STYLES)
        for cell in cells:
            self.add_cell(cell)

    @classmethod
    def from_cells(cls, cells: Iterable[HexCell], styles: Optional[dict[str, VisualStyle]] = None) -> "HexGrid":
        return cls(cells, styles)

    @classmethod
    def generate(
        cls,
        config: BattlefieldConfig,
        height_sampler: Optional[HeightSampler] = None,
    ) -> "HexGrid":
        """Generate a flat-top staggered grid covering the configured bounds."""
        bounds = config.hex.bounds
        radius = config.hex.radius_m
        sampler = height_sampler or (lambda lon, lat: 0.0)

        # Columns in a row are 3 radii apart, odd rows shift by 1.5 radii
        dx = meters_to_degrees_lon(2 * radius * 0.75, bounds.mid_lat)
        dy = meters_to_degrees_lat(math.sqrt(3) * radius)

        grid = cls(styles=config.styles)
        row = 0
        while True:
            lat = bounds.min_lat + row * dy * 0.5
            if lat > bounds.max_lat:
                break
            offset = 0.0 if row % 2 == 0 else dx
            col = 0
            while True:
                lon = bounds.min_lon + offset + col * dx * 2
                if lon > bounds.max_lon:
                    break
                points = [GeoPoint(lon, lat, sampler(lon, lat))]
                for i in range(6):
                    angle = math.radians(60 * i)
                    v_lon = lon + meters_to_degrees_lon(radius * math.cos(angle), lat)
                    v_lat = lat + meters_to_degrees_lat(radius * math.sin(angle))
                    points.append(GeoPoint(v_lon, v_lat, sampler(v_lon, v_lat)))

                cell = HexCell(
                    hex_id=f"H_{row}_{col}",
                    position=HexPosition(row=row, col=col, points=points),
                    visibility=HexVisibility(visible_to={f: False for f in config.factions}),
                )
                cell.update_elevation(config.hex.center_weight, config.hex.vertex_weight)
                cell.add_visual_style_by_elevation(config.elevation_bands, config.styles)
                grid.add_cell(cell)
                col += 1
            row += 1

        logger.info(
            f"Generated {len(grid)} hexes over {row} rows "
            f"(radius={radius}m, dx={dx:.6f}deg, dy={dy:.6f}deg)"
        )
        return grid

    def add_cell(self, cell: HexCell):
        if not cell.hex_id:
            raise ScenarioError("Hex cell without an id")
        if cell.hex_id in self.cells:
            raise ScenarioError(f"Duplicate hex id: {cell.hex_id}")
        self.cells[cell.hex_id] = cell
        self._by_position.setdefault((cell.row, cell.col), cell)

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self) -> Iterator[HexCell]:
        return iter(self.cells.values())

    def __contains__(self, hex_id) -> bool:
        return hex_id in self.cells

    def has_cell(self, hex_id: Optional[str]) -> bool:
        return bool(hex_id) and hex_id in self.cells

    def get_cell(self, hex_id: Optional[str]) -> Optional[HexCell]:
        if not hex_id:
            return None
        return self.cells.get(hex_id)

    def get_all_cells(self) -> list[HexCell]:
        return list(self.cells.values())

    def distance(self, hex_id_a: str, hex_id_b: str) -> Optional[float]:
        a = self.get_cell(hex_id_a)
        b = self.get_cell(hex_id_b)
        if not a or not b:
            return None
        return hex_distance(a.row, a.col, b.row, b.col)

    def get_cells_in_range(self, hex_id: str, radius: float) -> list[HexCell]:
        """All cells within `radius` of a centre cell, centre included."""
        center = self.get_cell(hex_id)
        if not center:
            return []
        return [
            cell for cell in self.cells.values()
            if hex_distance(center.row, center.col, cell.row, cell.col) <= radius
        ]

    def get_neighbors(self, hex_id: str) -> list[HexCell]:
        """The up to six cells touching a cell, by row-parity offsets."""
        center = self.get_cell(hex_id)
        if not center:
            return []
        neighbors = []
        for d_row, d_col in neighbor_offsets(center.row):
            cell = self._by_position.get((center.row + d_row, center.col + d_col))
            if cell:
                neighbors.append(cell)
        return neighbors

    def is_adjacent(self, hex_id_a: str, hex_id_b: str) -> bool:
        a = self.get_cell(hex_id_a)
        b = self.get_cell(hex_id_b)
        if not a or not b:
            return False
        return (b.row - a.row, b.col - a.col) in neighbor_offsets(a.row)

    def set_cell_visual_style(self, hex_id: str, viewing_faction: Optional[str]) -> bool:
        """Refresh a cell's fog marker for the faction being rendered."""
        cell = self.get_cell(hex_id)
        if not cell:
            logger.warning(f"Style refresh for unknown hex: {hex_id}")
            return False

        if viewing_faction and not cell.is_visible_to(viewing_faction):
            cell.add_visual_style(self.styles.get(FOG_STYLE))
        else:
            cell.remove_visual_style_by_type(FOG_STYLE)
        return True

    def get_stats(self) -> dict:
        """Get grid statistics."""
        terrain_counts: dict[str, int] = {}
        control_counts: dict[str, int] = {}

        for cell in self.cells.values():
            terrain = cell.terrain.terrain_type.value
            terrain_counts[terrain] = terrain_counts.get(terrain, 0) + 1
            control = cell.battlefield.control_faction
            control_counts[control] = control_counts.get(control, 0) + 1

        return {
            "total_cells": len(self.cells),
            "terrain_distribution": terrain_counts,
            "control_distribution": control_counts,
        }
