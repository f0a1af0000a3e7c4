import pytest

from battlefield.config import BattlefieldConfig, Bounds, HexSettings
from battlefield.fog_of_war import AlwaysBlockPolicy, FogOfWar, NeverBlockPolicy
from battlefield.map import (
    GeoPoint, HexCell, HexGrid, HexPosition, HexVisibility,
    TerrainAttributes, terrain_from_str,
)
from battlefield.session import BattlefieldSession
from battlefield.units import CompositionEntry, Force, ForceManager

FACTIONS = ["blue", "red"]

# Centre H_1_1 and the six cells around it in the staggered layout.
# Under hex_distance the four at (1,0) (1,2) (0,2) (2,1) are at 1, the
# other two at 1.5.
CENTER = "H_1_1"
RING = ["H_1_0", "H_1_2", "H_0_2", "H_2_1", "H_0_1", "H_2_2"]
NEAR_RING = ["H_1_0", "H_1_2", "H_0_2", "H_2_1"]


def make_cell(row, col, terrain="plain", height=0.0):
    return HexCell(
        hex_id=f"H_{row}_{col}",
        position=HexPosition(row=row, col=col, points=[GeoPoint(0.0, 0.0, height)] * 7),
        terrain=TerrainAttributes(terrain_type=terrain_from_str(terrain)),
        visibility=HexVisibility(visible_to={f: False for f in FACTIONS}),
    )


def make_force(force_id, faction, hex_id, radius=1, units=(("inf", 1),)):
    return Force(
        force_id=force_id,
        faction=faction,
        hex_id=hex_id,
        visibility_radius=radius,
        composition=[CompositionEntry(u, c) for u, c in units],
    )


@pytest.fixture
def config():
    return BattlefieldConfig(factions=list(FACTIONS))


@pytest.fixture
def small_config():
    """Bounds small enough for a 7 x 2 generated grid."""
    return BattlefieldConfig(
        factions=list(FACTIONS),
        hex=HexSettings(
            radius_m=200,
            bounds=Bounds(min_lon=37.30, max_lon=37.31, min_lat=-3.10, max_lat=-3.09),
        ),
    )


@pytest.fixture
def seven_cell_grid():
    cells = [make_cell(1, 1)]
    for hex_id in RING:
        _, row, col = hex_id.split("_")
        cells.append(make_cell(int(row), int(col)))
    return HexGrid.from_cells(cells)


@pytest.fixture
def open_fog():
    return FogOfWar(FACTIONS, policy=NeverBlockPolicy())


@pytest.fixture
def closed_fog():
    return FogOfWar(FACTIONS, policy=AlwaysBlockPolicy())


@pytest.fixture
def unit_forces():
    manager = ForceManager()
    manager.load_records(
        [
            {"unit_type_id": "inf", "visibility_radius": 1.5},
            {"unit_type_id": "recon", "visibility_radius": 3},
        ],
        [],
    )
    return manager


@pytest.fixture
def make_session(config, seven_cell_grid, unit_forces):
    """Session factory over the seven-cell grid with a deterministic policy."""
    def factory(forces=(), policy=None):
        for force in forces:
            unit_forces.add_force(force)
        return BattlefieldSession.create(
            config, unit_forces, grid=seven_cell_grid, policy=policy or NeverBlockPolicy()
        )
    return factory
