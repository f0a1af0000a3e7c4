"""
Hex battlefield core: map, occupancy, control and fog of war.

Core modules:
- config: YAML-backed battlefield settings
- map: Hex cells, grid generation and hex distance
- styles: Visual style presets for the renderer
- units: Force records and the force provider
- hex_force_index: Hex <-> force occupancy and control derivation
- fog_of_war: Line of sight and per-faction visibility
- session: Triggers, observers and queries over one battlefield
- persistence: JSON snapshots
"""

from .errors import BattlefieldError, ConfigError, ScenarioError
from .config import BattlefieldConfig, ElevationBand, load_config
from .styles import VisualStyle, DEFAULT_STYLES, CONTESTED
from .map import HexGrid, HexCell, TerrainType, NEUTRAL, hex_distance
from .units import ForceManager, Force, UnitType, CompositionEntry
from .hex_force_index import HexForceIndex
from .fog_of_war import (
    FogOfWar, BlockingPolicy, RandomBlockingPolicy,
    AlwaysBlockPolicy, NeverBlockPolicy,
)
from .session import BattlefieldSession
from .persistence import save_snapshot, load_snapshot

__all__ = [
    # Errors
    "BattlefieldError", "ConfigError", "ScenarioError",
    # Config
    "BattlefieldConfig", "ElevationBand", "load_config",
    # Map
    "HexGrid", "HexCell", "TerrainType", "NEUTRAL", "hex_distance",
    "VisualStyle", "DEFAULT_STYLES", "CONTESTED",
    # Forces
    "ForceManager", "Force", "UnitType", "CompositionEntry", "HexForceIndex",
    # Fog of War
    "FogOfWar", "BlockingPolicy", "RandomBlockingPolicy",
    "AlwaysBlockPolicy", "NeverBlockPolicy",
    # Session
    "BattlefieldSession", "save_snapshot", "load_snapshot",
]
