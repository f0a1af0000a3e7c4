"""
Battlefield configuration.

Loaded from <data_path>/schema/battlefield.yaml. Anything missing from the
file falls back to the built-in defaults below (Kilimanjaro test box,
200 m hexes, two factions).
"""

import logging
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import ConfigError
from .styles import VisualStyle, merge_styles

logger = logging.getLogger(__name__)

LOS_POLICIES = ("random", "always", "never")


@dataclass
class Bounds:
    """Battlefield bounding box in degrees."""
    min_lon: float = 37.2506
    max_lon: float = 37.4506
    min_lat: float = -3.1769
    max_lat: float = -2.9769

    @property
    def mid_lat(self) -> float:
        return (self.min_lat + self.max_lat) / 2


@dataclass
class HexSettings:
    radius_m: float = 200.0  # centre to vertex
    bounds: Bounds = field(default_factory=Bounds)
    center_weight: float = 0.4
    vertex_weight: float = 0.1


@dataclass
class ElevationBand:
    """Cells below `below` metres get preset `style`; None catches the rest."""
    style: str
    below: Optional[float] = None


@dataclass
class LineOfSightSettings:
    policy: str = "random"
    blocking_terrain: list[str] = field(default_factory=lambda: ["mountain"])
    block_probability: float = 0.5
    seed: Optional[int] = None


def _default_bands() -> list[ElevationBand]:
    return [
        ElevationBand(style="plain", below=100),
        ElevationBand(style="hill", below=200),
        ElevationBand(style="mountain"),
    ]


@dataclass
class BattlefieldConfig:
    factions: list[str] = field(default_factory=lambda: ["blue", "red"])
    hex: HexSettings = field(default_factory=HexSettings)
    elevation_bands: list[ElevationBand] = field(default_factory=_default_bands)
    line_of_sight: LineOfSightSettings = field(default_factory=LineOfSightSettings)
    styles: dict[str, VisualStyle] = field(default_factory=lambda: merge_styles({}))

    @classmethod
    def from_dict(cls, data: dict) -> "BattlefieldConfig":
        """Build config from a parsed YAML mapping, validating shape."""
        try:
            return cls._from_dict(data or {})
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigError(f"Malformed battlefield config: {e}") from e

    @classmethod
    def _from_dict(cls, data: dict) -> "BattlefieldConfig":
        config = cls()

        if "factions" in data:
            factions = data["factions"]
            if not isinstance(factions, list) or not factions:
                raise ConfigError("factions must be a non-empty list")
            config.factions = [str(f) for f in factions]

        hex_data = data.get("hex", {}) or {}
        bounds = hex_data.get("bounds", {}) or {}
        weights = hex_data.get("height_sampling_weights", {}) or {}
        config.hex = HexSettings(
            radius_m=float(hex_data.get("radius_m", config.hex.radius_m)),
            bounds=Bounds(
                min_lon=float(bounds.get("min_lon", config.hex.bounds.min_lon)),
                max_lon=float(bounds.get("max_lon", config.hex.bounds.max_lon)),
                min_lat=float(bounds.get("min_lat", config.hex.bounds.min_lat)),
                max_lat=float(bounds.get("max_lat", config.hex.bounds.max_lat)),
            ),
            center_weight=float(weights.get("center", config.hex.center_weight)),
            vertex_weight=float(weights.get("vertex", config.hex.vertex_weight)),
        )
        if config.hex.radius_m <= 0:
            raise ConfigError(f"hex.radius_m must be positive, got {config.hex.radius_m}")

        try:
            config.styles = merge_styles(data.get("styles", {}))
        except (KeyError, TypeError) as e:
            raise ConfigError(f"Invalid style override: {e}") from e

        if "elevation_bands" in data:
            bands = []
            for band in data["elevation_bands"] or []:
                if not isinstance(band, dict) or "style" not in band:
                    raise ConfigError(f"Elevation band needs a style: {band!r}")
                below = band.get("below")
                bands.append(ElevationBand(
                    style=band["style"],
                    below=float(below) if below is not None else None,
                ))
            if not bands:
                raise ConfigError("elevation_bands must not be empty")
            config.elevation_bands = bands
        for band in config.elevation_bands:
            if band.style not in config.styles:
                raise ConfigError(f"Elevation band references unknown style: {band.style}")

        los = data.get("line_of_sight", {}) or {}
        policy = los.get("policy", config.line_of_sight.policy)
        if policy not in LOS_POLICIES:
            raise ConfigError(f"Unknown line_of_sight.policy: {policy}")
        probability = float(los.get("block_probability", config.line_of_sight.block_probability))
        if not 0.0 <= probability <= 1.0:
            raise ConfigError(f"block_probability must be within [0, 1], got {probability}")
        config.line_of_sight = LineOfSightSettings(
            policy=policy,
            blocking_terrain=list(los.get("blocking_terrain", config.line_of_sight.blocking_terrain)),
            block_probability=probability,
            seed=los.get("seed"),
        )

        return config


def load_config(data_path: Path | str = "data") -> BattlefieldConfig:
    """Load battlefield config, falling back to defaults if the file is absent."""
    config_path = Path(data_path) / "schema" / "battlefield.yaml"
    if not config_path.exists():
        logger.warning(f"Battlefield config not found: {config_path}, using defaults")
        return BattlefieldConfig()

    with open(config_path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {config_path}: {e}") from e

    config = BattlefieldConfig.from_dict(data)
    logger.info(
        f"Loaded battlefield config: factions={config.factions}, "
        f"hex radius={config.hex.radius_m}m, LOS policy={config.line_of_sight.policy}"
    )
    return config
