"""
Force records and the force provider.

A Force is a unit group on the map: one faction, one hex, a visibility
radius in hex-distance units and a composition of unit-type references.
"""

import math
import logging
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .errors import ScenarioError

logger = logging.getLogger(__name__)

MAX_TROOP_STRENGTH = 100


@dataclass
class UnitType:
    """Unit type template shared by any number of forces."""
    unit_type_id: str
    name: str = ""
    service: list[str] = field(default_factory=lambda: ["land"])  # land, sea, air
    category: str = "infantry"
    visibility_radius: float = 1
    attributes: dict[str, Any] = field(default_factory=dict)  # combat stats, opaque here


@dataclass
class CompositionEntry:
    unit_type_id: str
    count: int = 1

    def to_dict(self) -> dict:
        return {"unit_type_id": self.unit_type_id, "count": self.count}


@dataclass
class Force:
    """Military unit group placed on exactly one hex."""
    force_id: str
    faction: str
    hex_id: str
    visibility_radius: int = 1
    composition: list[CompositionEntry] = field(default_factory=list)
    name: str = ""
    service: str = "land"
    troop_strength: int = MAX_TROOP_STRENGTH
    combat_attributes: dict[str, Any] = field(default_factory=dict)

    def unit_counts(self) -> dict[str, int]:
        """Composition collapsed to unit_type_id -> total count."""
        counts: dict[str, int] = {}
        for entry in self.composition:
            counts[entry.unit_type_id] = counts.get(entry.unit_type_id, 0) + entry.count
        return counts

    def to_dict(self) -> dict:
        return {
            "force_id": self.force_id,
            "faction": self.faction,
            "hex_id": self.hex_id,
            "visibility_radius": self.visibility_radius,
            "composition": [c.to_dict() for c in self.composition],
            "name": self.name,
            "service": self.service,
            "troop_strength": self.troop_strength,
            "combat_attributes": dict(self.combat_attributes),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Force":
        """Build a Force from a plain record, validating required fields."""
        if not isinstance(data, dict):
            raise ScenarioError(f"Force record must be a mapping, got {type(data).__name__}")
        for key in ("force_id", "faction", "hex_id"):
            if not data.get(key):
                raise ScenarioError(f"Force record missing {key}: {data!r}")
        try:
            radius = int(data.get("visibility_radius", 1))
            composition = [
                CompositionEntry(unit_type_id=c["unit_type_id"], count=int(c.get("count", 1)))
                for c in data.get("composition", [])
            ]
            strength = int(data.get("troop_strength", MAX_TROOP_STRENGTH))
        except (KeyError, TypeError, ValueError) as e:
            raise ScenarioError(f"Malformed force {data.get('force_id')}: {e}") from e
        if radius < 0:
            raise ScenarioError(f"Force {data['force_id']} has negative visibility radius")

        return cls(
            force_id=str(data["force_id"]),
            faction=str(data["faction"]),
            hex_id=str(data["hex_id"]),
            visibility_radius=radius,
            composition=composition,
            name=data.get("name", data["force_id"]),
            service=data.get("service", "land"),
            troop_strength=min(MAX_TROOP_STRENGTH, max(0, strength)),
            combat_attributes=dict(data.get("combat_attributes", {})),
        )


class ForceManager:
    """Force provider: owns force records and unit type definitions."""

    def __init__(self):
        self.forces: dict[str, Force] = {}
        self.unit_types: dict[str, UnitType] = {}
        self._next_id = 1

    def load_scenario(self, path: Path | str):
        """Load unit types and forces from a scenario YAML file."""
        path = Path(path)
        if not path.exists():
            raise ScenarioError(f"Scenario not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ScenarioError(f"Cannot parse {path}: {e}") from e

        self.load_records(data.get("unit_types", []), data.get("forces", []))
        logger.info(f"Scenario {path.name}: {len(self.unit_types)} unit types, {len(self.forces)} forces")
        return data

    def load_records(self, unit_types: list[dict], forces: list[dict]):
        for ut in unit_types or []:
            if not isinstance(ut, dict) or not ut.get("unit_type_id"):
                raise ScenarioError(f"Unit type record missing unit_type_id: {ut!r}")
            service = ut.get("service", ["land"])
            self.unit_types[ut["unit_type_id"]] = UnitType(
                unit_type_id=ut["unit_type_id"],
                name=ut.get("name", ut["unit_type_id"]),
                service=[service] if isinstance(service, str) else list(service),
                category=ut.get("category", "infantry"),
                visibility_radius=float(ut.get("visibility_radius", 1)),
                attributes=dict(ut.get("attributes", {})),
            )

        for record in forces or []:
            force = Force.from_dict(record)
            if "visibility_radius" not in record:
                force.visibility_radius = self.derive_visibility_radius(force.composition)
            self.add_force(force)

    def derive_visibility_radius(self, composition: list[CompositionEntry]) -> int:
        """Largest visibility radius of any unit type in the composition, rounded up."""
        radius = 0.0
        for entry in composition:
            unit_type = self.unit_types.get(entry.unit_type_id)
            if unit_type is None:
                logger.warning(f"Unknown unit type in composition: {entry.unit_type_id}")
                continue
            radius = max(radius, unit_type.visibility_radius)
        return math.ceil(radius)

    def next_force_id(self) -> str:
        while f"F_{self._next_id}" in self.forces:
            self._next_id += 1
        force_id = f"F_{self._next_id}"
        self._next_id += 1
        return force_id

    def add_force(self, force: Force):
        if force.force_id in self.forces:
            raise ScenarioError(f"Duplicate force id: {force.force_id}")
        self.forces[force.force_id] = force

    def remove_force(self, force_id: str) -> Optional[Force]:
        return self.forces.pop(force_id, None)

    # Query methods
    def get_force(self, force_id: Optional[str]) -> Optional[Force]:
        if not force_id:
            return None
        return self.forces.get(force_id)

    def get_all_forces(self) -> list[Force]:
        return list(self.forces.values())

    def get_forces_by_faction(self, faction: str) -> list[Force]:
        return [f for f in self.forces.values() if f.faction == faction]

    def get_stats(self) -> dict:
        by_faction: dict[str, int] = {}
        for force in self.forces.values():
            by_faction[force.faction] = by_faction.get(force.faction, 0) + 1
        return {
            "total_forces": len(self.forces),
            "total_unit_types": len(self.unit_types),
            "by_faction": by_faction,
        }
