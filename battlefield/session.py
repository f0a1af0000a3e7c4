"""
Battlefield session: the explicit context tying the core together.

Owns the grid, force provider, occupancy index and fog of war for one
game. Every state-changing trigger (place, move, remove, merge, split,
end of turn) keeps the index and force records in step, recomputes
visibility and notifies subscribers. Faction switching only re-renders.
"""

import logging
from typing import Any, Callable, Optional

from .config import BattlefieldConfig
from .errors import ScenarioError
from .fog_of_war import BlockingPolicy, FogOfWar
from .hex_force_index import HexForceIndex
from .map import NEUTRAL, HexCell, HexGrid, HeightSampler
from .styles import VisualStyle
from .units import CompositionEntry, Force, ForceManager, MAX_TROOP_STRENGTH

logger = logging.getLogger(__name__)

Observer = Callable[[str, dict], Any]


class BattlefieldSession:
    """Grid, forces, occupancy and visibility for a single battlefield."""

    def __init__(
        self,
        config: BattlefieldConfig,
        grid: HexGrid,
        forces: ForceManager,
        fog: FogOfWar,
        turn: int = 1,
    ):
        self.config = config
        self.grid = grid
        self.forces = forces
        self.fog = fog
        self.turn = turn
        self.index = HexForceIndex(grid, forces.get_force, config.factions, config.styles)
        self._observers: list[Observer] = []

        self.index.init_mapping(grid.get_all_cells(), forces.get_all_forces())
        for force in forces.get_all_forces():
            if not self.index.has_force(force.force_id):
                logger.warning(f"Force {force.force_id} has no valid placement and will not be seen on the map")

    @classmethod
    def create(
        cls,
        config: Optional[BattlefieldConfig] = None,
        forces: Optional[ForceManager] = None,
        height_sampler: Optional[HeightSampler] = None,
        grid: Optional[HexGrid] = None,
        policy: Optional[BlockingPolicy] = None,
    ) -> "BattlefieldSession":
        config = config or BattlefieldConfig()
        grid = grid if grid is not None else HexGrid.generate(config, height_sampler)
        return cls(
            config=config,
            grid=grid,
            forces=forces or ForceManager(),
            fog=FogOfWar.from_config(config, policy),
        )

    @property
    def current_faction(self) -> Optional[str]:
        return self.fog.viewing_faction

    # Observers
    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register a callback(event, payload); returns an unsubscribe function."""
        self._observers.append(callback)

        def unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self, event: str, payload: dict):
        for callback in list(self._observers):
            try:
                callback(event, payload)
            except Exception as e:
                logger.warning(f"Observer failed on {event}: {e}")

    # Triggers
    def recompute_visibility(self) -> dict[str, set[str]]:
        visible = self.fog.recompute_visibility(self.forces.get_all_forces(), self.grid)
        self._notify("visibility_changed", {
            "turn": self.turn,
            "visible_counts": {f: len(h) for f, h in visible.items()},
        })
        return visible

    def switch_faction(self, faction: str) -> bool:
        """Render another faction's fog without recomputing it."""
        if not self.fog.switch_faction(faction, self.grid):
            return False
        self._notify("faction_switched", {"faction": faction})
        return True

    def end_turn(self) -> int:
        self.turn += 1
        logger.info(f"Turn {self.turn} begins")
        self.recompute_visibility()
        self._notify("turn_ended", {"turn": self.turn})
        return self.turn

    def place_force(self, force: Force) -> bool:
        """Put a new force on the map."""
        if not force.force_id or self.forces.get_force(force.force_id):
            logger.warning(f"Cannot place force with empty or duplicate id: {force.force_id!r}")
            return False
        if not self.grid.has_cell(force.hex_id):
            logger.warning(f"Cannot place {force.force_id}: unknown hex {force.hex_id!r}")
            return False

        self.forces.add_force(force)
        self.index.add_force_by_id(force.force_id, force.hex_id)
        self.recompute_visibility()
        self._notify("force_placed", {"force_id": force.force_id, "hex_id": force.hex_id})
        return True

    def move_force(self, force_id: str, hex_id: str) -> bool:
        force = self.forces.get_force(force_id)
        if force is None:
            logger.warning(f"Cannot move unknown force: {force_id!r}")
            return False

        old_hex_id = force.hex_id
        if not self.index.move_force_to_hex(force_id, hex_id):
            return False
        force.hex_id = hex_id

        self.recompute_visibility()
        self._notify("force_moved", {"force_id": force_id, "from": old_hex_id, "to": hex_id})
        return True

    def move_force_along_path(self, force_id: str, path: list[str]) -> bool:
        """Move along a path that starts at the force's hex and steps between adjacent hexes."""
        force = self.forces.get_force(force_id)
        if force is None or len(path) < 2:
            logger.warning(f"Invalid move path for {force_id!r}: {path}")
            return False
        if path[0] != force.hex_id:
            logger.warning(f"Path for {force_id} starts at {path[0]}, force is at {force.hex_id}")
            return False
        for a, b in zip(path, path[1:]):
            if not self.grid.is_adjacent(a, b):
                logger.warning(f"Path step {a} -> {b} is not between adjacent hexes")
                return False
        return self.move_force(force_id, path[-1])

    def remove_force(self, force_id: str) -> Optional[Force]:
        """Destroy a force, whether or not it ever made it onto the map."""
        if self.forces.get_force(force_id) is None:
            logger.warning(f"Cannot remove unknown force: {force_id!r}")
            return None
        if self.index.has_force(force_id):
            self.index.remove_force_by_id(force_id)
        force = self.forces.remove_force(force_id)

        self.recompute_visibility()
        self._notify("force_removed", {"force_id": force_id})
        return force

    def merge_forces(self, hex_id: str, force_ids: list[str]) -> Optional[Force]:
        """Combine two or more same-faction forces sharing a hex into one."""
        if not hex_id or not force_ids or len(set(force_ids)) < 2:
            logger.warning(f"Merge needs a hex and at least two forces: {hex_id!r}, {force_ids}")
            return None

        members = []
        for force_id in dict.fromkeys(force_ids):
            force = self.forces.get_force(force_id)
            if force is None or self.index.get_hex_by_force_id(force_id) != hex_id:
                logger.warning(f"Cannot merge {force_id!r}: not present in {hex_id}")
                return None
            members.append(force)

        factions = {f.faction for f in members}
        if len(factions) > 1:
            logger.warning(f"Cannot merge forces of different factions: {sorted(factions)}")
            return None

        counts: dict[str, int] = {}
        for force in members:
            for unit_type_id, count in force.unit_counts().items():
                counts[unit_type_id] = counts.get(unit_type_id, 0) + count

        merged = Force(
            force_id=self.forces.next_force_id(),
            faction=members[0].faction,
            hex_id=hex_id,
            visibility_radius=max(f.visibility_radius for f in members),
            composition=[CompositionEntry(u, c) for u, c in counts.items()],
            name="/".join(f.name or f.force_id for f in members),
            service=members[0].service,
            troop_strength=min(MAX_TROOP_STRENGTH, sum(f.troop_strength for f in members)),
        )

        for force in members:
            self.index.remove_force_by_id(force.force_id)
            self.forces.remove_force(force.force_id)
        self.forces.add_force(merged)
        self.index.add_force_by_id(merged.force_id, hex_id)

        logger.info(f"Merged {[f.force_id for f in members]} into {merged.force_id} at {hex_id}")
        self.recompute_visibility()
        self._notify("forces_merged", {"force_id": merged.force_id, "from": [f.force_id for f in members]})
        return merged

    def split_force(self, force_id: str, split_details: list[list]) -> list[Force]:
        """
        Split off new forces in the same hex.

        Each entry of split_details is a composition list; whatever is not
        split off stays with the original force, which disappears if empty.
        """
        force = self.forces.get_force(force_id)
        if force is None or not split_details:
            logger.warning(f"Invalid split request for {force_id!r}")
            return []

        groups = []
        try:
            for detail in split_details:
                group = [
                    e if isinstance(e, CompositionEntry)
                    else CompositionEntry(e["unit_type_id"], int(e.get("count", 1)))
                    for e in detail
                ]
                if not group or any(e.count <= 0 for e in group):
                    raise ValueError("empty group or non-positive count")
                groups.append(group)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed split details for {force_id}: {e}")
            return []

        remaining = force.unit_counts()
        for group in groups:
            for entry in group:
                remaining[entry.unit_type_id] = remaining.get(entry.unit_type_id, 0) - entry.count
        if any(count < 0 for count in remaining.values()):
            logger.warning(f"Split of {force_id} asks for more units than it has")
            return []

        new_forces = []
        for group in groups:
            new_force = Force(
                force_id=self.forces.next_force_id(),
                faction=force.faction,
                hex_id=force.hex_id,
                visibility_radius=self.forces.derive_visibility_radius(group) or force.visibility_radius,
                composition=group,
                name=f"{force.name or force.force_id} detachment",
                service=force.service,
                troop_strength=force.troop_strength,
            )
            self.forces.add_force(new_force)
            self.index.add_force_by_id(new_force.force_id, new_force.hex_id)
            new_forces.append(new_force)

        leftover = [CompositionEntry(u, c) for u, c in remaining.items() if c > 0]
        if leftover:
            force.composition = leftover
            force.visibility_radius = self.forces.derive_visibility_radius(leftover) or force.visibility_radius
        else:
            self.index.remove_force_by_id(force_id)
            self.forces.remove_force(force_id)

        logger.info(f"Split {force_id} into {[f.force_id for f in new_forces]}")
        self.recompute_visibility()
        self._notify("force_split", {"force_id": force_id, "into": [f.force_id for f in new_forces]})
        return new_forces

    # Query surface
    def get_visible_hexes(self, faction: str) -> set[str]:
        return self.fog.get_visible_hexes(faction)

    def get_control_faction(self, hex_id: str) -> Optional[str]:
        return self.index.get_control_faction(hex_id)

    def get_top_visual_style(self, hex_id: str, layer: str) -> Optional[VisualStyle]:
        cell = self.grid.get_cell(hex_id)
        return cell.get_top_visual_style(layer) if cell else None

    def get_hex_state(self, hex_id: str) -> Optional[dict]:
        """Plain record of one hex for renderers and info panels."""
        cell = self.grid.get_cell(hex_id)
        if not cell:
            return None
        layers = {s.layer for s in cell.visibility.visual_styles}
        return {
            "hex_id": cell.hex_id,
            "row": cell.row,
            "col": cell.col,
            "terrain": cell.terrain.terrain_type.value,
            "elevation": cell.terrain.elevation,
            "control_faction": cell.battlefield.control_faction,
            "visible_to": dict(cell.visibility.visible_to),
            "forces": self.index.get_forces_by_hex_id(hex_id),
            "top_styles": {layer: cell.get_top_visual_style(layer).to_dict() for layer in sorted(layers)},
        }

    def get_state(self, faction: Optional[str] = None) -> dict:
        """Fog-filtered view for one faction: own forces plus enemies in sight."""
        faction = faction or self.current_faction
        visible = self.fog.get_visible_hexes(faction)
        forces = [
            f.to_dict() for f in self.forces.get_all_forces()
            if f.faction == faction or f.hex_id in visible
        ]
        return {
            "turn": self.turn,
            "faction": faction,
            "visible_hexes": sorted(visible),
            "control": {
                cell.hex_id: cell.battlefield.control_faction
                for cell in self.grid
                if cell.battlefield.control_faction != NEUTRAL
            },
            "forces": forces,
        }

    # Snapshots
    def to_snapshot(self) -> dict:
        return {
            "turn": self.turn,
            "current_faction": self.current_faction,
            "cells": [cell.to_dict() for cell in self.grid],
            "forces": [force.to_dict() for force in self.forces.get_all_forces()],
            "unit_types": [
                {
                    "unit_type_id": ut.unit_type_id,
                    "name": ut.name,
                    "service": list(ut.service),
                    "category": ut.category,
                    "visibility_radius": ut.visibility_radius,
                    "attributes": dict(ut.attributes),
                }
                for ut in self.forces.unit_types.values()
            ],
        }

    @classmethod
    def from_snapshot(
        cls,
        data: dict,
        config: Optional[BattlefieldConfig] = None,
        policy: Optional[BlockingPolicy] = None,
    ) -> "BattlefieldSession":
        config = config or BattlefieldConfig()
        if not isinstance(data, dict) or "cells" not in data:
            raise ScenarioError("Snapshot must be a mapping with a cells list")

        grid = HexGrid.from_cells((HexCell.from_dict(c) for c in data["cells"]), config.styles)
        forces = ForceManager()
        forces.load_records(data.get("unit_types", []), data.get("forces", []))

        session = cls(config, grid, forces, FogOfWar.from_config(config, policy), turn=int(data.get("turn", 1)))
        faction = data.get("current_faction")
        if faction in session.fog.visible_hexes:
            session.fog.viewing_faction = faction
        # Restore the visible sets recorded on the cells
        for cell in grid:
            for f, seen in cell.visibility.visible_to.items():
                if seen:
                    session.fog.visible_hexes.setdefault(f, set()).add(cell.hex_id)
        return session
