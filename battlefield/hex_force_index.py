"""
Bidirectional hex <-> force occupancy index.

Keeps two maps mutually consistent:
- hex_to_forces: hex_id -> set of force_ids (every grid hex present)
- force_to_hex: force_id -> hex_id

and derives each hex's control faction from its occupants. Invalid input
is logged and rejected before any mutation.
"""

import logging
from typing import Callable, Iterable, Optional

from .map import HexCell, HexGrid, NEUTRAL
from .styles import CONTESTED, VisualStyle, faction_marker, is_control_marker
from .units import Force

logger = logging.getLogger(__name__)

ForceLookup = Callable[[str], Optional[Force]]


class HexForceIndex:
    """Occupancy index and control derivation for one grid."""

    def __init__(
        self,
        grid: HexGrid,
        force_lookup: ForceLookup,
        factions: Iterable[str],
        styles: Optional[dict[str, VisualStyle]] = None,
    ):
        self.grid = grid
        self.force_lookup = force_lookup
        self.factions = list(factions)
        self.styles = styles if styles is not None else grid.styles

        self.hex_to_forces: dict[str, set[str]] = {hex_id: set() for hex_id in grid.cells}
        self.force_to_hex: dict[str, str] = {}

    def init_mapping(self, cells: Iterable[HexCell], forces: Iterable[Force]):
        """Rebuild both maps from scratch and derive control for every cell."""
        cells = list(cells)
        self.hex_to_forces.clear()
        self.force_to_hex.clear()

        for cell in cells:
            if cell.hex_id:
                self.hex_to_forces[cell.hex_id] = set()

        for force in forces:
            if not force.force_id or not force.hex_id:
                logger.warning(f"Skipping force with empty id or hex: {force!r}")
                continue
            if force.hex_id not in self.hex_to_forces:
                logger.warning(f"Force {force.force_id} placed on unknown hex {force.hex_id}, skipped")
                continue
            self._add_mapping(force.force_id, force.hex_id)

        for cell in cells:
            if cell.hex_id:
                self._update_control_faction(cell.hex_id)

        logger.debug(f"Index initialised: {len(self.hex_to_forces)} hexes, {len(self.force_to_hex)} forces")

    def move_force_to_hex(self, force_id: str, new_hex_id: str) -> bool:
        """Relocate a force, re-deriving control of the old and new hex."""
        if not force_id or not new_hex_id:
            logger.warning(f"Invalid force id or hex id: {force_id!r}, {new_hex_id!r}")
            return False
        if new_hex_id not in self.hex_to_forces:
            logger.warning(f"Cannot move {force_id}: unknown hex {new_hex_id}")
            return False

        old_hex_id = self.force_to_hex.get(force_id)
        if old_hex_id is not None:
            self.hex_to_forces[old_hex_id].discard(force_id)
        self._add_mapping(force_id, new_hex_id)

        if old_hex_id is not None and old_hex_id != new_hex_id:
            self._update_control_faction(old_hex_id)
        self._update_control_faction(new_hex_id)
        return True

    def add_force_by_id(self, force_id: str, hex_id: str) -> bool:
        """Place a force on a hex. An already placed force is moved instead."""
        if not force_id or not hex_id:
            logger.warning(f"Invalid force id or hex id: {force_id!r}, {hex_id!r}")
            return False
        if force_id in self.force_to_hex:
            return self.move_force_to_hex(force_id, hex_id)
        if hex_id not in self.hex_to_forces:
            logger.warning(f"Cannot add {force_id}: unknown hex {hex_id}")
            return False

        self._add_mapping(force_id, hex_id)
        self._update_control_faction(hex_id)
        return True

    def remove_force_by_id(self, force_id: str) -> bool:
        if not force_id:
            logger.warning("Invalid force id: empty")
            return False

        hex_id = self.force_to_hex.pop(force_id, None)
        if hex_id is None:
            logger.warning(f"Cannot remove {force_id}: not on the map")
            return False

        self.hex_to_forces[hex_id].discard(force_id)
        self._update_control_faction(hex_id)
        return True

    # Query methods
    def get_forces_by_hex_id(self, hex_id: Optional[str]) -> list[str]:
        if not hex_id:
            return []
        return sorted(self.hex_to_forces.get(hex_id, ()))

    def get_hex_by_force_id(self, force_id: Optional[str]) -> Optional[str]:
        if not force_id:
            return None
        return self.force_to_hex.get(force_id)

    def has_hex(self, hex_id: Optional[str]) -> bool:
        return bool(hex_id) and hex_id in self.hex_to_forces

    def has_force(self, force_id: Optional[str]) -> bool:
        return bool(force_id) and force_id in self.force_to_hex

    def get_force_count_in_hex(self, hex_id: str) -> int:
        return len(self.hex_to_forces.get(hex_id, ()))

    def get_control_faction(self, hex_id: str) -> Optional[str]:
        cell = self.grid.get_cell(hex_id)
        return cell.battlefield.control_faction if cell else None

    def check_consistency(self) -> list[str]:
        """List every violation of the bidirectional invariant."""
        problems = []
        for force_id, hex_id in self.force_to_hex.items():
            if force_id not in self.hex_to_forces.get(hex_id, ()):
                problems.append(f"{force_id} -> {hex_id} missing from hex set")
        for hex_id, force_ids in self.hex_to_forces.items():
            for force_id in force_ids:
                if self.force_to_hex.get(force_id) != hex_id:
                    problems.append(f"{hex_id} lists {force_id} but it maps to {self.force_to_hex.get(force_id)}")
        return problems

    # Control derivation
    def derive_control_faction(self, hex_id: str) -> str:
        """
        Neutral when empty or no occupant has a recognized faction,
        the single recognized faction present, or contested when several are.
        """
        present = set()
        for force_id in self.hex_to_forces.get(hex_id, ()):
            force = self.force_lookup(force_id)
            if force is not None and force.faction in self.factions:
                present.add(force.faction)

        if not present:
            return NEUTRAL
        if len(present) > 1:
            return CONTESTED
        return present.pop()

    def _add_mapping(self, force_id: str, hex_id: str):
        self.hex_to_forces.setdefault(hex_id, set()).add(force_id)
        self.force_to_hex[force_id] = hex_id

    def _update_control_faction(self, hex_id: str):
        cell = self.grid.get_cell(hex_id)
        if not cell:
            logger.warning(f"Hex not found for control update: {hex_id}")
            return
        self._set_control_faction(cell, self.derive_control_faction(hex_id))

    def _set_control_faction(self, cell: HexCell, faction: str):
        """Swap the control marker; other style layers are left alone."""
        if cell.battlefield.control_faction == faction:
            return

        logger.debug(f"{cell.hex_id} control {cell.battlefield.control_faction} -> {faction}")
        cell.battlefield.control_faction = faction

        for style_type in {s.type for s in cell.visibility.visual_styles if is_control_marker(s)}:
            cell.remove_visual_style_by_type(style_type)

        if faction == CONTESTED:
            cell.add_visual_style(self.styles.get(CONTESTED))
        elif faction != NEUTRAL:
            cell.add_visual_style(faction_marker(self.styles, faction))
