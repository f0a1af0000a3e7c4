"""
Fog of war for the hex battlefield.

Handles:
- Line of sight through blocking terrain (pluggable blocking policy)
- Per-faction visible hex sets, rebuilt from scratch on every recompute
- Per-cell visibility flags and fog styling for the viewing faction
"""

import random
import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from .config import BattlefieldConfig
from .map import HexCell, HexGrid, hex_distance
from .units import Force

logger = logging.getLogger(__name__)


class BlockingPolicy(ABC):
    """Decides whether blocking terrain hides a target cell."""

    deterministic = True

    @abstractmethod
    def blocks(self, from_cell: HexCell, to_cell: HexCell) -> bool:
        pass


class RandomBlockingPolicy(BlockingPolicy):
    """
    Independent draw per evaluation.

    The same observer/target pair can flip between recomputes. Pass a
    seed to make the sequence of draws reproducible.
    """

    deterministic = False

    def __init__(self, probability: float = 0.5, seed: Optional[int] = None):
        self.probability = probability
        self.rng = random.Random(seed)

    def blocks(self, from_cell: HexCell, to_cell: HexCell) -> bool:
        return self.rng.random() < self.probability


class AlwaysBlockPolicy(BlockingPolicy):
    def blocks(self, from_cell: HexCell, to_cell: HexCell) -> bool:
        return True


class NeverBlockPolicy(BlockingPolicy):
    def blocks(self, from_cell: HexCell, to_cell: HexCell) -> bool:
        return False


def make_blocking_policy(config: BattlefieldConfig) -> BlockingPolicy:
    los = config.line_of_sight
    if los.policy == "always":
        return AlwaysBlockPolicy()
    if los.policy == "never":
        return NeverBlockPolicy()
    return RandomBlockingPolicy(los.block_probability, los.seed)


class FogOfWar:
    """Computes which hexes each faction currently observes."""

    def __init__(
        self,
        factions: Iterable[str],
        blocking_terrain: Iterable[str] = ("mountain",),
        policy: Optional[BlockingPolicy] = None,
        viewing_faction: Optional[str] = None,
    ):
        self.factions = list(factions)
        self.blocking_terrain = set(blocking_terrain)
        self.policy = policy or RandomBlockingPolicy()
        self.visible_hexes: dict[str, set[str]] = {f: set() for f in self.factions}
        self.viewing_faction = viewing_faction or (self.factions[0] if self.factions else None)

    @classmethod
    def from_config(cls, config: BattlefieldConfig, policy: Optional[BlockingPolicy] = None) -> "FogOfWar":
        return cls(
            factions=config.factions,
            blocking_terrain=config.line_of_sight.blocking_terrain,
            policy=policy or make_blocking_policy(config),
        )

    def has_line_of_sight(self, from_cell: HexCell, to_cell: HexCell) -> bool:
        """
        True unless the target sits on blocking terrain and the policy blocks it.

        The observer's own hex gets no exemption: a force on blocking terrain
        may lose sight of its own cell.
        """
        if to_cell.terrain.terrain_type.value in self.blocking_terrain:
            return not self.policy.blocks(from_cell, to_cell)
        return True

    def calculate_visible_hexes(self, force: Force, grid: HexGrid) -> set[str]:
        """Hexes one force observes: within its radius and in line of sight."""
        force_cell = grid.get_cell(force.hex_id)
        if not force_cell:
            return set()

        visible = set()
        for cell in grid:
            distance = hex_distance(force_cell.row, force_cell.col, cell.row, cell.col)
            if distance <= force.visibility_radius and self.has_line_of_sight(force_cell, cell):
                visible.add(cell.hex_id)
        return visible

    def recompute_visibility(self, forces: Iterable[Force], grid: HexGrid) -> dict[str, set[str]]:
        """
        Full rebuild of every faction's visible set.

        Forces on unknown hexes contribute nothing. Afterwards every cell's
        visible_to flags are rewritten and its fog style refreshed.
        """
        self.visible_hexes = {f: set() for f in self.factions}
        contributing = 0

        for force in forces:
            if not grid.has_cell(force.hex_id):
                logger.warning(f"Force {force.force_id} is on unknown hex {force.hex_id!r}, skipped")
                continue
            faction_hexes = self.visible_hexes.setdefault(force.faction, set())
            faction_hexes |= self.calculate_visible_hexes(force, grid)
            contributing += 1

        for cell in grid:
            for faction, hexes in self.visible_hexes.items():
                cell.visibility.visible_to[faction] = cell.hex_id in hexes
            grid.set_cell_visual_style(cell.hex_id, self.viewing_faction)

        logger.info(
            f"Visibility recomputed from {contributing} forces: "
            + ", ".join(f"{f}={len(h)}" for f, h in self.visible_hexes.items())
        )
        return self.get_all_visible_hexes()

    def switch_faction(self, faction: str, grid: HexGrid) -> bool:
        """Re-render fog for another faction from the last computed sets."""
        if faction not in self.visible_hexes:
            logger.warning(f"Cannot switch to unknown faction: {faction}")
            return False

        self.viewing_faction = faction
        for cell in grid:
            grid.set_cell_visual_style(cell.hex_id, faction)
        logger.info(f"Viewing as {faction}: {len(self.visible_hexes[faction])} visible hexes")
        return True

    # Query methods
    def get_visible_hexes(self, faction: str) -> set[str]:
        return set(self.visible_hexes.get(faction, ()))

    def get_all_visible_hexes(self) -> dict[str, set[str]]:
        return {f: set(h) for f, h in self.visible_hexes.items()}

    def is_hex_visible_to(self, hex_id: str, faction: str) -> bool:
        if not hex_id or not faction:
            return False
        return hex_id in self.visible_hexes.get(faction, ())

    def get_summary(self) -> dict:
        return {
            "viewing_faction": self.viewing_faction,
            "visible_counts": {f: len(h) for f, h in self.visible_hexes.items()},
            "deterministic": self.policy.deterministic,
        }
