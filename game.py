"""
Scenario runner for the hex battlefield.

Builds a battlefield from config, places a scenario's forces, plays its
scripted actions and reports what each faction sees and holds.
"""

import os
import math
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

from battlefield import (
    BattlefieldSession, ForceManager, ScenarioError, load_config, save_snapshot,
)
from battlefield.map import HeightSampler, NEUTRAL

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Kibo summit, used as the synthetic terrain peak
PEAK_LON = 37.3533
PEAK_LAT = -3.0674


def cone_height_sampler(
    peak_lon: float = PEAK_LON,
    peak_lat: float = PEAK_LAT,
    peak_m: float = 400.0,
    slope_m_per_km: float = 50.0,
) -> HeightSampler:
    """Heights falling off linearly from a single peak, floored at zero."""
    def sample(lon: float, lat: float) -> float:
        dx_km = (lon - peak_lon) * 111.32 * math.cos(math.radians(peak_lat))
        dy_km = (lat - peak_lat) * 111.32
        return max(0.0, peak_m - slope_m_per_km * math.hypot(dx_km, dy_km))
    return sample


def apply_action(session: BattlefieldSession, action: dict) -> bool:
    """Apply one scripted action from a scenario's moves list."""
    kind = action.get("action", "move")

    if kind == "move":
        return session.move_force(action.get("force_id"), action.get("hex_id"))
    if kind == "remove":
        return session.remove_force(action.get("force_id")) is not None
    if kind == "merge":
        return session.merge_forces(action.get("hex_id"), action.get("force_ids", [])) is not None
    if kind == "split":
        return bool(session.split_force(action.get("force_id"), action.get("groups", [])))
    if kind == "end_turn":
        session.end_turn()
        return True
    if kind == "switch_faction":
        return session.switch_faction(action.get("faction"))

    logger.warning(f"Unknown scripted action: {kind}")
    return False


class BattlefieldRunner:
    """Loads config and scenario, then drives a session through its moves."""

    def __init__(
        self,
        data_path: str = "data",
        scenario: str = "kilimanjaro_skirmish",
        seed: Optional[int] = None,
    ):
        self.data_path = Path(data_path)
        self.config = load_config(self.data_path)
        if seed is not None:
            self.config.line_of_sight.seed = seed

        logger.info("Loading scenario...")
        self.forces = ForceManager()
        scenario_path = self.data_path / "scenarios" / f"{scenario}.yaml"
        self.scenario = self.forces.load_scenario(scenario_path)

        logger.info("Generating grid...")
        self.session = BattlefieldSession.create(
            self.config, self.forces, height_sampler=cone_height_sampler()
        )
        start = (self.scenario.get("scenario") or {}).get("start_faction")
        if start:
            self.session.switch_faction(start)

        stats = self.session.grid.get_stats()
        logger.info(
            f"Battlefield ready: {stats['total_cells']} hexes "
            f"{stats['terrain_distribution']}, forces {self.forces.get_stats()['by_faction']}"
        )

    def run(self, apply_moves: bool = True) -> dict:
        self.session.recompute_visibility()

        applied = failed = 0
        if apply_moves:
            for action in self.scenario.get("moves", []) or []:
                if apply_action(self.session, action):
                    applied += 1
                else:
                    failed += 1
                    logger.warning(f"Scripted action failed: {action}")

        control: dict[str, int] = {}
        for cell in self.session.grid:
            if cell.control_faction != NEUTRAL:
                control[cell.control_faction] = control.get(cell.control_faction, 0) + 1

        return {
            "turn": self.session.turn,
            "actions_applied": applied,
            "actions_failed": failed,
            "visible": {
                f: len(h) for f, h in self.session.fog.get_all_visible_hexes().items()
            },
            "control": control,
            "forces": self.forces.get_stats()["by_faction"],
        }


def main():
    """Run a battlefield scenario."""
    import argparse

    parser = argparse.ArgumentParser(description="Hex battlefield scenario runner")
    parser.add_argument("--data", default=os.environ.get("BATTLEFIELD_DATA", "data"), help="Data directory path")
    parser.add_argument("--scenario", default="kilimanjaro_skirmish", help="Scenario name")
    parser.add_argument("--faction", default=None, help="Faction to view the result as")
    parser.add_argument("--seed", type=int, default=None, help="Seed for random line-of-sight blocking")
    parser.add_argument("--moves", action="store_true", help="Play the scenario's scripted moves")
    parser.add_argument("--snapshot", default=None, help="Write a JSON snapshot to this path")

    args = parser.parse_args()

    try:
        runner = BattlefieldRunner(data_path=args.data, scenario=args.scenario, seed=args.seed)
    except ScenarioError as e:
        logger.error(f"Cannot load scenario: {e}")
        raise SystemExit(1)

    results = runner.run(apply_moves=args.moves)
    if args.faction:
        runner.session.switch_faction(args.faction)
    if args.snapshot:
        save_snapshot(runner.session, args.snapshot)

    print("\n" + "="*60)
    print("BATTLEFIELD SUMMARY")
    print("="*60)
    print(f"Turn: {results['turn']}")
    print(f"Scripted actions: {results['actions_applied']} applied, {results['actions_failed']} failed")
    for faction, count in results["visible"].items():
        print(f"Visible hexes - {faction}: {count}")
    print(f"Controlled hexes: {results['control'] or 'none'}")
    print(f"Forces: {results['forces']}")
    if args.faction:
        print(f"Viewing as: {runner.session.current_faction}")


if __name__ == "__main__":
    main()
