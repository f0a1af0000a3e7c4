"""
Save and load battlefield snapshots as JSON.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from .config import BattlefieldConfig
from .errors import ScenarioError
from .fog_of_war import BlockingPolicy
from .session import BattlefieldSession

logger = logging.getLogger(__name__)


def save_snapshot(session: BattlefieldSession, path: Path | str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(session.to_snapshot(), f, indent=2, default=str)
    logger.info(f"Snapshot saved to: {path}")
    return path


def load_snapshot(
    path: Path | str,
    config: Optional[BattlefieldConfig] = None,
    policy: Optional[BlockingPolicy] = None,
) -> BattlefieldSession:
    """Rebuild a session from a snapshot written by save_snapshot."""
    path = Path(path)
    if not path.exists():
        raise ScenarioError(f"Snapshot not found: {path}")

    with open(path) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ScenarioError(f"Cannot parse snapshot {path}: {e}") from e

    session = BattlefieldSession.from_snapshot(data, config, policy)
    logger.info(f"Snapshot loaded from {path}: turn {session.turn}, {len(session.grid)} hexes")
    return session
