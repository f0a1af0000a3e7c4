"""Exceptions raised at the battlefield's load boundaries."""


class BattlefieldError(Exception):
    """Base class for battlefield errors."""


class ConfigError(BattlefieldError):
    """Battlefield configuration is malformed."""


class ScenarioError(BattlefieldError):
    """Scenario or snapshot file is malformed."""
