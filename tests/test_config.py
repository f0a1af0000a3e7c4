from pathlib import Path

import pytest

from battlefield.config import BattlefieldConfig, load_config
from battlefield.errors import ConfigError
from battlefield.styles import DEFAULT_STYLES, faction_marker


def write_config(tmp_path, text):
    schema = tmp_path / "schema"
    schema.mkdir()
    (schema / "battlefield.yaml").write_text(text)
    return tmp_path


def test_missing_file_falls_back_to_defaults(tmp_path):
    config = load_config(tmp_path)
    assert config == BattlefieldConfig()
    assert config.factions == ["blue", "red"]
    assert config.hex.radius_m == 200
    assert [b.style for b in config.elevation_bands] == ["plain", "hill", "mountain"]


def test_partial_file_keeps_other_defaults(tmp_path):
    config = load_config(write_config(tmp_path, """
factions: [north, south, east]
hex:
  radius_m: 500
line_of_sight:
  policy: never
"""))
    assert config.factions == ["north", "south", "east"]
    assert config.hex.radius_m == 500
    assert config.hex.center_weight == 0.4
    assert config.hex.bounds.min_lon == 37.2506
    assert config.line_of_sight.policy == "never"
    assert config.line_of_sight.blocking_terrain == ["mountain"]


def test_shipped_config_loads():
    config = load_config(Path(__file__).parent.parent / "data")
    assert config.factions == ["blue", "red"]
    assert config.line_of_sight.block_probability == 0.5


def test_style_overrides(tmp_path):
    config = load_config(write_config(tmp_path, """
styles:
  faction_blue:
    fill_color: "#112233FF"
  faction_green:
    layer: mark
    priority: 0
    fill_color: "#00FF001A"
"""))
    assert config.styles["faction_blue"].fill_color == "#112233FF"
    assert config.styles["faction_blue"].layer == "mark"
    assert config.styles["faction_green"].type == "faction_green"
    assert DEFAULT_STYLES["faction_blue"].fill_color == "#0000FF1A"


def test_unknown_faction_marker_is_synthesised():
    marker = faction_marker(DEFAULT_STYLES, "green")
    assert marker.layer == "mark"
    assert marker.priority == 0
    assert marker.type == "faction_green"


@pytest.mark.parametrize("text", [
    "factions: []",
    "hex: {radius_m: 0}",
    "line_of_sight: {policy: sometimes}",
    "line_of_sight: {block_probability: 1.5}",
    "elevation_bands: [{below: 10}]",
    "elevation_bands: [{style: lava}]",
    "styles: {faction_blue: {colour: red}}",
    "factions: [blue\n",
    "hex: {radius_m: wide}",
    "hex: {bounds: {min_lon: west}}",
    "hex: 5",
    "line_of_sight: {block_probability: often}",
    "elevation_bands: [{style: plain, below: high}]",
])
def test_invalid_config_raises(tmp_path, text):
    with pytest.raises(ConfigError):
        load_config(write_config(tmp_path, text))
