import pytest

from battlefield.fog_of_war import AlwaysBlockPolicy
from battlefield.map import NEUTRAL, TerrainType
from battlefield.session import BattlefieldSession
from battlefield.styles import CONTESTED
from battlefield.units import CompositionEntry

from conftest import CENTER, RING, make_force


@pytest.fixture
def session(make_session):
    return make_session([
        make_force("B1", "blue", CENTER, radius=0, units=(("inf", 3), ("recon", 1))),
        make_force("B2", "blue", CENTER, radius=1, units=(("inf", 2),)),
        make_force("R1", "red", "H_0_1", radius=0),
    ])


@pytest.fixture
def events(session):
    received = []
    session.subscribe(lambda name, payload: received.append((name, payload)))
    return received


def event_names(events):
    return [name for name, _ in events]


class TestSetup:
    def test_index_built_from_forces(self, session):
        assert session.index.get_forces_by_hex_id(CENTER) == ["B1", "B2"]
        assert session.get_control_faction(CENTER) == "blue"
        assert session.get_control_faction("H_0_1") == "red"
        assert session.current_faction == "blue"
        assert session.turn == 1

    def test_create_generates_grid(self, small_config):
        session = BattlefieldSession.create(small_config)
        assert len(session.grid) == 14
        assert session.index.has_hex("H_0_0")


class TestTriggers:
    def test_move_updates_record_index_and_visibility(self, session, events):
        session.recompute_visibility()
        assert "H_2_1" not in session.get_visible_hexes("red")

        assert session.move_force("R1", "H_2_1")

        assert session.forces.get_force("R1").hex_id == "H_2_1"
        assert session.index.get_hex_by_force_id("R1") == "H_2_1"
        assert session.get_visible_hexes("red") == {"H_2_1"}
        assert session.get_control_faction("H_0_1") == NEUTRAL
        assert event_names(events)[-2:] == ["visibility_changed", "force_moved"]

    def test_invalid_move_changes_nothing(self, session, events):
        assert not session.move_force("R1", "H_9_9")
        assert not session.move_force("nope", CENTER)
        assert session.forces.get_force("R1").hex_id == "H_0_1"
        assert events == []

    def test_move_into_enemy_hex_contests_it(self, session):
        session.move_force("R1", CENTER)
        assert session.get_control_faction(CENTER) == CONTESTED
        assert session.get_top_visual_style(CENTER, "mark").type == CONTESTED

    def test_move_along_path(self, session):
        assert session.move_force_along_path("B2", [CENTER, "H_1_0"])
        assert session.forces.get_force("B2").hex_id == "H_1_0"

    @pytest.mark.parametrize("path", [
        [CENTER, "H_2_2"],
        [CENTER, "H_0_1", "H_0_2"],
    ])
    def test_path_through_diagonal_neighbours(self, session, path):
        assert session.move_force_along_path("B1", path)
        assert session.forces.get_force("B1").hex_id == path[-1]

    @pytest.mark.parametrize("path", [
        ["H_1_0", "H_1_1"],  # does not start at the force
        [CENTER, "H_1_0", "H_1_2"],  # H_1_0 and H_1_2 do not touch
        [CENTER],
    ])
    def test_invalid_path_rejected(self, session, path):
        assert not session.move_force_along_path("B1", path)
        assert session.forces.get_force("B1").hex_id == CENTER

    def test_place_and_remove(self, session, events):
        assert session.place_force(make_force("R2", "red", "H_2_2", radius=0))
        assert "H_2_2" in session.get_visible_hexes("red")
        assert session.get_control_faction("H_2_2") == "red"

        removed = session.remove_force("R2")

        assert removed.force_id == "R2"
        assert session.forces.get_force("R2") is None
        assert "H_2_2" not in session.get_visible_hexes("red")
        assert "force_placed" in event_names(events)
        assert "force_removed" in event_names(events)

    def test_place_rejects_duplicates_and_unknown_hexes(self, session):
        assert not session.place_force(make_force("B1", "blue", CENTER))
        assert not session.place_force(make_force("B9", "blue", "H_9_9"))
        assert session.forces.get_force("B9") is None

    def test_remove_unknown(self, session):
        assert session.remove_force("nope") is None

    def test_remove_force_that_never_reached_the_map(self, make_session):
        session = make_session([
            make_force("B1", "blue", CENTER),
            make_force("LOST", "red", "H_9_9"),
        ])
        assert not session.index.has_force("LOST")

        removed = session.remove_force("LOST")

        assert removed.force_id == "LOST"
        assert session.forces.get_force("LOST") is None
        assert session.get_state("red")["forces"] == []
        assert session.remove_force("LOST") is None

    def test_end_turn_recomputes(self, session, events):
        assert session.end_turn() == 2
        assert event_names(events) == ["visibility_changed", "turn_ended"]
        assert CENTER in session.get_visible_hexes("blue")

    def test_switch_faction_only_rerenders(self, session, events):
        session.recompute_visibility()
        before = session.fog.get_all_visible_hexes()

        assert session.switch_faction("red")

        assert session.current_faction == "red"
        assert session.fog.get_all_visible_hexes() == before
        assert event_names(events) == ["visibility_changed", "faction_switched"]
        assert session.get_top_visual_style(CENTER, "mark").type == "invisible"
        assert not session.switch_faction("green")

    def test_failing_observer_does_not_abort(self, session, events):
        def broken(name, payload):
            raise RuntimeError("boom")

        session.subscribe(broken)
        assert session.move_force("R1", "H_2_2")
        assert "force_moved" in event_names(events)

    def test_unsubscribe(self, session):
        received = []
        unsubscribe = session.subscribe(lambda *args: received.append(args))
        unsubscribe()
        session.end_turn()
        assert received == []


class TestMerge:
    def test_merge_combines_composition(self, session):
        merged = session.merge_forces(CENTER, ["B1", "B2"])

        assert merged is not None
        assert merged.unit_counts() == {"inf": 5, "recon": 1}
        assert merged.visibility_radius == 1
        assert merged.hex_id == CENTER
        assert session.forces.get_force("B1") is None
        assert session.index.get_forces_by_hex_id(CENTER) == [merged.force_id]
        assert session.index.check_consistency() == []

    def test_merge_caps_troop_strength(self, session):
        assert session.merge_forces(CENTER, ["B1", "B2"]).troop_strength == 100

    @pytest.mark.parametrize("hex_id,force_ids", [
        (CENTER, ["B1"]),
        (CENTER, ["B1", "B1"]),
        (CENTER, ["B1", "R1"]),  # R1 is elsewhere
        ("H_0_1", ["B1", "B2"]),
        ("", ["B1", "B2"]),
    ])
    def test_invalid_merge(self, session, hex_id, force_ids):
        assert session.merge_forces(hex_id, force_ids) is None
        assert session.forces.get_force("B1") is not None

    def test_factions_must_match(self, session):
        session.move_force("R1", CENTER)
        assert session.merge_forces(CENTER, ["B1", "R1"]) is None


class TestSplit:
    def test_split_keeps_remainder(self, session):
        new_forces = session.split_force("B1", [[{"unit_type_id": "recon", "count": 1}]])

        assert len(new_forces) == 1
        detachment = new_forces[0]
        assert detachment.unit_counts() == {"recon": 1}
        assert detachment.visibility_radius == 3
        assert detachment.hex_id == CENTER

        original = session.forces.get_force("B1")
        assert original.unit_counts() == {"inf": 3}
        assert original.visibility_radius == 2
        assert session.index.get_forces_by_hex_id(CENTER) == sorted(["B1", "B2", detachment.force_id])

    def test_split_everything_removes_original(self, session):
        new_forces = session.split_force("B2", [
            [CompositionEntry("inf", 1)],
            [CompositionEntry("inf", 1)],
        ])

        assert len(new_forces) == 2
        assert session.forces.get_force("B2") is None
        assert not session.index.has_force("B2")
        assert session.index.check_consistency() == []

    @pytest.mark.parametrize("details", [
        [],
        [[]],
        [[{"unit_type_id": "inf", "count": 4}]],
        [[{"unit_type_id": "armor", "count": 1}]],
        [[{"unit_type_id": "inf", "count": 0}]],
        [[{"count": 1}]],
    ])
    def test_invalid_split(self, session, details):
        assert session.split_force("B1", details) == []
        assert session.forces.get_force("B1").unit_counts() == {"inf": 3, "recon": 1}

    def test_split_unknown_force(self, session):
        assert session.split_force("nope", [[{"unit_type_id": "inf"}]]) == []


class TestQueries:
    def test_hex_state(self, session):
        session.recompute_visibility()
        state = session.get_hex_state(CENTER)

        assert state["forces"] == ["B1", "B2"]
        assert state["control_faction"] == "blue"
        assert state["visible_to"]["blue"] is True
        assert state["top_styles"]["mark"]["type"] == "faction_blue"
        assert session.get_hex_state("H_9_9") is None

    def test_state_hides_unseen_enemies(self, session):
        session.recompute_visibility()

        blue = session.get_state("blue")
        assert {f["force_id"] for f in blue["forces"]} == {"B1", "B2"}
        assert blue["control"] == {CENTER: "blue", "H_0_1": "red"}

        session.move_force("R1", "H_1_0")
        assert "R1" in {f["force_id"] for f in session.get_state("blue")["forces"]}

    def test_top_visual_style_unknown_hex(self, session):
        assert session.get_top_visual_style("H_9_9", "mark") is None


class TestSnapshot:
    def test_round_trip(self, session, config):
        session.move_force("R1", "H_1_0")
        session.end_turn()

        restored = BattlefieldSession.from_snapshot(session.to_snapshot(), config, policy=AlwaysBlockPolicy())

        assert restored.turn == 2
        assert restored.current_faction == "blue"
        assert restored.index.get_forces_by_hex_id(CENTER) == ["B1", "B2"]
        assert restored.get_control_faction("H_1_0") == "red"
        assert restored.get_visible_hexes("blue") == session.get_visible_hexes("blue")
        for cell in session.grid:
            assert restored.grid.get_cell(cell.hex_id).visibility.visual_styles == cell.visibility.visual_styles
        assert set(restored.forces.unit_types) == {"inf", "recon"}

    def test_blocking_terrain_survives(self, session, config):
        session.grid.get_cell("H_2_2").terrain.terrain_type = TerrainType.MOUNTAIN
        restored = BattlefieldSession.from_snapshot(session.to_snapshot(), config)
        assert restored.grid.get_cell("H_2_2").terrain.terrain_type == TerrainType.MOUNTAIN

    def test_malformed_snapshot(self, config):
        from battlefield.errors import ScenarioError

        with pytest.raises(ScenarioError):
            BattlefieldSession.from_snapshot({"forces": []}, config)
        with pytest.raises(ScenarioError):
            BattlefieldSession.from_snapshot({"cells": [{"hex_id": "x"}]}, config)
