"""Tests for DeltaEngine: cumulative fixture stats to incremental events."""

import pytest

from conftest import make_fixture
from live.delta_engine import POLICY_CORRECT, DeltaEngine
from live.models import OTHER_CATEGORY, StatIdentifier

T0 = "2024-08-17T14:30:00+00:00"


def goals(gameweek, home=(), away=(), fixture_id=100, **kwargs):
    return make_fixture(fixture_id, gameweek, stats={"goals_scored": {"h": list(home), "a": list(away)}}, **kwargs)


def test_first_observation_emits_full_value():
    engine = DeltaEngine()

    events = engine.process(5, [goals(5, home=[(10, 1)])], T0, "gw5_1")

    assert len(events) == 1
    event = events[0]
    assert event.gameweek == 5
    assert event.fixture_id == 100
    assert event.event_type == "goals_scored"
    assert event.player_id == 10
    assert event.delta_value == 1
    assert event.side == "H"
    assert event.occurred_at == T0
    assert event.category == "goal"
    assert event.session_id == "gw5_1"


def test_cumulative_sequence_emits_only_increases():
    engine = DeltaEngine()
    deltas = []
    for value in (0, 1, 1, 3):
        events = engine.process(5, [goals(5, home=[(10, value)])], T0)
        deltas.append([e.delta_value for e in events])

    assert deltas == [[], [1], [], [2]]


def test_sum_of_deltas_equals_final_value():
    engine = DeltaEngine()
    total = 0
    for value in (1, 1, 2, 4, 4, 5):
        total += sum(e.delta_value for e in engine.process(5, [goals(5, away=[(22, value)])], T0))

    assert total == 5
    assert engine.last_value(5, 100, "goals_scored", 22, "A") == 5


def test_same_player_on_both_sides_is_tracked_separately():
    engine = DeltaEngine()
    fixture = make_fixture(100, 5, stats={"own_goals": {"h": [(10, 1)], "a": [(10, 1)]}})

    events = engine.process(5, [fixture], T0)

    assert [(e.side, e.delta_value) for e in events] == [("H", 1), ("A", 1)]
    assert all(e.category == "own_goal" for e in events)


def test_inactive_fixtures_are_skipped():
    engine = DeltaEngine()
    not_started = goals(5, home=[(10, 1)], fixture_id=1, started=False)
    finished = goals(5, home=[(11, 2)], fixture_id=2, finished=True)

    assert engine.process(5, [not_started, finished], T0) == []
    assert len(engine) == 0


def test_unknown_identifier_passes_through():
    engine = DeltaEngine()
    fixture = make_fixture(100, 5, stats={"expected_threat": {"h": [(10, 3)]}})

    events = engine.process(5, [fixture], T0)

    assert len(events) == 1
    assert events[0].event_type == "expected_threat"
    assert events[0].category == OTHER_CATEGORY


def test_stat_identifier_categories():
    assert StatIdentifier.parse("yellow_cards").category == "card"
    assert StatIdentifier.parse("bonus").is_known
    assert not StatIdentifier.parse("something_new").is_known


def test_decrease_is_ignored_by_default_but_cached():
    engine = DeltaEngine()
    engine.process(5, [goals(5, home=[(10, 1)])], T0)

    assert engine.process(5, [goals(5, home=[(10, 0)])], T0) == []
    assert engine.last_value(5, 100, "goals_scored", 10, "H") == 0

    # Re-awarded goal is a fresh increase from the corrected value
    events = engine.process(5, [goals(5, home=[(10, 1)])], T0)
    assert [e.delta_value for e in events] == [1]


def test_decrease_emits_signed_event_under_correct_policy():
    engine = DeltaEngine(POLICY_CORRECT)
    engine.process(5, [goals(5, home=[(10, 2)])], T0)

    events = engine.process(5, [goals(5, home=[(10, 1)])], T0)

    assert [e.delta_value for e in events] == [-1]


def test_unknown_policy_rejected():
    with pytest.raises(ValueError):
        DeltaEngine("clamp")


def test_identical_sequences_produce_identical_events():
    sequence = [
        [goals(5, home=[(10, 1)])],
        [goals(5, home=[(10, 1)], away=[(20, 1)])],
        [goals(5, home=[(10, 2)], away=[(20, 1)])],
    ]

    def run():
        engine = DeltaEngine()
        events = []
        for fixtures in sequence:
            events.extend(engine.process(5, fixtures, T0, "s"))
        return events

    assert run() == run()


def test_seed_prevents_re_emission():
    engine = DeltaEngine()
    seeded = engine.seed([
        {"fixture_id": 100, "gameweek": 5, "stat_identifier": "goals_scored", "side": "H", "player_id": 10, "value": 2},
    ])

    assert seeded == 1
    assert engine.process(5, [goals(5, home=[(10, 2)])], T0) == []
    assert [e.delta_value for e in engine.process(5, [goals(5, home=[(10, 3)])], T0)] == [1]


def test_cache_is_scoped_by_gameweek_and_fixture():
    engine = DeltaEngine()
    engine.process(5, [goals(5, home=[(10, 1)], fixture_id=1)], T0)

    # Same player and stat in another fixture starts from zero
    events = engine.process(5, [goals(5, home=[(10, 1)], fixture_id=2)], T0)

    assert [(e.fixture_id, e.delta_value) for e in events] == [(2, 1)]


def test_restore_rolls_back_to_checkpoint():
    engine = DeltaEngine()
    engine.process(5, [goals(5, home=[(10, 1)])], T0)
    checkpoint = engine.checkpoint()

    engine.process(5, [goals(5, home=[(10, 2)])], T0)
    engine.restore(checkpoint)

    events = engine.process(5, [goals(5, home=[(10, 2)])], T0)
    assert [e.delta_value for e in events] == [1]


def test_discard_clears_cache():
    engine = DeltaEngine()
    engine.process(5, [goals(5, home=[(10, 1)])], T0)
    assert len(engine) == 1

    engine.discard()

    assert len(engine) == 0
    assert engine.last_value(5, 100, "goals_scored", 10, "H") is None
