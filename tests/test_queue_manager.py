import random

import pytest

from core.broadcaster import queue_channel
from core.exceptions import ItemNotFound, NotFoundError, ValidationError
from models import NAME_MAX_LENGTH

TEAM = "bma-training"


def names(state):
    return [item.name for item in state.items]


def test_fast_track_scenario(queue):
    alice = queue.add(TEAM, "Alice")
    assert names(queue.get_state(TEAM)) == ["Alice"]

    queue.add(TEAM, "Bob", fast_track=True)
    assert names(queue.get_state(TEAM)) == ["Bob", "Alice"]

    queue.add(TEAM, "Carol", fast_track=True)
    assert names(queue.get_state(TEAM)) == ["Bob", "Carol", "Alice"]

    queue.remove(TEAM, alice.id)
    assert names(queue.get_state(TEAM)) == ["Bob", "Carol"]


def test_fast_track_items_always_form_ordered_prefix(queue):
    rng = random.Random(1234)
    expected_fast, expected_normal = [], []
    for n in range(200):
        fast = rng.random() < 0.4
        queue.add(TEAM, f"user-{n}", fast_track=fast)
        (expected_fast if fast else expected_normal).append(f"user-{n}")

    state = queue.get_state(TEAM)
    assert names(state) == expected_fast + expected_normal
    flags = [item.fast_track for item in state.items]
    assert flags == sorted(flags, reverse=True)


def test_fast_track_into_all_fast_track_queue_appends(queue):
    queue.add(TEAM, "A", fast_track=True)
    queue.add(TEAM, "B", fast_track=True)
    assert names(queue.get_state(TEAM)) == ["A", "B"]


def test_add_trims_name_and_sets_fields(queue):
    item = queue.add(TEAM, "  Dana  ")
    assert item.name == "Dana"
    assert item.team == TEAM
    assert item.fast_track is False
    assert item.timer_started is None and item.timer_duration is None
    assert len(item.id) == 9


@pytest.mark.parametrize("name", ["", "   ", None])
def test_add_rejects_blank_name(queue, name):
    with pytest.raises(ValidationError):
        queue.add(TEAM, name)
    assert queue.get_state(TEAM).items == []


def test_add_rejects_overlong_name(queue):
    with pytest.raises(ValidationError):
        queue.add(TEAM, "x" * (NAME_MAX_LENGTH + 1))


def test_add_requires_team(queue):
    with pytest.raises(ValidationError):
        queue.add("", "Alice")


def test_core_accepts_any_non_empty_team(queue):
    item = queue.add("some-new-team", "Alice")
    assert queue.get_state("some-new-team").items == [item]


def test_remove_unknown_item(queue):
    queue.add(TEAM, "Alice")
    with pytest.raises(ItemNotFound):
        queue.remove(TEAM, "missing")
    assert names(queue.get_state(TEAM)) == ["Alice"]


def test_remove_from_wrong_team_is_not_found(queue):
    item = queue.add("alpha", "Alice")
    with pytest.raises(NotFoundError):
        queue.remove("beta", item.id)
    assert queue.get_state("alpha").items == [item]


def test_remove_serving_item_clears_currently_serving(queue, timers):
    bob = queue.add(TEAM, "Bob")
    queue.start_timer(TEAM, bob.id, 5000)
    assert queue.get_state(TEAM).currently_serving is bob

    queue.remove(TEAM, bob.id)

    state = queue.get_state(TEAM)
    assert state.find(bob.id) is None
    assert state.currently_serving is None
    assert timers.get(bob.id) is None


def test_add_broadcasts_snapshot_then_event(queue, broadcaster, make_connection):
    conn = make_connection()
    broadcaster.subscribe(conn, queue_channel(TEAM))
    conn.clear()

    item = queue.add(TEAM, "Alice")

    assert conn.types() == ["queue:updated", "queue:item-added"]
    snapshot, event = conn.messages
    assert [i["id"] for i in snapshot["data"]["items"]] == [item.id]
    assert event["data"]["name"] == "Alice"
    assert event["data"]["fastTrack"] is False


def test_remove_broadcasts_snapshot_then_event(queue, broadcaster, make_connection):
    item = queue.add(TEAM, "Alice")
    conn = make_connection()
    broadcaster.subscribe(conn, queue_channel(TEAM))
    conn.clear()

    queue.remove(TEAM, item.id)

    assert conn.types() == ["queue:updated", "queue:item-removed"]
    assert conn.messages[0]["data"]["items"] == []
    assert conn.messages[1]["data"] == {"id": item.id}


def test_failed_operations_do_not_broadcast(queue, broadcaster, make_connection):
    conn = make_connection()
    broadcaster.subscribe(conn, queue_channel(TEAM))
    conn.clear()

    with pytest.raises(ValidationError):
        queue.add(TEAM, " ")
    with pytest.raises(ItemNotFound):
        queue.remove(TEAM, "nope")

    assert conn.messages == []


def test_get_state_does_not_broadcast(queue, broadcaster, make_connection):
    conn = make_connection()
    broadcaster.subscribe(conn, queue_channel(TEAM))
    conn.clear()

    queue.get_state(TEAM)

    assert conn.messages == []
