import pytest

from core.broadcaster import QueueConnection, action_items_channel, parse_channel, queue_channel
from core.exceptions import ConnectionClosed, ValidationError


def test_channel_names():
    assert queue_channel("tmlt") == "queue:tmlt"
    assert action_items_channel("tmlt") == "actionItems:tmlt"
    assert parse_channel("queue:bma-training") == ("queue", "bma-training")
    assert parse_channel("actionItems:caffeine") == ("actionItems", "caffeine")


@pytest.mark.parametrize("channel", ["queue", "queue:", "chat:tmlt", ":tmlt"])
def test_parse_channel_rejects_malformed(channel):
    with pytest.raises(ValidationError):
        parse_channel(channel)


def test_subscribe_sends_snapshot_only_to_new_subscriber(broadcaster, queue, make_connection):
    queue.add("tmlt", "Alice")
    first = make_connection()
    broadcaster.subscribe(first, queue_channel("tmlt"))
    first.clear()

    second = make_connection()
    broadcaster.subscribe(second, queue_channel("tmlt"))

    assert first.messages == []
    assert second.types() == ["queue:updated"]
    assert [i["name"] for i in second.messages[0]["data"]["items"]] == ["Alice"]
    assert second.messages[0]["data"]["currentlyServing"] is None


def test_subscribe_action_items_snapshot(broadcaster, action_items, make_connection):
    action_items.add("tmlt", "Ship it")
    conn = make_connection()

    broadcaster.subscribe(conn, action_items_channel("tmlt"))

    assert conn.types() == ["actionItems:updated"]
    assert conn.messages[0]["data"]["items"][0]["title"] == "Ship it"


def test_broadcast_is_scoped_to_channel(broadcaster, queue, action_items, make_connection):
    alpha = make_connection()
    beta = make_connection()
    broadcaster.subscribe(alpha, queue_channel("alpha"))
    broadcaster.subscribe(beta, queue_channel("beta"))
    broadcaster.subscribe(beta, action_items_channel("beta"))
    alpha.clear()
    beta.clear()

    item = queue.add("alpha", "Alice")
    queue.remove("alpha", item.id)
    action_items.add("alpha", "alpha only")

    assert alpha.types() == [
        "queue:updated", "queue:item-added", "queue:updated", "queue:item-removed",
    ]
    assert beta.messages == []


def test_subscriber_on_both_channels_gets_both_kinds(broadcaster, queue, action_items, make_connection):
    conn = make_connection()
    broadcaster.subscribe(conn, queue_channel("tmlt"))
    broadcaster.subscribe(conn, action_items_channel("tmlt"))
    conn.clear()

    queue.add("tmlt", "Alice")
    action_items.add("tmlt", "Task")

    assert conn.types() == [
        "queue:updated", "queue:item-added", "actionItems:updated", "actionItems:item-added",
    ]


def test_snapshots_are_detached_from_store(broadcaster, queue, make_connection):
    conn = make_connection()
    broadcaster.subscribe(conn, queue_channel("tmlt"))

    queue.add("tmlt", "Alice")
    queue.add("tmlt", "Bob")

    updates = [m["data"] for m in conn.messages if m["type"] == "queue:updated"]
    assert [len(u["items"]) for u in updates] == [0, 1, 2]


def test_dead_connection_is_pruned_on_next_write(broadcaster, queue, make_connection):
    alive = make_connection()
    dead = make_connection()
    broadcaster.subscribe(alive, queue_channel("tmlt"))
    broadcaster.subscribe(dead, queue_channel("tmlt"))
    broadcaster.subscribe(dead, action_items_channel("tmlt"))
    assert broadcaster.subscriber_count(queue_channel("tmlt")) == 2

    dead.close()
    # still registered until a write fails
    assert broadcaster.subscriber_count(queue_channel("tmlt")) == 2

    queue.add("tmlt", "Alice")

    assert broadcaster.subscriber_count(queue_channel("tmlt")) == 1
    assert broadcaster.channels_for(dead) == []
    assert alive.types()[-2:] == ["queue:updated", "queue:item-added"]


def test_unsubscribe(broadcaster, queue, make_connection):
    conn = make_connection()
    broadcaster.subscribe(conn, queue_channel("tmlt"))
    broadcaster.subscribe(conn, action_items_channel("tmlt"))
    conn.clear()

    assert broadcaster.unsubscribe(conn, queue_channel("tmlt")) is True
    assert broadcaster.unsubscribe(conn, queue_channel("tmlt")) is False
    queue.add("tmlt", "Alice")
    assert conn.messages == []

    assert broadcaster.unsubscribe_all(conn) == [action_items_channel("tmlt")]
    assert broadcaster.connection_count() == 0


def test_send_to_closed_connection_reports_failure(broadcaster, make_connection):
    conn = make_connection()
    broadcaster.subscribe(conn, queue_channel("tmlt"))
    conn.close()

    assert broadcaster.send(conn, "queue:error", "boom") is False
    assert broadcaster.subscriber_count(queue_channel("tmlt")) == 0


def test_store_returns_same_state_per_team(store):
    assert store.get_queue_state("tmlt") is store.get_queue_state("tmlt")
    assert store.get_action_items_state("tmlt") is store.get_action_items_state("tmlt")
    assert store.get_queue_state("tmlt") is not store.get_queue_state("caffeine")
    assert store.teams() == ["caffeine", "tmlt"]


def test_full_buffer_closes_connection():
    conn = QueueConnection(maxsize=2)
    conn.send({"type": "a"})
    conn.send({"type": "b"})

    with pytest.raises(ConnectionClosed):
        conn.send({"type": "c"})
    assert conn.closed is True
    # pending messages are dropped so the writer sees the close sentinel
    assert conn.queue.get_nowait() is None


def test_stalled_subscriber_is_pruned(broadcaster, queue):
    stalled = QueueConnection(maxsize=1)
    broadcaster.subscribe(stalled, queue_channel("tmlt"))

    queue.add("tmlt", "Alice")

    assert stalled.closed is True
    assert broadcaster.subscriber_count(queue_channel("tmlt")) == 0
