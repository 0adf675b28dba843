import pytest

from core.broadcaster import action_items_channel
from core.exceptions import ItemNotFound, ValidationError
from models import DESCRIPTION_MAX_LENGTH, TITLE_MAX_LENGTH

TEAM = "caffeine"
IMAGE = "data:image/png;base64,iVBORw0KGgo="


def test_add_creates_pending_item(action_items):
    item = action_items.add(TEAM, "  Write release notes ", "  for 1.2  ")

    assert item.title == "Write release notes"
    assert item.description == "for 1.2"
    assert item.completed is False
    assert item.completed_at is None
    assert item.team == TEAM
    assert action_items.get_state(TEAM).items == {item.id: item}


def test_blank_description_is_dropped(action_items):
    item = action_items.add(TEAM, "Title", "   ")
    assert item.description is None


@pytest.mark.parametrize("title", ["", "  ", None])
def test_add_rejects_blank_title(action_items, title):
    with pytest.raises(ValidationError):
        action_items.add(TEAM, title)
    assert action_items.get_state(TEAM).items == {}


def test_add_enforces_length_bounds(action_items):
    with pytest.raises(ValidationError):
        action_items.add(TEAM, "t" * (TITLE_MAX_LENGTH + 1))
    with pytest.raises(ValidationError):
        action_items.add(TEAM, "ok", "d" * (DESCRIPTION_MAX_LENGTH + 1))


def test_complete_then_uncomplete_round_trip(action_items):
    item = action_items.add(TEAM, "Fix flaky test", "CI only")
    before = (item.id, item.title, item.description, item.created_at)

    action_items.complete(TEAM, item.id, IMAGE, "proof.png")
    assert item.completed is True
    assert item.completed_at is not None
    assert item.completion_image == IMAGE
    assert item.completion_image_name == "proof.png"

    action_items.uncomplete(TEAM, item.id)
    assert item.completed is False
    assert item.completed_at is None
    assert item.completion_image is None
    assert item.completion_image_name is None
    assert (item.id, item.title, item.description, item.created_at) == before


def test_complete_without_image(action_items):
    item = action_items.add(TEAM, "No proof needed")
    action_items.complete(TEAM, item.id)
    assert item.completed is True
    assert item.completion_image is None


@pytest.mark.parametrize("operation", ["complete", "uncomplete", "remove"])
def test_missing_item_is_not_found(action_items, operation):
    with pytest.raises(ItemNotFound):
        getattr(action_items, operation)(TEAM, "missing")


def test_remove_deletes_item(action_items):
    keep = action_items.add(TEAM, "keep")
    drop = action_items.add(TEAM, "drop")

    action_items.remove(TEAM, drop.id)

    assert list(action_items.get_state(TEAM).items) == [keep.id]


def test_pending_and_completed_views_keep_insertion_order(action_items):
    a = action_items.add(TEAM, "a")
    b = action_items.add(TEAM, "b")
    c = action_items.add(TEAM, "c")
    d = action_items.add(TEAM, "d")
    action_items.complete(TEAM, c.id)
    action_items.complete(TEAM, a.id)

    state = action_items.get_state(TEAM)
    assert state.pending() == [b, d]
    assert state.completed() == [a, c]


def test_broadcast_sequences(action_items, broadcaster, make_connection):
    conn = make_connection()
    broadcaster.subscribe(conn, action_items_channel(TEAM))
    conn.clear()

    item = action_items.add(TEAM, "Review PR")
    assert conn.types() == ["actionItems:updated", "actionItems:item-added"]
    assert conn.messages[1]["data"]["title"] == "Review PR"
    conn.clear()

    action_items.complete(TEAM, item.id, IMAGE, "proof.png")
    assert conn.types() == ["actionItems:updated", "actionItems:item-completed"]
    assert conn.messages[0]["data"]["items"][0]["completionImageName"] == "proof.png"
    assert conn.messages[1]["data"] == {"id": item.id}
    conn.clear()

    action_items.uncomplete(TEAM, item.id)
    assert conn.types() == ["actionItems:updated"]
    conn.clear()

    action_items.remove(TEAM, item.id)
    assert conn.types() == ["actionItems:updated", "actionItems:item-removed"]
    assert conn.messages[0]["data"]["items"] == []


def test_teams_are_independent(action_items, queue):
    alpha_item = action_items.add("alpha", "alpha task")
    queue.add("alpha", "Alice")

    assert action_items.get_state("beta").items == {}
    assert queue.get_state("beta").items == []
    with pytest.raises(ItemNotFound):
        action_items.complete("beta", alpha_item.id)
    assert alpha_item.completed is False
