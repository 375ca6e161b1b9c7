"""Tests for the per-message session broadcaster."""

import pytest

from lumen.session.blocks import Block, source_block, text_block, widget_block
from lumen.session.broadcaster import MESSAGE_END, Session, replay
from tests.fakes import EventLog

# -- Blocks ------------------------------------------------------------------


def test_block_ids_are_unique():
    ids = {text_block("x").id for _ in range(200)}
    assert len(ids) == 200


def test_widget_block_shape():
    block = widget_block("weather", {"location": "Paris"})
    assert block.type == "widget"
    assert block.data == {"widgetType": "weather", "params": {"location": "Paris"}}


# -- Emission ----------------------------------------------------------------


def test_events_arrive_in_emission_order(session, events):
    session.emit("status", {"state": "received"})
    session.emit_block(Block(id="t1", type="text", data="hi"))
    session.update_block("t1", [{"op": "replace", "path": "/data", "value": "hello"}])
    session.emit(MESSAGE_END)

    assert events.types == ["status", "block", "updateBlock", "messageEnd"]
    assert events.events[0] == {"type": "status", "state": "received"}
    assert events.events[1]["block"] == {"id": "t1", "type": "text", "data": "hi"}
    assert events.events[2]["blockId"] == "t1"


def test_emit_block_accepts_dicts(session, events):
    session.emit_block({"id": "s1", "type": "source", "data": []})
    assert session.get_block("s1") == {"id": "s1", "type": "source", "data": []}


def test_duplicate_block_id_rejected(session):
    session.emit_block(Block(id="dup", type="text", data=""))
    with pytest.raises(ValueError, match="already exists"):
        session.emit_block(Block(id="dup", type="text", data="again"))


def test_update_unknown_block_raises(session):
    with pytest.raises(KeyError):
        session.update_block("missing", [{"op": "replace", "path": "/data", "value": 1}])


def test_update_forwards_only_the_patch(session, events):
    block = source_block([{"url": "https://a.example"}])
    session.emit_block(block)
    patch = [{"op": "add", "path": "/data/-", "value": {"url": "https://b.example"}}]
    session.update_block(block.id, patch)

    update = events.of_type("updateBlock")[0]
    assert update["patch"] == patch
    assert "block" not in update
    assert len(session.get_block(block.id)["data"]) == 2


def test_replay_matches_final_state(session, events):
    block = text_block("")
    session.emit_block(block)
    for text in ["a", "ab", "abc"]:
        session.update_block(block.id, [{"op": "replace", "path": "/data", "value": text}])

    initial = events.of_type("block")[0]["block"]
    patches = [e["patch"] for e in events.of_type("updateBlock")]
    assert replay(initial, patches) == session.get_block(block.id)


def test_reads_return_copies(session):
    session.emit_block(Block(id="w", type="widget", data={"params": {"n": 1}}))
    snapshot = session.get_block("w")
    snapshot["data"]["params"]["n"] = 99
    assert session.get_block("w")["data"]["params"]["n"] == 1
    assert session.get_all_blocks()[0]["data"]["params"]["n"] == 1


def test_get_block_missing_returns_none(session):
    assert session.get_block("nope") is None


# -- Closing -----------------------------------------------------------------


def test_message_end_closes_session(session, events):
    session.emit_block(Block(id="t", type="text", data=""))
    session.emit(MESSAGE_END)
    assert session.closed

    session.emit("status", {"state": "late"})
    session.emit_block(Block(id="t2", type="text", data=""))
    session.update_block("t", [{"op": "replace", "path": "/data", "value": "late"}])
    session.emit(MESSAGE_END)

    assert events.types == ["block", "messageEnd"]
    assert session.get_block("t")["data"] == ""


# -- Subscribers -------------------------------------------------------------


def test_failing_subscriber_does_not_block_others(session):
    def broken(event):
        raise RuntimeError("boom")

    log = EventLog()
    session.subscribe(broken)
    session.subscribe(log)
    session.emit("status", {"state": "received"})
    assert log.types == ["status"]


def test_unsubscribe_is_idempotent(session):
    log = EventLog()
    unsubscribe = session.subscribe(log)
    assert session.subscriber_count == 1
    unsubscribe()
    unsubscribe()
    assert session.subscriber_count == 0
    session.emit("status")
    assert log.events == []


def test_unsubscribe_all(session):
    session.subscribe(EventLog())
    session.subscribe(EventLog())
    session.unsubscribe_all()
    assert session.subscriber_count == 0


def test_subscriber_sees_only_later_events(session):
    session.emit("status", {"state": "received"})
    log = EventLog()
    session.subscribe(log)
    session.emit("status", {"state": "classifying"})
    assert [e["state"] for e in log.events] == ["classifying"]
