"""Tests for event channels."""

from acp_client.events import EventChannel


def test_listeners_called_in_registration_order():
    channel = EventChannel("message")
    calls = []
    channel.subscribe(lambda value: calls.append(("first", value)))
    channel.subscribe(lambda value: calls.append(("second", value)))

    delivered = channel.emit(1)

    assert delivered == 2
    assert calls == [("first", 1), ("second", 1)]


def test_failing_listener_does_not_stop_others():
    channel = EventChannel("message")
    received = []

    def broken(_value):
        raise RuntimeError("listener bug")

    channel.subscribe(broken)
    channel.subscribe(received.append)

    assert channel.emit("x") == 1
    assert received == ["x"]


def test_unsubscribe():
    channel = EventChannel("close")
    received = []
    unsubscribe = channel.subscribe(lambda code, reason: received.append((code, reason)))

    channel.emit(1000, "bye")
    unsubscribe()
    unsubscribe()
    channel.emit(1001, "again")

    assert received == [(1000, "bye")]
    assert len(channel) == 0


def test_listener_may_unsubscribe_during_emit():
    channel = EventChannel("message")
    received = []
    unsubscribers = []

    def once(value):
        received.append(value)
        unsubscribers[0]()

    unsubscribers.append(channel.subscribe(once))
    channel.emit("a")
    channel.emit("b")

    assert received == ["a"]


def test_clear():
    channel = EventChannel("raw")
    channel.subscribe(lambda raw: None)
    channel.clear()

    assert channel.emit("x") == 0
