"""Tests for the change notification channel."""

from proctree.events import ChangeNotifier


def test_emit_calls_every_listener():
    notifier = ChangeNotifier()
    calls = []
    notifier.subscribe(lambda: calls.append("a"))
    notifier.subscribe(lambda: calls.append("b"))

    notifier.emit()

    assert calls == ["a", "b"]


def test_unsubscribe():
    notifier = ChangeNotifier()
    calls = []
    unsubscribe = notifier.subscribe(lambda: calls.append(1))

    unsubscribe()
    unsubscribe()  # Second call is harmless
    notifier.emit()

    assert calls == []
    assert len(notifier) == 0


def test_failing_listener_does_not_stop_others(caplog):
    """Test a listener that raises is logged and the rest still run."""
    notifier = ChangeNotifier()
    calls = []

    def broken():
        raise RuntimeError("boom")

    notifier.subscribe(broken)
    notifier.subscribe(lambda: calls.append(1))

    notifier.emit()

    assert calls == [1]
    assert "change listener" in caplog.text


def test_clear():
    notifier = ChangeNotifier()
    notifier.subscribe(lambda: None)
    notifier.clear()
    assert len(notifier) == 0
