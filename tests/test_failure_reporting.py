import logging
from dataclasses import dataclass

from evenement.core.contracts import Evenement, HandlerFailure
from evenement.core.handler import evenement_handler
from evenement.core.manager import EvenementManager
from evenement.core.metrics import counter_value


@dataclass
class PingEvent(Evenement):
    seq: int = 0


class Flaky:
    def __init__(self, journal):
        self.journal = journal

    @evenement_handler
    def first(self, ev: PingEvent):
        self.journal.append("first")

    @evenement_handler
    def boom(self, ev: PingEvent):
        raise RuntimeError(f"boom #{ev.seq}")

    @evenement_handler
    def last(self, ev: PingEvent):
        self.journal.append("last")


def test_raising_handler_does_not_stop_the_rest(manager):
    journal = []
    manager.register_listener(Flaky(journal))

    manager.call(PingEvent(1))  # must not raise

    assert journal == ["first", "last"]
    assert counter_value("evenement_handler_error_total", event="PingEvent", handler="Flaky.boom") == 1.0
    assert counter_value("evenement_deliver_total", event="PingEvent") == 2.0


def test_default_reporter_logs_with_traceback(manager, caplog):
    caplog.set_level(logging.ERROR, logger="evenement")
    manager.register_listener(Flaky([]))

    manager.call(PingEvent(7))

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "Flaky.boom" in errors[0].getMessage()
    assert errors[0].exc_info is not None and isinstance(errors[0].exc_info[1], RuntimeError)


def test_injected_reporter_gets_one_batch_per_dispatch():
    batches = []
    mgr = EvenementManager(reporter=batches.append, name="reporting")

    class TwoBad:
        @evenement_handler
        def a(self, ev: PingEvent):
            raise ValueError("a")

        @evenement_handler
        def b(self, ev: PingEvent):
            raise KeyError("b")

    mgr.register_listener(TwoBad())
    ev = PingEvent(2)
    mgr.call(ev)
    mgr.call(PingEvent(3))

    assert len(batches) == 2
    first = batches[0]
    assert all(isinstance(f, HandlerFailure) for f in first)
    assert [type(f.error) for f in first] == [ValueError, KeyError]
    assert first[0].event is ev
    assert first[0].record.name.endswith("TwoBad.a")


def test_reporter_only_sees_failing_dispatches():
    batches = []
    mgr = EvenementManager(reporter=batches.append)
    mgr.register_listener(Flaky.__new__(Flaky))  # no journal: first and last fail too

    mgr2 = EvenementManager(reporter=batches.append)
    mgr2.subscribe(PingEvent, lambda ev: None)
    mgr2.call(PingEvent())
    assert batches == []

    mgr.call(PingEvent())
    assert len(batches) == 1 and len(batches[0]) == 3


def test_broken_reporter_is_contained(caplog):
    def reporter(failures):
        raise RuntimeError("reporter down")

    mgr = EvenementManager(reporter=reporter, name="broken-reporter")
    mgr.subscribe(PingEvent, lambda ev: 1 / 0)

    caplog.set_level(logging.ERROR, logger="evenement")
    mgr.call(PingEvent())

    msgs = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
    assert any("reporter failed" in m for m in msgs)


def test_no_retry_on_later_dispatches(manager):
    calls = []

    def sometimes(ev):
        calls.append(ev.seq)
        if ev.seq == 1:
            raise RuntimeError("once")

    manager.subscribe(PingEvent, sometimes)
    manager.call(PingEvent(1))
    manager.call(PingEvent(2))
    assert calls == [1, 2]
