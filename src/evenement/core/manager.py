from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from evenement.core import log
from evenement.core.contracts import (
    Evenement,
    HandlerFailure,
    HandlerSignatureError,
    InvalidEventTypeError,
    MethodHolder,
)
from evenement.core.handler import declared_handlers, parameter_type
from evenement.core.metrics import gauge_set, inc, observe_hist

Reporter = Callable[[Sequence[HandlerFailure]], None]


class EvenementManager:
    """Exact-type event dispatcher.

    Listeners are plain objects whose class tags methods with
    ``@evenement_handler``. ``register_listener`` files each tagged method under
    the event type of its single parameter; ``call`` runs every handler filed
    under ``type(event)`` in the order they were filed.

    One process-wide instance is reachable through ``get_instance()``; separate
    instances can be built for isolation (tests, embedded subsystems).
    """

    _instance: Optional["EvenementManager"] = None
    _instance_lock = threading.Lock()

    def __init__(self, reporter: Optional[Reporter] = None, name: str = "manager"):
        self.name = name
        self.l = log.get(f"evenement.{name}")
        self.reporter: Reporter = reporter or self._log_failures
        self._refs: Dict[type, List[MethodHolder]] = {}
        self._lock = threading.RLock()

    # -------------------- global access --------------------
    @classmethod
    def get_instance(cls) -> "EvenementManager":
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    # -------------------- registration --------------------
    def register_listener(self, listener: object) -> None:
        """File every tagged method declared on ``type(listener)``.

        Members with a broken signature or a non-event parameter are logged and
        skipped; the rest of the listener is still registered. Members whose
        parameter is deeper than one level below ``Evenement`` are skipped
        without complaint.
        """
        owner = type(listener).__name__
        for name, _attr in declared_handlers(type(listener)):
            method = getattr(listener, name)
            try:
                event_type = parameter_type(method)
            except HandlerSignatureError as e:
                self.l.warning("rejected %s.%s: %s", owner, name, e)
                inc("evenement_register_rejected_total", 1, listener=owner)
                continue

            if not _is_event_subclass(event_type):
                self.l.warning("rejected %s.%s: %r is not an Evenement subclass", owner, name, event_type)
                inc("evenement_register_rejected_total", 1, listener=owner)
                continue

            if not Evenement.is_direct(event_type):
                self.l.debug("skip %s.%s: %s is not a direct Evenement subclass", owner, name, event_type.__name__)
                continue

            self._file(event_type, MethodHolder(method, listener))

    def subscribe(self, event_type: type, handler: Callable[[Any], Any], holder: Optional[object] = None) -> None:
        """Explicitly file ``handler`` under ``event_type`` (no introspection)."""
        if not _is_event_subclass(event_type) or not Evenement.is_direct(event_type):
            raise InvalidEventTypeError(
                f"{event_type!r} is not a direct subclass of Evenement; handlers cannot be filed for it"
            )
        if not callable(handler):
            raise TypeError(f"handler must be callable, got {handler!r}")
        self._file(event_type, MethodHolder(handler, holder))

    def _file(self, event_type: type, record: MethodHolder) -> None:
        with self._lock:
            records = self._refs.setdefault(event_type, [])
            records.append(record)
            n = len(records)
        inc("evenement_register_total", 1, event=event_type.__name__)
        gauge_set("evenement_handlers", float(n), event=event_type.__name__)
        self.l.info("registered %s for %s (#%d)", record.name, event_type.__name__, n)

    # -------------------- dispatch --------------------
    def call(self, event: Evenement) -> None:
        """Deliver ``event`` to the handlers filed under its exact type.

        Never raises because of a handler: failures are collected and handed to
        ``reporter`` once the whole list has run.
        """
        event_type = type(event)
        with self._lock:
            records = self._refs.get(event_type)
            if records is None:
                return
            records = list(records)

        label = event_type.__name__
        inc("evenement_call_total", 1, event=label)

        failures: List[HandlerFailure] = []
        for record in records:
            t0 = time.perf_counter()
            try:
                record.invoke(event)
            except Exception as e:
                failures.append(HandlerFailure(record, event, e))
                inc("evenement_handler_error_total", 1, event=label, handler=record.name)
            else:
                inc("evenement_deliver_total", 1, event=label)
            observe_hist("evenement_handler_latency_ms", (time.perf_counter() - t0) * 1000.0, event=label)

        if failures:
            try:
                self.reporter(failures)
            except Exception as e:
                self.l.error("reporter failed while reporting %d failure(s): %s", len(failures), e, exc_info=True)

    def _log_failures(self, failures: Sequence[HandlerFailure]) -> None:
        for f in failures:
            self.l.error("handler error: %s", f, exc_info=(type(f.error), f.error, f.error.__traceback__))

    # -------------------- introspection --------------------
    def handlers_for(self, event_type: type) -> Tuple[MethodHolder, ...]:
        with self._lock:
            return tuple(self._refs.get(event_type, ()))

    def event_types(self) -> Tuple[type, ...]:
        with self._lock:
            return tuple(self._refs)


def _is_event_subclass(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, Evenement) and tp is not Evenement


def get_instance() -> EvenementManager:
    """The process-wide manager."""
    return EvenementManager.get_instance()
