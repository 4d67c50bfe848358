from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

__all__ = [
    "Evenement",
    "MethodHolder",
    "HandlerFailure",
    "EvenementError",
    "HandlerSignatureError",
    "InvalidEventTypeError",
    "WireConfigError",
]


# --------- Errors ---------
class EvenementError(Exception):
    """Base class for everything this package raises on its own."""


class HandlerSignatureError(EvenementError):
    """A tagged handler does not take exactly one annotated event parameter."""


class InvalidEventTypeError(EvenementError):
    """An event type cannot be used as a registry key."""


class WireConfigError(EvenementError):
    """A listener wiring document is malformed or points at missing code."""


# --------- Root event ---------
class Evenement:
    """Root of every dispatchable event.

    Concrete events subclass this directly, usually as dataclasses carrying
    their own payload::

        @dataclass
        class PlayerJoined(Evenement):
            player: str

    Only direct subclasses can have handlers filed for them. A subclass of
    ``PlayerJoined`` is dispatched under its own type and never reaches the
    handlers of its parent.
    """

    __slots__ = ()

    @classmethod
    def is_direct(cls, event_type: Any) -> bool:
        """True when ``event_type`` sits exactly one level below ``Evenement``.

        Follows the first declared base upward until the next step would be
        ``Evenement`` or nothing at all; the walk must end where it started.
        """
        if not isinstance(event_type, type):
            return False
        cur = event_type
        while cur.__bases__ and cur.__bases__[0] is not Evenement:
            cur = cur.__bases__[0]
        return cur is event_type and bool(cur.__bases__)


# --------- Registry records ---------
@dataclass(frozen=True)
class MethodHolder:
    """A handler plus the listener it was found on (``None`` for bare functions)."""
    method: Callable[[Evenement], Any]
    holder: Optional[object] = None

    @property
    def name(self) -> str:
        fn_name = getattr(self.method, "__qualname__", None) or repr(self.method)
        if self.holder is None or "." in fn_name:
            return fn_name
        return f"{type(self.holder).__name__}.{fn_name}"

    def invoke(self, event: Evenement) -> Any:
        return self.method(event)


@dataclass(frozen=True)
class HandlerFailure:
    """One handler that raised during a single dispatch."""
    record: MethodHolder
    event: Evenement
    error: BaseException

    def __str__(self) -> str:
        return f"{self.record.name} failed on {type(self.event).__name__}: {self.error!r}"
