from __future__ import annotations

import inspect
import typing
from typing import Any, Callable, Iterator, Optional, Tuple, TypeVar, overload

from evenement.core.contracts import HandlerSignatureError

MARK = "__evenement_handler__"

F = TypeVar("F", bound=Callable[..., Any])


@overload
def evenement_handler(fn: F) -> F: ...
@overload
def evenement_handler(fn: None = None) -> Callable[[F], F]: ...


def evenement_handler(fn: Optional[F] = None):
    """Tag a listener method so ``EvenementManager.register_listener`` picks it up.

    Usable bare (``@evenement_handler``) or called (``@evenement_handler()``).
    The function itself is returned untouched apart from the tag.
    """
    def mark(f: F) -> F:
        target = f.__func__ if isinstance(f, (staticmethod, classmethod)) else f
        setattr(target, MARK, True)
        return f

    if fn is None:
        return mark
    return mark(fn)


def _unwrap(obj: Any) -> Any:
    if isinstance(obj, (staticmethod, classmethod)):
        return obj.__func__
    return obj


def is_evenement_handler(obj: Any) -> bool:
    return getattr(_unwrap(obj), MARK, False) is True


def declared_handlers(cls: type) -> Iterator[Tuple[str, Any]]:
    """Tagged members defined on ``cls`` itself, in definition order (no inheritance)."""
    for name, attr in vars(cls).items():
        if is_evenement_handler(attr):
            yield name, attr


def parameter_type(fn: Callable[..., Any]) -> Any:
    """Annotated type of the single event parameter of ``fn``.

    ``fn`` should be what the manager will actually call, i.e. a bound method
    for instance handlers, so ``self`` / ``cls`` are already out of the way.

    The event is the first positional parameter. Anything after it must have
    a default, since the manager calls ``fn(event)`` and nothing else.
    """
    qualname = getattr(fn, "__qualname__", fn)
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError, NameError) as e:
        raise HandlerSignatureError(f"{fn!r}: signature not introspectable ({e})") from e

    positional = []
    for p in sig.parameters.values():
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            positional.append(p)
        elif p.kind is inspect.Parameter.KEYWORD_ONLY and p.default is inspect.Parameter.empty:
            raise HandlerSignatureError(f"{qualname!r}: keyword-only parameter {p.name!r} has no default")

    required = [p for p in positional[1:] if p.default is inspect.Parameter.empty]
    if not positional or required:
        raise HandlerSignatureError(
            f"{qualname!r} takes {len(positional)} positional parameters "
            f"({len(required)} extra without default), expected exactly 1"
        )
    param = positional[0]

    try:
        hints = typing.get_type_hints(_unwrap(getattr(fn, "__func__", fn)))
    except Exception as e:  # NameError for unresolved forward refs, TypeError for odd objects
        raise HandlerSignatureError(
            f"{qualname!r}: cannot resolve annotations ({e})"
        ) from e

    ann = hints.get(param.name, inspect.Parameter.empty)
    if ann is inspect.Parameter.empty:
        raise HandlerSignatureError(
            f"{qualname!r}: parameter {param.name!r} has no type annotation"
        )
    return ann
