"""
Cache key expressions and their resolution against a controller.

A key expression is supplied at configuration time and evaluated on every
render. ``KeyExpression.parse`` inspects the supplied value once and returns
one of a closed set of variants, so the render path never re-inspects it.
"""

import functools
import inspect
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Optional

import inflection

from shared.errors import ConfigurationError, MissingCacheKeyError

_current_controller: ContextVar[Optional[Any]] = ContextVar("current_controller", default=None)


class _Unset:
    def __repr__(self):
        return "UNSET"


#: Marker for "no cache key expression configured".
UNSET = _Unset()


def current_controller() -> Any:
    """Return the controller a zero-argument key expression is evaluated for."""
    controller = _current_controller.get()
    if controller is None:
        raise LookupError("current_controller() called outside of a cache key evaluation")
    return controller


@contextmanager
def evaluating_for(controller: Any):
    token = _current_controller.set(controller)
    try:
        yield controller
    finally:
        _current_controller.reset(token)


class KeyExpression:
    """Base class for parsed key expressions."""

    __slots__ = ()

    def evaluate(self, controller: Any) -> Any:
        raise NotImplementedError

    @staticmethod
    def parse(value: Any) -> "KeyExpression":
        """Classify ``value`` into a key expression variant.

        Raises ConfigurationError for functions whose arity is neither 0 nor 1.
        """
        if isinstance(value, KeyExpression):
            return value
        if _is_function(value):
            arity = _arity(value)
            if arity == 0:
                return NullaryCallable(value)
            if arity == 1:
                return UnaryCallable(value)
            raise ConfigurationError(
                f"Invalid callable arity for {value!r} - key and option callables should accept 0 or 1 arguments",
                details={"callable": getattr(value, "__qualname__", repr(value))}
            )
        if callable(value):
            return CallableObject(value)
        return Literal(value)

    def __repr__(self):
        return f"{type(self).__name__}({getattr(self, self.__slots__[0])!r})"


class Literal(KeyExpression):
    __slots__ = ("value",)

    def __init__(self, value: Any):
        self.value = value

    def evaluate(self, controller: Any) -> Any:
        return self.value


class NullaryCallable(KeyExpression):
    """Zero-argument function, evaluated with the controller as ``current_controller()``."""

    __slots__ = ("fn",)

    def __init__(self, fn):
        self.fn = fn

    def evaluate(self, controller: Any) -> Any:
        with evaluating_for(controller):
            return self.fn()


class UnaryCallable(KeyExpression):
    __slots__ = ("fn",)

    def __init__(self, fn):
        self.fn = fn

    def evaluate(self, controller: Any) -> Any:
        with evaluating_for(controller):
            return self.fn(controller)


class CallableObject(KeyExpression):
    """Any other object with ``__call__``; always receives the controller."""

    __slots__ = ("obj",)

    def __init__(self, obj):
        self.obj = obj

    def evaluate(self, controller: Any) -> Any:
        return self.obj(controller)


class ContextAttribute(KeyExpression):
    """Names an attribute or method of the controller."""

    __slots__ = ("name",)

    def __init__(self, name: str):
        self.name = name

    def evaluate(self, controller: Any) -> Any:
        value = getattr(controller, self.name)
        return value() if callable(value) else value


def context_attr(name: str) -> ContextAttribute:
    """Key expression reading ``controller.<name>`` (calling it if it is a method)."""
    return ContextAttribute(name)


def _is_function(value: Any) -> bool:
    return (
        inspect.isfunction(value)
        or inspect.ismethod(value)
        or isinstance(value, functools.partial)
    )


def _arity(fn) -> Optional[int]:
    """0 or 1 when ``fn`` can be called that way, otherwise None."""
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return None

    required = 0
    flexible = False
    for param in signature.parameters.values():
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            if param.default is param.empty:
                required += 1
            else:
                flexible = True
        elif param.kind == param.VAR_POSITIONAL:
            flexible = True
        elif param.kind == param.KEYWORD_ONLY and param.default is param.empty:
            return None

    if required == 0:
        return 1 if flexible else 0
    if required == 1:
        return 1
    return None


def expand_option(controller: Any, option: Any) -> Any:
    """Evaluate a configured option (value or callable) for ``controller``."""
    return KeyExpression.parse(option).evaluate(controller)


def default_cache_key(controller: Any) -> Any:
    """Key derived from the controller's name.

    ``ListsController`` reads ``controller.lists`` for the ``index`` action and
    ``controller.list`` for every other action. Only instance attributes are
    considered, and never the ones the controller itself sets up (``request``,
    ``response``), so framework members such as ``render`` never become keys.
    """
    name = type(controller).__name__
    if name.endswith("Controller"):
        name = name[:-len("Controller")]
    name = inflection.underscore(name)
    if getattr(controller, "action_name", None) == "index":
        name = inflection.pluralize(name)
    else:
        name = inflection.singularize(name)
    if name in getattr(controller, "_framework_attributes", ()):
        return None
    return vars(controller).get(name)


class CacheKeyResolver:
    """Resolves a configured cache key expression for each render."""

    def __init__(self, expression: Any = UNSET):
        self.expression = expression if expression is UNSET else KeyExpression.parse(expression)

    @property
    def uses_default(self) -> bool:
        return self.expression is UNSET

    def resolve(self, controller: Any) -> Any:
        if self.expression is UNSET:
            key = default_cache_key(controller)
        else:
            key = self.expression.evaluate(controller)

        if key is None:
            raise MissingCacheKeyError(details={
                "controller": type(controller).__name__,
                "action": getattr(controller, "action_name", None),
            })
        return key


def resolve(controller: Any, expression: Any = UNSET) -> Any:
    """Resolve ``expression`` (or the default key convention) for ``controller``."""
    return CacheKeyResolver(expression).resolve(controller)
