from __future__ import annotations

import inspect
import logging
import typing
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Generic,
    Protocol,
    TypeVar,
    Union,
    cast,
    get_args,
    get_origin,
    get_type_hints,
)

from ._errors import AmbiguousConstructorError, ConfigurationError
from ._keys import Key


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")

_INJECT_MARKER = "__liteinject_inject__"
_SCOPE_MARKER = "__liteinject_scope__"


class Scope(Enum):
    UNSCOPED = "unscoped"
    SINGLETON = "singleton"


@dataclass(frozen=True)
class Dependency:
    """One entry in a recipe's dependency list.

    - `name` is None for positional arguments, otherwise the keyword to pass.
    - `optional` parameters keep their default when `key` cannot be produced.
    - `lazy` parameters receive a `Provider` for `key` instead of an instance.
    """

    key: Key
    name: str | None = None
    kind: Any = inspect.Parameter.POSITIONAL_OR_KEYWORD
    optional: bool = False
    lazy: bool = False

    @property
    def positional(self) -> bool:
        return self.name is None or self.kind is inspect.Parameter.POSITIONAL_ONLY


@dataclass(frozen=True)
class LinkedRecipe:
    target: Key


@dataclass(frozen=True, eq=False)
class InstanceRecipe:
    value: Any


@dataclass(frozen=True)
class FactoryRecipe:
    factory: Callable[..., Any]
    dependencies: tuple[Dependency, ...] = ()


@dataclass(frozen=True)
class ConstructorRecipe:
    cls: type
    constructor: Callable[..., Any]
    dependencies: tuple[Dependency, ...] = ()


Recipe = Union[LinkedRecipe, InstanceRecipe, FactoryRecipe, ConstructorRecipe]


@dataclass(frozen=True)
class Binding:
    key: Key
    recipe: Recipe
    scope: Scope = Scope.UNSCOPED
    source: str = field(default="", compare=False)

    def __str__(self) -> str:
        recipe = self.recipe
        if isinstance(recipe, LinkedRecipe):
            target = str(recipe.target)
        elif isinstance(recipe, InstanceRecipe):
            target = f"instance {recipe.value!r}"
        elif isinstance(recipe, FactoryRecipe):
            target = f"provider {callable_name(recipe.factory)}"
        else:
            target = f"constructor {callable_name(recipe.constructor)}"
        origin = f" from {self.source}" if self.source else ""
        return f"{self.key} -> {target} ({self.scope.value}){origin}"


class Provider(Generic[T]):
    """Deferred producer for one key.

    Annotate a constructor parameter as `Provider[T]` to receive one instead of
    an instance; nothing is constructed until `get()` is called.
    """

    __slots__ = ("_get", "_key")

    def __init__(self, key: Key, get: Callable[[], T]) -> None:
        self._key = key
        self._get = get

    @property
    def key(self) -> Key:
        return self._key

    def get(self) -> T:
        return self._get()

    def __call__(self) -> T:
        return self._get()

    def __repr__(self) -> str:
        return f"Provider({self._key})"


def inject(func: Callable[..., T]) -> Callable[..., T]:
    """Mark the designated constructor of a class.

    Put it on `__init__`, or under `@classmethod` on an alternative factory:

        class BMW(Car):
            @classmethod
            @inject
            def create(cls) -> BMW: ...

    """
    target = getattr(func, "__func__", func)
    setattr(target, _INJECT_MARKER, True)
    return func


def singleton(target: T) -> T:
    """Default a class (or a provider method) to `Scope.SINGLETON`."""
    setattr(target, _SCOPE_MARKER, Scope.SINGLETON)
    return target


def declared_scope(target: Any) -> Scope | None:
    # vars() so that subclasses of a singleton class are not singletons themselves
    try:
        return vars(target).get(_SCOPE_MARKER)
    except TypeError:
        return None


def _is_inject_marked(attr: Any) -> bool:
    return getattr(getattr(attr, "__func__", attr), _INJECT_MARKER, False)


def describe_constructor(cls: type) -> ConstructorRecipe:
    """Build the constructor recipe of a concrete class.

    The designated constructor is the single member marked with `@inject`, or
    `__init__` when nothing is marked.
    """
    marked = [name for name, attr in vars(cls).items() if _is_inject_marked(attr)]
    if len(marked) > 1:
        msg = f"{cls.__name__} has more than one @inject constructor: {', '.join(sorted(marked))}"
        raise AmbiguousConstructorError(msg)

    if marked and marked[0] != "__init__":
        factory = getattr(cls, marked[0])
        return ConstructorRecipe(cls, factory, describe_callable(factory))

    init = _find_init(cls)
    if init is None:
        return ConstructorRecipe(cls, cls, ())
    return ConstructorRecipe(cls, cls, describe_callable(init, skip_first=True, owner=cls))


def _find_init(cls: type) -> Callable[..., Any] | None:
    for base in cls.__mro__:
        if base is object:
            return None
        init = base.__dict__.get("__init__")
        if init is not None:
            return init
    return None


def describe_callable(
    func: Callable[..., Any],
    *,
    skip_first: bool = False,
    owner: type | None = None,
) -> tuple[Dependency, ...]:
    """Infer the dependency list of a callable from its signature and type hints.

    `*args`/`**kwargs` are never injected. Positional-only parameters with a
    default are left to their default even when their key is bound, since a
    later positional argument could not be passed without them.
    """
    sig = inspect.signature(func)
    hints = _get_type_hints(func, owner)
    params = list(sig.parameters.values())
    if skip_first:
        params = params[1:]

    deps: list[Dependency] = []
    for p in params:
        if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
            continue

        has_default = p.default is not p.empty
        if p.kind is p.POSITIONAL_ONLY and has_default:
            logger.debug("Positional-only parameter '%s' of %s keeps its default", p.name, callable_name(func))
            continue

        ann = hints.get(p.name, inspect.Signature.empty)
        if ann is inspect.Signature.empty:
            if has_default:
                continue
            msg = (
                f"Cannot determine the key of parameter '{p.name}' of {callable_name(func)}: "
                "it has no type annotation and no default."
            )
            raise ConfigurationError(msg)

        lazy = False
        if get_origin(ann) is Provider:
            (ann,) = get_args(ann)
            lazy = True

        name = None if p.kind is p.POSITIONAL_ONLY else p.name
        deps.append(Dependency(Key.of(ann), name, p.kind, optional=has_default, lazy=lazy))

    return tuple(deps)


def _get_type_hints(func: Callable[..., Any], owner: type | None) -> dict[str, Any]:
    try:
        hints = get_type_hints(getattr(func, "__func__", func), include_extras=True)
    except TypeError:
        hints = {}
    except NameError as exc:
        where = owner.__qualname__ if owner is not None else callable_name(func)
        logger.warning("'%s' name error retrieving %s type hints", exc.name, where)
        hints = {}

    hints.pop("return", None)
    return hints


def return_hint(func: Callable[..., Any]) -> Any:
    try:
        return get_type_hints(getattr(func, "__func__", func), include_extras=True).get("return")
    except (TypeError, NameError):
        return None


def callable_name(func: Any) -> str:
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", None) or repr(func)


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def is_protocol(tp: Any) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def is_protocol(tp: Any) -> bool:
        return inspect.isclass(tp) and tp is not Protocol and bool(getattr(cast("type", tp), "_is_protocol", False))


def is_concrete_class(tp: Any) -> bool:
    return inspect.isclass(tp) and not is_protocol(tp) and not inspect.isabstract(tp)
