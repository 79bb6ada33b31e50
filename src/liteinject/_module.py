from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar, overload

from ._bindings import (
    Binding,
    ConstructorRecipe,
    Dependency,
    FactoryRecipe,
    InstanceRecipe,
    LinkedRecipe,
    Scope,
    callable_name,
    declared_scope,
    describe_callable,
    describe_constructor,
    is_concrete_class,
    is_protocol,
    return_hint,
)
from ._errors import ConfigurationError
from ._keys import Key


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable

    from ._bindings import Recipe

T = TypeVar("T")
F = TypeVar("F", bound="Callable[..., Any]")

_PROVIDES_MARKER = "__liteinject_provides__"


@dataclass(frozen=True)
class _ProviderDeclaration:
    target: Any
    qualifier: Hashable | None
    scope: Scope | None


class BindingBuilder(Generic[T]):
    """One `bind(...)` statement.

    A statement is completed by `to`, `to_instance` or `to_provider`. A statement
    left without a target binds a concrete class to its own constructor.
    """

    def __init__(self, key: Key, source: str) -> None:
        self._key = key
        self._source = source
        self._recipe: Recipe | None = None
        self._scope: Scope | None = None

    @property
    def key(self) -> Key:
        return self._key

    def annotated_with(self, qualifier: Hashable) -> BindingBuilder[T]:
        if self._key.qualifier is not None:
            msg = f"Binding for {self._key} is already qualified"
            raise ConfigurationError(msg)
        self._key = Key(self._key.abstraction, qualifier)
        return self

    def to(self, target: type[T] | Any, qualifier: Hashable | None = None) -> BindingBuilder[T]:
        target_key = Key.of(target, qualifier)
        _validate_impl(self._key.abstraction, target_key.abstraction)
        self._complete(LinkedRecipe(target_key))
        return self

    def to_instance(self, value: T) -> BindingBuilder[T]:
        abstraction = self._key.abstraction
        if inspect.isclass(abstraction) and not is_protocol(abstraction) and not isinstance(value, abstraction):
            msg = f"Instance {value!r} bound to {self._key} is not an instance of {abstraction.__name__}"
            raise ConfigurationError(msg)
        self._complete(InstanceRecipe(value))
        return self

    def to_provider(self, factory: Callable[..., T], *dependencies: Any) -> BindingBuilder[T]:
        """Bind to a factory.

        Explicit `dependencies` are resolved in the given order and passed
        positionally. Without them, they are inferred from the factory signature.
        """
        if not callable(factory):
            msg = f"Provider for {self._key} is not callable: {factory!r}"
            raise ConfigurationError(msg)
        if dependencies:
            deps = tuple(Dependency(Key.of(d)) for d in dependencies)
        else:
            deps = describe_callable(factory)
        self._complete(FactoryRecipe(factory, deps))
        return self

    def in_scope(self, scope: Scope) -> BindingBuilder[T]:
        if not isinstance(scope, Scope):
            msg = f"Expected a Scope, got {scope!r}"
            raise ConfigurationError(msg)
        if self._scope is not None:
            msg = f"Binding for {self._key} is already scoped as {self._scope.value}"
            raise ConfigurationError(msg)
        self._scope = scope
        return self

    def _complete(self, recipe: Recipe) -> None:
        if self._recipe is not None:
            msg = f"Binding statement for {self._key} is already complete"
            raise ConfigurationError(msg)
        self._recipe = recipe

    def build(self) -> Binding:
        recipe = self._recipe
        if recipe is None:
            abstraction = self._key.abstraction
            if not is_concrete_class(abstraction):
                msg = f"Incomplete binding statement: bind({self._key}) has no target and is not a concrete class"
                raise ConfigurationError(msg)
            recipe = describe_constructor(abstraction)

        if isinstance(recipe, InstanceRecipe):
            if self._scope is Scope.UNSCOPED:
                msg = f"Instance binding for {self._key} cannot be unscoped"
                raise ConfigurationError(msg)
            scope = Scope.SINGLETON
        elif self._scope is not None:
            scope = self._scope
        elif isinstance(recipe, ConstructorRecipe):
            scope = declared_scope(recipe.cls) or Scope.UNSCOPED
        else:
            scope = Scope.UNSCOPED

        return Binding(self._key, recipe, scope, self._source)


class Module:
    """A bundle of bindings.

    Subclasses declare bindings in `configure()` and may add `@provides`
    methods; a bare `Module()` can also be filled in directly:

        class CarModule(Module):
            def configure(self) -> None:
                self.bind(Car).to(BMW).in_scope(Scope.SINGLETON)

            @provides(qualifier="benz")
            def provide_benz(self) -> Car:
                return Benz()

    """

    def __init__(self) -> None:
        self._builders: list[BindingBuilder[Any]] = []
        self._installed: list[Module] = []
        self._sealed: tuple[Binding, ...] | None = None
        self._sealing = False

    def configure(self) -> None:
        """Declare bindings. Runs once, when the module is sealed."""

    @property
    def sealed(self) -> bool:
        return self._sealed is not None

    @overload
    def bind(self, target: type[T], qualifier: Hashable | None = ...) -> BindingBuilder[T]: ...

    @overload
    def bind(self, target: Any, qualifier: Hashable | None = ...) -> BindingBuilder[Any]: ...

    def bind(self, target: Any, qualifier: Hashable | None = None) -> BindingBuilder[Any]:
        self._check_open()
        builder: BindingBuilder[Any] = BindingBuilder(Key.of(target, qualifier), type(self).__qualname__)
        self._builders.append(builder)
        return builder

    def install(self, module: Module) -> None:
        self._check_open()
        if not isinstance(module, Module):
            msg = f"Can only install modules, got {module!r}"
            raise ConfigurationError(msg)
        if module is self:
            msg = f"{type(self).__qualname__} cannot install itself"
            raise ConfigurationError(msg)
        if not any(m is module for m in self._installed):
            self._installed.append(module)

    def bindings(self) -> tuple[Binding, ...]:
        """Seal the module and return its bindings, installed modules included."""
        if self._sealed is not None:
            return self._sealed
        if self._sealing:
            msg = f"{type(self).__qualname__} installs itself through another module"
            raise ConfigurationError(msg)

        self._sealing = True
        try:
            self.configure()
            collected = [*self._provider_bindings(), *(b.build() for b in self._builders)]
            for module in self._installed:
                collected.extend(module.bindings())
        finally:
            self._sealing = False

        seen: dict[Key, Binding] = {}
        for binding in collected:
            existing = seen.get(binding.key)
            # a module installed along two paths contributes the same binding objects
            if existing is binding:
                continue
            if existing is not None:
                msg = f"{binding.key} is bound more than once: {existing} and {binding}"
                raise ConfigurationError(msg)
            seen[binding.key] = binding

        self._sealed = tuple(seen.values())
        logger.debug("Sealed %s with %d bindings", type(self).__qualname__, len(self._sealed))
        return self._sealed

    def _check_open(self) -> None:
        if self._sealed is not None:
            msg = f"{type(self).__qualname__} is sealed; no more bindings can be added"
            raise ConfigurationError(msg)

    def _provider_bindings(self) -> list[Binding]:
        found: list[Binding] = []
        seen: set[str] = set()
        for klass in type(self).__mro__:
            for name, attr in vars(klass).items():
                if name in seen:
                    continue
                seen.add(name)
                declaration: _ProviderDeclaration | None = getattr(attr, _PROVIDES_MARKER, None)
                if declaration is None:
                    continue
                method = getattr(self, name)
                found.append(self._provider_binding(method, attr, declaration))
        return found

    def _provider_binding(self, method: Callable[..., Any], func: Any, declaration: _ProviderDeclaration) -> Binding:
        target = declaration.target if declaration.target is not None else return_hint(method)
        if target is None:
            msg = f"Provider method {callable_name(func)} needs a return annotation or an explicit key"
            raise ConfigurationError(msg)

        key = Key.of(target, declaration.qualifier)
        scope = declaration.scope or declared_scope(func) or Scope.UNSCOPED
        recipe = FactoryRecipe(method, describe_callable(method))
        return Binding(key, recipe, scope, callable_name(func))


@overload
def provides(target: F, /) -> F: ...


@overload
def provides(
    target: Any = ...,
    *,
    qualifier: Hashable | None = ...,
    scope: Scope | None = ...,
) -> Callable[[F], F]: ...


def provides(
    target: Any = None,
    *,
    qualifier: Hashable | None = None,
    scope: Scope | None = None,
) -> Any:
    """Mark a module method as the provider of a key.

    The key defaults to the method's return annotation, which may carry a
    qualifier as `Annotated[T, qualifier]`. Parameters are injected like
    constructor parameters.

    Example:
      @provides
      def provide_car(self) -> Car: ...

      @provides(Car, qualifier="benz", scope=Scope.SINGLETON)
      def provide_benz(self): ...

    """
    if inspect.isfunction(target):
        setattr(target, _PROVIDES_MARKER, _ProviderDeclaration(None, None, None))
        return target

    def decorator(func: F) -> F:
        setattr(func, _PROVIDES_MARKER, _ProviderDeclaration(target, qualifier, scope))
        return func

    return decorator


def _validate_impl(abstraction: Any, impl: Any) -> None:
    """Linked targets of a plain class must subclass it; protocols are not checked."""
    if not (inspect.isclass(abstraction) and inspect.isclass(impl)):
        return
    if is_protocol(abstraction) or is_protocol(impl):
        return
    if not issubclass(impl, abstraction):
        msg = f"Implementation {impl.__name__} must be a subclass of {abstraction.__name__}"
        raise ConfigurationError(msg)
