from __future__ import annotations

import inspect
import logging
import threading
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar, overload

from ._bindings import (
    Binding,
    ConstructorRecipe,
    FactoryRecipe,
    InstanceRecipe,
    LinkedRecipe,
    Provider,
    Scope,
    callable_name,
    declared_scope,
    describe_constructor,
    is_protocol,
)
from ._errors import (
    AmbiguousConstructorError,
    BindingMissingError,
    CircularDependencyError,
    ConfigurationError,
    InjectionError,
    ProvisionError,
    format_path,
)
from ._keys import Key
from ._module import Module


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Iterable, Mapping

    from ._bindings import Dependency

T = TypeVar("T")


class Injector:
    """Resolves keys into fully constructed object graphs.

    - explicit bindings come from modules and are frozen at creation
    - unbound concrete classes are bound just-in-time to their constructor
    - singleton keys are constructed at most once per injector, also across threads
    """

    def __init__(self, bindings: Iterable[Binding] = (), *, jit: bool = True) -> None:
        table: dict[Key, Binding] = {}
        own_key = Key(Injector)
        table[own_key] = Binding(own_key, InstanceRecipe(self), Scope.SINGLETON, "injector")

        for binding in bindings:
            existing = table.get(binding.key)
            if existing is binding:
                continue
            if existing is not None:
                msg = f"{binding.key} is bound more than once: {existing} and {binding}"
                raise ConfigurationError(msg)
            table[binding.key] = binding

        _check_linked_cycles(table)

        self._bindings: Mapping[Key, Binding] = MappingProxyType(table)
        self._jit = jit
        self._jit_bindings: dict[Key, Binding] = {}
        self._singletons: dict[Key, object] = {}
        self._singleton_locks: dict[Key, threading.Lock] = {}
        self._lock = threading.Lock()
        self._local = threading.local()

        logger.debug("Injector created with %d bindings (jit=%s)", len(table), jit)

    @classmethod
    def create(cls, *modules: Module, jit: bool = True) -> Injector:
        """Merge the bindings of `modules` into a new injector."""
        bindings: list[Binding] = []
        for module in modules:
            if not isinstance(module, Module):
                msg = f"Expected a Module instance, got {module!r}"
                raise ConfigurationError(msg)
            bindings.extend(module.bindings())
        return cls(bindings, jit=jit)

    @property
    def bindings(self) -> Mapping[Key, Binding]:
        return self._bindings

    @overload
    def get_instance(self, target: type[T], qualifier: Hashable | None = ...) -> T: ...

    @overload
    def get_instance(self, target: Any, qualifier: Hashable | None = ...) -> Any: ...

    def get_instance(self, target: Any, qualifier: Hashable | None = None) -> Any:
        """Resolve `target` (a type, `Annotated[type, qualifier]` or `Key`) to an instance."""
        return self._resolve(Key.of(target, qualifier))

    @overload
    def get_provider(self, target: type[T], qualifier: Hashable | None = ...) -> Provider[T]: ...

    @overload
    def get_provider(self, target: Any, qualifier: Hashable | None = ...) -> Provider[Any]: ...

    def get_provider(self, target: Any, qualifier: Hashable | None = None) -> Provider[Any]:
        """Return a deferred producer for `target`.

        Fails early with `BindingMissingError` when the key cannot be produced at
        all; nothing is constructed until the provider is called.
        """
        key = Key.of(target, qualifier)
        self._binding_for(key)
        return self._provider(key)

    def get_binding(self, target: Any, qualifier: Hashable | None = None) -> Binding:
        return self._binding_for(Key.of(target, qualifier))

    def _provider(self, key: Key) -> Provider[Any]:
        return Provider(key, lambda: self._resolve(key))

    def _stack(self) -> list[Key]:
        stack = getattr(self._local, "stack", None)
        if stack is None:
            stack = self._local.stack = []
        return stack

    def _resolve(self, key: Key) -> Any:
        try:
            return self._singletons[key]
        except KeyError:
            pass

        stack = self._stack()
        if key in stack:
            path = [*stack, key]
            msg = f"Circular dependency on {key}: {format_path(path[stack.index(key) :])}"
            raise CircularDependencyError(msg, path)

        stack.append(key)
        try:
            binding = self._binding_for(key)
            if binding.scope is Scope.SINGLETON and not isinstance(binding.recipe, InstanceRecipe):
                return self._provide_singleton(binding)
            return self._provide(binding)
        finally:
            stack.pop()

    def _provide_singleton(self, binding: Binding) -> Any:
        with self._lock:
            lock = self._singleton_locks.setdefault(binding.key, threading.Lock())

        with lock:
            try:
                return self._singletons[binding.key]
            except KeyError:
                pass

            instance = self._provide(binding)
            self._singletons[binding.key] = instance
            logger.debug("Created singleton %s", binding.key)
            return instance

    def _provide(self, binding: Binding) -> Any:
        recipe = binding.recipe
        if isinstance(recipe, InstanceRecipe):
            return recipe.value
        if isinstance(recipe, LinkedRecipe):
            return self._resolve(recipe.target)
        if isinstance(recipe, FactoryRecipe):
            return self._invoke(recipe.factory, recipe.dependencies)
        if isinstance(recipe, ConstructorRecipe):
            return self._invoke(recipe.constructor, recipe.dependencies)

        msg = f"Unknown recipe {recipe!r} for {binding.key}"
        raise TypeError(msg)

    def _invoke(self, func: Callable[..., Any], dependencies: tuple[Dependency, ...]) -> Any:
        args: list[Any] = []
        kwargs: dict[str, Any] = {}

        for dep in dependencies:
            try:
                value = self._dependency_value(dep)
            except BindingMissingError as e:
                if not dep.optional:
                    raise
                logger.debug("Using the default for %s: %s", dep.key, e.message)
                continue

            if dep.positional:
                args.append(value)
            else:
                kwargs[dep.name] = value  # type: ignore[index]

        try:
            return func(*args, **kwargs)
        except InjectionError:
            raise
        except Exception as e:
            stack = self._stack()
            msg = f"{callable_name(func)} raised {type(e).__name__} while providing {stack[-1]}: {e}"
            raise ProvisionError(msg, stack, cause=e) from e

    def _dependency_value(self, dep: Dependency) -> Any:
        if dep.lazy:
            self._binding_for(dep.key)
            return self._provider(dep.key)
        return self._resolve(dep.key)

    def _binding_for(self, key: Key) -> Binding:
        binding = self._bindings.get(key)
        if binding is None:
            binding = self._jit_bindings.get(key)
        if binding is not None:
            return binding

        with self._lock:
            binding = self._jit_bindings.get(key)
            if binding is None:
                binding = self._synthesize(key)
                self._jit_bindings[key] = binding
        return binding

    def _synthesize(self, key: Key) -> Binding:
        """Just-in-time constructor binding for an unbound concrete class."""
        path = [*self._stack()]
        if not path or path[-1] != key:
            path.append(key)

        cls = key.abstraction
        reason = _jit_refusal(key, jit=self._jit)
        if reason is not None:
            raise BindingMissingError(key, path, reason)

        try:
            recipe = describe_constructor(cls)
        except AmbiguousConstructorError as e:
            raise AmbiguousConstructorError(e.message, path) from None
        except ConfigurationError as e:
            raise BindingMissingError(key, path, e.message) from e

        logger.debug("Synthesized just-in-time binding for %s", key)
        return Binding(key, recipe, declared_scope(cls) or Scope.UNSCOPED, "just-in-time")


def _jit_refusal(key: Key, *, jit: bool) -> str | None:
    cls = key.abstraction
    if not jit:
        return "just-in-time bindings are disabled"
    if key.qualifier is not None:
        return "qualified keys are never bound just-in-time"
    if not inspect.isclass(cls):
        return f"{key} is not a class"
    if is_protocol(cls) or inspect.isabstract(cls):
        return f"{cls.__name__} is abstract"
    if cls.__module__ == "builtins":
        return f"builtin type {cls.__name__} is never bound just-in-time"
    return None


def _check_linked_cycles(table: Mapping[Key, Binding]) -> None:
    for start, binding in table.items():
        chain = [start]
        recipe = binding.recipe
        while isinstance(recipe, LinkedRecipe):
            if recipe.target in chain:
                chain.append(recipe.target)
                msg = f"Linked bindings form a cycle: {format_path(chain)}"
                raise ConfigurationError(msg, chain)
            chain.append(recipe.target)
            nxt = table.get(recipe.target)
            if nxt is None:
                break
            recipe = nxt.recipe


def create_injector(*modules: Module, jit: bool = True) -> Injector:
    """Build an injector from `modules`; see `Injector.create`."""
    return Injector.create(*modules, jit=jit)
