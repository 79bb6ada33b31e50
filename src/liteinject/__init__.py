"""Minimal dependency injection container.

This package wires object graphs from bindings: a `Key` (an abstraction plus an
optional qualifier) is bound to a recipe and a scope inside a `Module`, and an
`Injector` resolves keys by constructing their dependencies transitively.

Exports:
- `Module`, `provides`: author bindings with `bind(...).to(...)` statements and
  provider methods.
- `Injector`, `create_injector`: merge modules and resolve instances or providers.
- `Key`, `Scope`, `Provider`: keys, reuse policies and deferred producers.
- `inject`, `singleton`: mark a designated constructor or a singleton class.
- the `InjectionError` hierarchy raised on configuration and resolution failures.
"""

from ._bindings import (
    Binding,
    ConstructorRecipe,
    Dependency,
    FactoryRecipe,
    InstanceRecipe,
    LinkedRecipe,
    Provider,
    Recipe,
    Scope,
    inject,
    singleton,
)
from ._errors import (
    AmbiguousConstructorError,
    BindingMissingError,
    CircularDependencyError,
    ConfigurationError,
    InjectionError,
    ProvisionError,
    ResolutionError,
)
from ._injector import Injector, create_injector
from ._keys import Key
from ._module import BindingBuilder, Module, provides


__all__ = [
    "AmbiguousConstructorError",
    "Binding",
    "BindingBuilder",
    "BindingMissingError",
    "CircularDependencyError",
    "ConfigurationError",
    "ConstructorRecipe",
    "Dependency",
    "FactoryRecipe",
    "InjectionError",
    "Injector",
    "InstanceRecipe",
    "Key",
    "LinkedRecipe",
    "Module",
    "Provider",
    "ProvisionError",
    "Recipe",
    "ResolutionError",
    "Scope",
    "create_injector",
    "inject",
    "provides",
    "singleton",
]
