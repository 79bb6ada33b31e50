import unittest
from unittest.mock import MagicMock

import pytest

from liteinject import (
    AmbiguousConstructorError,
    BindingMissingError,
    CircularDependencyError,
    ConfigurationError,
    InjectionError,
    Injector,
    Key,
    Module,
    Provider,
    ProvisionError,
    ResolutionError,
    Scope,
    create_injector,
)


class Car: ...


class BMW(Car): ...


class Benz(Car): ...


class Owner:
    def __init__(self, car: Car):
        self.car = car


class Chicken:
    def __init__(self, egg: "Egg"):
        self.egg = egg


class Egg:
    def __init__(self, chicken: Chicken):
        self.chicken = chicken


class Impatient:
    def __init__(self, other: Provider["Eager"]):
        self.other = other.get()


class Eager:
    def __init__(self, impatient: Impatient):
        self.impatient = impatient


def test_error_taxonomy():
    assert issubclass(InjectionError, RuntimeError)
    assert issubclass(ConfigurationError, InjectionError)
    for error in (BindingMissingError, CircularDependencyError, ProvisionError, AmbiguousConstructorError):
        assert issubclass(error, ResolutionError)
    assert issubclass(BindingMissingError, LookupError)


def test_error_without_path_prints_message_only():
    assert str(ConfigurationError("broken")) == "broken"


def test_error_with_path_prints_it():
    error = CircularDependencyError("cycle", [Key(Owner), Key(Car, "bmw")])
    assert str(error) == "cycle (resolution path: Owner -> Car@bmw)"


class TestConfigurationErrors(unittest.TestCase):
    def test_duplicate_key_across_modules_fails_before_construction(self):
        factory = MagicMock(side_effect=BMW)
        first = Module()
        first.bind(Car).to_provider(factory)
        second = Module()
        second.bind(Car).to(Benz)

        with pytest.raises(ConfigurationError) as ctx:
            create_injector(first, second)

        assert "bound more than once" in str(ctx.value)
        assert factory.call_count == 0

    def test_linked_cycle_fails_at_creation(self):
        class Vehicle: ...

        module = Module()
        module.bind(Car).to(Car, "a")
        module.bind(Car, "a").to(Car, "b")
        module.bind(Car, "b").to(Car, "a")
        module.bind(Vehicle).to(Vehicle, "unrelated")

        with pytest.raises(ConfigurationError) as ctx:
            create_injector(module)

        assert "cycle" in str(ctx.value)
        assert Key(Car, "a") in ctx.value.path

    def test_self_link_fails_at_creation(self):
        module = Module()
        module.bind(BMW).to(BMW)

        with pytest.raises(ConfigurationError):
            create_injector(module)

    def test_broken_link_chain_is_not_a_configuration_error(self):
        module = Module()
        module.bind(Car).to(Car, "missing")
        injector = create_injector(module)

        with pytest.raises(BindingMissingError) as ctx:
            injector.get_instance(Car)
        assert ctx.value.path == (Key(Car), Key(Car, "missing"))


class TestResolutionErrors(unittest.TestCase):
    def test_constructor_cycle_raises_circular_dependency(self):
        injector = create_injector()

        with pytest.raises(CircularDependencyError) as ctx:
            injector.get_instance(Chicken)

        assert ctx.value.path == (Key(Chicken), Key(Egg), Key(Chicken))
        assert "Chicken -> Egg -> Chicken" in str(ctx.value)

    def test_singleton_cycle_leaves_no_cache_entry(self):
        module = Module()
        module.bind(Chicken).in_scope(Scope.SINGLETON)
        module.bind(Egg).in_scope(Scope.SINGLETON)
        injector = create_injector(module)

        for _ in range(2):
            with pytest.raises(CircularDependencyError):
                injector.get_instance(Egg)
            with pytest.raises(CircularDependencyError):
                injector.get_instance(Chicken)

    def test_cycle_through_provider_get_during_construction_is_detected(self):
        with pytest.raises(CircularDependencyError) as ctx:
            create_injector().get_instance(Impatient)

        assert ctx.value.path == (Key(Impatient), Key(Eager), Key(Impatient))

    def test_resolution_stack_is_cleared_after_failure(self):
        module = Module()
        module.bind(Car).to_provider(MagicMock(side_effect=[ValueError("boom"), BMW()]))
        injector = create_injector(module)

        with pytest.raises(ProvisionError):
            injector.get_instance(Owner)

        assert isinstance(injector.get_instance(Owner).car, BMW)

    def test_failing_factory_is_wrapped_with_cause_and_path(self):
        cause = ValueError("no fuel")

        def make_car() -> Car:
            raise cause

        module = Module()
        module.bind(Car).to_provider(make_car)
        injector = create_injector(module)

        with pytest.raises(ProvisionError) as ctx:
            injector.get_instance(Owner)

        assert ctx.value.cause is cause
        assert ctx.value.__cause__ is cause
        assert ctx.value.path == (Key(Owner), Key(Car))
        assert "no fuel" in str(ctx.value)
        assert "make_car" in str(ctx.value)

    def test_failing_constructor_is_wrapped(self):
        class Broken:
            def __init__(self):
                msg = "cannot build"
                raise RuntimeError(msg)

        with pytest.raises(ProvisionError) as ctx:
            create_injector().get_instance(Broken)
        assert isinstance(ctx.value.cause, RuntimeError)

    def test_failing_singleton_leaves_no_cache_entry(self):
        factory = MagicMock(side_effect=[ValueError("first try"), BMW(), Benz()])
        module = Module()
        module.bind(Car).to_provider(factory).in_scope(Scope.SINGLETON)
        injector = create_injector(module)

        with pytest.raises(ProvisionError):
            injector.get_instance(Car)

        car = injector.get_instance(Car)
        assert isinstance(car, BMW)
        assert injector.get_instance(Car) is car
        assert factory.call_count == 2

    def test_container_errors_raised_inside_factories_are_not_wrapped(self):
        def make_car(injector: Injector) -> Car:
            return injector.get_instance(Car, "missing")

        module = Module()
        module.bind(Car).to_provider(make_car)

        with pytest.raises(BindingMissingError) as ctx:
            create_injector(module).get_instance(Owner)

        assert ctx.value.key == Key(Car, "missing")
        assert ctx.value.path == (Key(Owner), Key(Car), Key(Car, "missing"))
