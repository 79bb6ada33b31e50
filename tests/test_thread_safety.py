import threading
import time
from concurrent.futures import ThreadPoolExecutor

from liteinject import Module, Scope, create_injector


class Car: ...


class Engine: ...


class Owner:
    def __init__(self, car: Car):
        self.car = car


def test_racing_singleton_requests_construct_once():
    calls = []
    barrier = threading.Barrier(8)

    def make_car() -> Car:
        calls.append(threading.get_ident())
        time.sleep(0.05)
        return Car()

    module = Module()
    module.bind(Car).to_provider(make_car).in_scope(Scope.SINGLETON)
    injector = create_injector(module)

    def request() -> Car:
        barrier.wait()
        return injector.get_instance(Car)

    with ThreadPoolExecutor(max_workers=8) as pool:
        cars = list(pool.map(lambda _: request(), range(8)))

    assert len(calls) == 1
    assert all(car is cars[0] for car in cars)


def test_unrelated_singletons_are_constructed_concurrently():
    engine_started = threading.Event()
    car_waited = []

    def make_car() -> Car:
        # only returns early if Engine can be built while Car is under construction
        car_waited.append(engine_started.wait(timeout=5))
        return Car()

    def make_engine() -> Engine:
        engine_started.set()
        return Engine()

    module = Module()
    module.bind(Car).to_provider(make_car).in_scope(Scope.SINGLETON)
    module.bind(Engine).to_provider(make_engine).in_scope(Scope.SINGLETON)
    injector = create_injector(module)

    with ThreadPoolExecutor(max_workers=2) as pool:
        car = pool.submit(injector.get_instance, Car)
        time.sleep(0.05)
        engine = pool.submit(injector.get_instance, Engine)
        assert isinstance(engine.result(timeout=5), Engine)
        assert isinstance(car.result(timeout=10), Car)

    assert car_waited == [True]


def test_concurrent_unscoped_requests_do_not_see_each_other_as_cycles():
    barrier = threading.Barrier(4)

    def make_car() -> Car:
        barrier.wait(timeout=5)
        return Car()

    module = Module()
    module.bind(Car).to_provider(make_car)
    injector = create_injector(module)

    with ThreadPoolExecutor(max_workers=4) as pool:
        owners = list(pool.map(lambda _: injector.get_instance(Owner), range(4)))

    assert len({id(owner.car) for owner in owners}) == 4
