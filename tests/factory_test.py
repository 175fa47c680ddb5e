import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor

import pytest

from dynproxy.base import *
from dynproxy.factory import *
from dynproxy.handler import FunctionHandler, RecordingHandler
from dynproxy.primitives import Int32
from dynproxy.proxy import get_handler


class Calc(ABC):
    @abstractmethod
    def add(self, a: Int32, b: Int32) -> Int32:
        pass


class Logger(Calc):
    @abstractmethod
    def log(self, msg: str) -> None:
        pass


class Adder(Calc):
    def add(self, a, b):
        return a + b


class NotAnInterface:
    def add(self, a, b):
        return a + b


def adding_handler() -> FunctionHandler:
    return FunctionHandler(lambda proxy, method, args: sum(args))


def test_calc_scenario():
    assert create_proxy(adding_handler(), Calc).add(2, 3) == 5


def test_logger_scenario():
    calls = []

    def handle(proxy, method, args):
        calls.append((method.name, method.index, method.interface, args))
        return sum(args) if method.name == "add" else "discarded"

    proxy = ProxyFactory().create(FunctionHandler(handle), Logger)
    assert isinstance(proxy, Logger)
    assert isinstance(proxy, Calc)
    assert proxy.log("x") is None
    assert proxy.add(1, 2) == 3
    assert calls[0] == ("log", 0, qualified_name(Logger), ("x",))
    assert calls[1][:3] == ("add", 0, qualified_name(Calc))


def test_handler_binding_is_per_instance():
    factory = ProxyFactory()
    p1 = factory.create(FunctionHandler(lambda p, m, a: 1000), Calc)
    p2 = factory.create(FunctionHandler(lambda p, m, a: 2000), Calc)
    assert p1.add(0, 0) == 1000
    assert p2.add(0, 0) == 2000


def test_create_without_handler_fails():
    with pytest.raises(InvalidArgumentError):
        create_proxy(None, Calc)


def test_create_with_non_handler_fails():
    with pytest.raises(InvalidArgumentError):
        create_proxy(lambda p, m, a: None, Calc)


def test_instances_share_one_blueprint():
    factory = ProxyFactory()
    handler = RecordingHandler()
    p1 = factory.create(handler, Calc)
    p2 = factory.create(handler, Calc)
    assert p1 is not p2
    assert type(p1) is type(p2)
    assert list(factory.blueprints) == [f"{qualified_name(Calc)}Proxy"]
    assert type(p1).__name__ == "CalcProxy"
    assert type(p1).__module__ == Calc.__module__


def test_concrete_target_uses_its_interfaces():
    factory = ProxyFactory()
    proxy = factory.create(adding_handler(), Adder)
    assert isinstance(proxy, Calc)
    assert not isinstance(proxy, Adder)
    assert type(proxy).__name__ == "AdderProxy"
    assert proxy.add(4, 5) == 9


def test_interface_flag_requires_an_interface():
    factory = ProxyFactory()
    assert isinstance(factory.create(RecordingHandler(), Calc, True), Calc)
    with pytest.raises(InvalidArgumentError):
        factory.create(RecordingHandler(), Adder, True)


def test_target_without_interfaces_fails():
    factory = ProxyFactory()
    with pytest.raises(InvalidArgumentError):
        factory.create(RecordingHandler(), NotAnInterface)
    with pytest.raises(InvalidArgumentError):
        factory.create(RecordingHandler(), "Calc")  # type: ignore[arg-type]
    assert factory.blueprints == {}


def test_failed_synthesis_is_not_cached():
    class Broken(ABC):
        LIMIT = 3

    factory = ProxyFactory()
    with pytest.raises(SynthesisError):
        factory.create(RecordingHandler(), Broken)
    with pytest.raises(SynthesisError):
        factory.create(RecordingHandler(), Broken)
    assert factory.blueprints == {}


def test_handler_is_fixed_after_construction():
    handler = RecordingHandler()
    proxy = create_proxy(handler, Calc)
    with pytest.raises(AttributeError):
        proxy._proxy_handler = RecordingHandler()
    assert get_handler(proxy) is handler


def test_options_change_blueprint_shape():
    class Base:
        pass

    factory = ProxyFactory(FactoryOptions(suffix="Stub", base_type=Base, sealed=False))
    proxy = factory.create(RecordingHandler(), Calc)
    assert type(proxy).__name__ == "CalcStub"
    assert isinstance(proxy, Base)

    class Sub(type(proxy)):  # type: ignore[misc]
        pass


def test_get_instance_is_a_singleton():
    assert ProxyFactory.get_instance() is ProxyFactory.get_instance()


def test_singleton_is_created_once_under_contention():
    saved = ProxyFactory._instance
    ProxyFactory._instance = None
    try:
        barrier = threading.Barrier(8)

        def get():
            barrier.wait()
            return ProxyFactory.get_instance()

        with ThreadPoolExecutor(8) as pool:
            instances = list(pool.map(lambda _: get(), range(8)))
        assert all(i is instances[0] for i in instances)
    finally:
        ProxyFactory._instance = saved


def test_concurrent_first_use_builds_one_blueprint():
    class Fresh(ABC):
        @abstractmethod
        def value(self) -> Int32:
            pass

    factory = ProxyFactory()
    barrier = threading.Barrier(16)

    def create(i: int):
        barrier.wait()
        return factory.create(FunctionHandler(lambda p, m, a: i), Fresh)

    with ThreadPoolExecutor(16) as pool:
        proxies = list(pool.map(create, range(16)))
    assert len({type(p) for p in proxies}) == 1
    assert len(factory.blueprints) == 1
    assert [p.value() for p in proxies] == list(range(16))
