from __future__ import annotations

import logging
from inspect import isclass
from types import new_class
from typing import Any, Callable, Iterator, Sequence

from dynproxy.base import *
from dynproxy.descriptor import (
    DescriptorRegistry,
    InterfaceDescriptor,
    MethodDescriptor,
    is_interface,
    registry as default_registry,
)
from dynproxy.primitives import converter_for

HANDLER_FIELD = "_proxy_handler"
INTERFACES_FIELD = "__proxy_interfaces__"
# Attributes the blueprint defines itself and interfaces may not declare
RESERVED = frozenset(
    {
        "__init__",
        "__setattr__",
        "__delattr__",
        "__init_subclass__",
        HANDLER_FIELD,
        INTERFACES_FIELD,
    }
)


def is_proxy(obj: Any) -> bool:
    return hasattr(type(obj), INTERFACES_FIELD)


def get_handler(proxy: object) -> Any:
    """Return the handler a proxy was created with."""
    if not is_proxy(proxy):
        raise InvalidArgumentError(f"{proxy!r} is not a proxy")
    return object.__getattribute__(proxy, HANDLER_FIELD)


def make_forwarding_method(
    interface: type,
    method: MethodDescriptor,
    registry: DescriptorRegistry,
    doc: str | None = None,
) -> Callable:
    signature = method.signature
    if signature is None:
        raise SynthesisError(f"{method.interface}.{method.name} has no signature")
    convert = converter_for(method.return_type)
    index = method.index

    def proxy_func(self, *args: Any, **kwds: Any):
        descriptor = registry.resolve_method(interface, index)
        bound = signature.bind(self, *args, **kwds)
        bound.apply_defaults()
        arguments = tuple(bound.arguments.values())[1:]
        handler = object.__getattribute__(self, HANDLER_FIELD)
        return convert(handler.invoke(self, descriptor, arguments))

    proxy_func.__name__ = method.name
    proxy_func.__qualname__ = f"{interface.__qualname__}.{method.name}"
    proxy_func.__doc__ = doc
    proxy_func.__signature__ = signature  # type: ignore[attr-defined]
    return proxy_func


def make_constructor(handler_contract: type, base_type: type) -> Callable:
    def __init__(self, handler: Any):
        if handler is None or not isinstance(handler, handler_contract):
            raise InvalidArgumentError(
                f"{handler!r} is not a {handler_contract.__name__}"
            )
        object.__setattr__(self, HANDLER_FIELD, handler)
        base_type.__init__(self)

    return __init__


def proxy_setattr(self, name: str, value: Any):
    if name == HANDLER_FIELD:
        raise AttributeError(f"{HANDLER_FIELD} is read-only")
    object.__setattr__(self, name, value)


def proxy_delattr(self, name: str):
    if name == HANDLER_FIELD:
        raise AttributeError(f"{HANDLER_FIELD} is read-only")
    object.__delattr__(self, name)


def proxy_repr(self) -> str:
    handler = object.__getattribute__(self, HANDLER_FIELD)
    return f"<{type(self).__name__} handler={handler!r}>"


def minimal_bases(interfaces: Sequence[type]) -> list[type]:
    """Drop interfaces that another supplied interface already extends."""
    bases: list[type] = []
    for interface in interfaces:
        if interface in bases:
            continue
        if any(
            other is not interface and issubclass(other, interface)
            for other in interfaces
        ):
            continue
        bases.append(interface)
    return bases


class BlueprintBuilder:
    """Synthesizes proxy classes for interface closures."""

    def __init__(self, registry: DescriptorRegistry | None = None):
        self._log = logging.getLogger(self.__class__.__name__)
        self.registry = registry if registry is not None else default_registry

    def build(
        self,
        handler_contract: type,
        base_type: type,
        interfaces: Sequence[type],
        name: str,
        qualname: str | None = None,
        module: str | None = None,
        sealed: bool = True,
    ) -> type:
        if not isclass(handler_contract):
            raise InvalidArgumentError(
                f"Handler contract {handler_contract!r} is not a class"
            )
        if not isclass(base_type):
            raise InvalidArgumentError(f"Base type {base_type!r} is not a class")
        if not interfaces:
            raise InvalidArgumentError(f"No interfaces given for {name}")
        for interface in interfaces:
            if not is_interface(interface):
                raise InvalidArgumentError(f"{interface!r} is not an interface")

        closure: list[type] = []
        members: dict[str, tuple[type, Any]] = {}
        for interface in interfaces:
            self._generate(interface, closure, members)

        def create_body(ns: dict[str, Any]):
            ns["__module__"] = module or __name__
            ns["__qualname__"] = qualname or name
            ns["__init__"] = make_constructor(handler_contract, base_type)
            ns["__setattr__"] = proxy_setattr
            ns["__delattr__"] = proxy_delattr
            ns["__repr__"] = proxy_repr
            ns[INTERFACES_FIELD] = tuple(closure)
            if sealed:
                ns["__init_subclass__"] = classmethod(make_sealed_hook(name))
            for attr, (_, value) in members.items():
                ns[attr] = value

        bases = minimal_bases(interfaces)
        if base_type is not object:
            bases.insert(0, base_type)
        try:
            blueprint = new_class(name, tuple(bases), None, create_body)
        except TypeError as e:
            raise SynthesisError(f"Cannot create {name}: {e}") from e
        if blueprint.__abstractmethods__:
            missing = ", ".join(sorted(blueprint.__abstractmethods__))
            raise SynthesisError(f"{name} leaves abstract members: {missing}")
        self._log.debug(f"Synthesized {name} for {len(closure)} interfaces")
        return blueprint

    def _generate(
        self,
        interface: type,
        closure: list[type],
        members: dict[str, tuple[type, Any]],
    ):
        # Shared ancestors are reached once per path; generate them once
        if interface in closure:
            return
        closure.append(interface)
        descriptor = self.registry.register(interface)
        for attr, value in self._forwarders(interface, descriptor):
            if attr in RESERVED:
                raise SynthesisError(
                    f"{qualified_name(interface)}.{attr} cannot be proxied"
                )
            owner = members.get(attr)
            if owner is None or issubclass(interface, owner[0]):
                members[attr] = (interface, value)
            elif issubclass(owner[0], interface):
                self._log.debug(
                    f"{qualified_name(interface)}.{attr} is overridden by "
                    f"{qualified_name(owner[0])}"
                )
            else:
                raise SynthesisError(
                    f"{attr!r} is declared by both {qualified_name(owner[0])} and "
                    f"{qualified_name(interface)}"
                )
        for parent in descriptor.extends:
            self._generate(parent, closure, members)

    def _forwarders(
        self, interface: type, descriptor: InterfaceDescriptor
    ) -> Iterator[tuple[str, Any]]:
        ns = vars(interface)
        for method in descriptor.methods:
            if method.property_name is None:
                yield method.name, make_forwarding_method(
                    interface, method, self.registry, ns[method.name].__doc__
                )
        for prop in descriptor.properties:
            accessors = [
                make_forwarding_method(interface, accessor, self.registry)
                if accessor
                else None
                for accessor in (prop.getter, prop.setter, prop.deleter)
            ]
            yield prop.name, property(*accessors, doc=ns[prop.name].__doc__)


def make_sealed_hook(name: str) -> Callable:
    def __init_subclass__(cls, **kwds: Any):
        raise TypeError(f"{name} is sealed and cannot be subclassed")

    return __init_subclass__
