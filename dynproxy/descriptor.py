from __future__ import annotations

import inspect
import logging
import threading
from abc import ABC, ABCMeta
from dataclasses import dataclass, field
from inspect import Parameter, isclass
from types import FunctionType
from typing import Any, Generic, Protocol, get_type_hints

from dynproxy.base import *
from dynproxy.primitives import is_void, type_name

# Classes that may appear among an interface's bases without being interfaces
ROOTS: tuple[type, ...] = (object, ABC, Protocol, Generic)  # type: ignore[arg-type]

_POSITIONAL = (Parameter.POSITIONAL_ONLY, Parameter.POSITIONAL_OR_KEYWORD)


@dataclass(frozen=True)
class MethodDescriptor:
    name: str
    parameter_types: tuple[Any, ...]
    return_type: Any
    index: int
    interface: str
    parameter_names: tuple[str, ...] = ()
    property_name: str | None = None
    signature: inspect.Signature | None = field(
        default=None, compare=False, repr=False
    )

    def __str__(self) -> str:
        params = ", ".join(
            f"{name}: {type_name(t)}"
            for name, t in zip(self.parameter_names, self.parameter_types)
        )
        return f"[{self.index}] {self.name}({params}) -> {type_name(self.return_type)}"

    @property
    def is_void(self) -> bool:
        return is_void(self.return_type)

    def split_arguments(
        self, arguments: tuple[Any, ...]
    ) -> tuple[list[Any], dict[str, Any]]:
        """Turn an ordered argument tuple back into call arguments."""
        if self.signature is None:
            raise InvalidArgumentError(
                f"{self.interface}.{self.name} has no signature"
            )
        args: list[Any] = []
        kwds: dict[str, Any] = {}
        params = list(self.signature.parameters.values())[1:]
        for param, value in zip(params, arguments):
            match param.kind:
                case Parameter.POSITIONAL_ONLY | Parameter.POSITIONAL_OR_KEYWORD:
                    args.append(value)
                case Parameter.VAR_POSITIONAL:
                    args.extend(value)
                case Parameter.KEYWORD_ONLY:
                    kwds[param.name] = value
                case Parameter.VAR_KEYWORD:
                    kwds.update(value)
        return args, kwds

    def invoke(self, target: object, arguments: tuple[Any, ...]) -> Any:
        """Replay this method with `arguments` on a real `target` object."""
        if self.property_name is not None:
            match self.name.partition("_")[0]:
                case "get":
                    return getattr(target, self.property_name)
                case "set":
                    setattr(target, self.property_name, *arguments)
                case "del":
                    delattr(target, self.property_name)
            return None
        args, kwds = self.split_arguments(arguments)
        return getattr(target, self.name)(*args, **kwds)


@dataclass(frozen=True)
class PropertyDescriptor:
    name: str
    type: Any
    index: int
    interface: str
    getter: MethodDescriptor | None = None
    setter: MethodDescriptor | None = None
    deleter: MethodDescriptor | None = None


@dataclass(frozen=True)
class InterfaceDescriptor:
    interface: type
    name: str
    methods: tuple[MethodDescriptor, ...]
    properties: tuple[PropertyDescriptor, ...] = ()
    extends: tuple[type, ...] = ()

    def find_method(self, name: str) -> MethodDescriptor | None:
        for method in self.methods:
            if method.name == name:
                return method
        return None


def is_dunder(name: str) -> bool:
    return name.startswith("__") and name.endswith("__")


def is_abstract(member: Any) -> bool:
    return getattr(member, "__isabstractmethod__", False)


def is_protocol(cls: type) -> bool:
    return vars(cls).get("_is_protocol", False)


def is_member(cls: type, name: str, member: Any) -> bool:
    """Returns True if member is a method or property the proxy must forward.

    Protocol members count even without @abstractmethod; dunders only count
    when they are abstract.
    """
    if not isinstance(member, (FunctionType, property)):
        return False
    if is_abstract(member):
        return True
    return is_protocol(cls) and not is_dunder(name)


def is_interface(cls: Any) -> bool:
    """Returns True if cls is an ABC or Protocol with only abstract members."""
    if not isclass(cls) or cls in ROOTS or not isinstance(cls, ABCMeta):
        return False
    for base in cls.__bases__:
        if base not in ROOTS and not is_interface(base):
            return False
    for name, member in vars(cls).items():
        if is_dunder(name):
            continue
        if isinstance(member, (FunctionType, property)) and not is_member(
            cls, name, member
        ):
            return False
    return True


def extended_interfaces(interface: type) -> tuple[type, ...]:
    return tuple(base for base in interface.__bases__ if is_interface(base))


def interfaces_of(cls: type) -> list[type]:
    """All interfaces a class implements, including itself, in MRO order."""
    return [c for c in cls.__mro__ if is_interface(c)]


def reflect_method(
    interface: type,
    func: FunctionType,
    name: str,
    index: int,
    property_name: str | None = None,
) -> MethodDescriptor:
    where = f"{qualified_name(interface)}.{name}"
    try:
        hints = get_type_hints(func)
    except (NameError, SyntaxError, TypeError) as e:
        raise SynthesisError(f"Cannot resolve annotations of {where}: {e}") from e
    signature = inspect.signature(func)
    params = list(signature.parameters.values())
    if not params or params[0].kind not in _POSITIONAL:
        raise SynthesisError(f"{where} does not take self")
    params = params[1:]
    return MethodDescriptor(
        name=name,
        parameter_types=tuple(hints.get(p.name, Any) for p in params),
        return_type=hints.get("return", Any),
        index=index,
        interface=qualified_name(interface),
        parameter_names=tuple(p.name for p in params),
        property_name=property_name,
        signature=signature,
    )


def reflect_interface(interface: type) -> InterfaceDescriptor:
    """Reflect the members an interface declares itself, in declaration order."""
    name = qualified_name(interface)
    methods: list[MethodDescriptor] = []
    properties: list[PropertyDescriptor] = []
    for attr, member in vars(interface).items():
        if isinstance(member, (FunctionType, property)) and not is_member(
            interface, attr, member
        ):
            if is_dunder(attr):
                continue
            raise SynthesisError(f"{name}.{attr} is concrete and cannot be proxied")
        if isinstance(member, FunctionType):
            methods.append(reflect_method(interface, member, attr, len(methods)))
        elif isinstance(member, property):
            accessors: list[MethodDescriptor | None] = []
            for prefix, func in (
                ("get", member.fget),
                ("set", member.fset),
                ("del", member.fdel),
            ):
                if func is None:
                    accessors.append(None)
                    continue
                accessor = reflect_method(
                    interface, func, f"{prefix}_{attr}", len(methods), attr
                )
                methods.append(accessor)
                accessors.append(accessor)
            getter, setter, deleter = accessors
            properties.append(
                PropertyDescriptor(
                    name=attr,
                    type=getter.return_type if getter else Any,
                    index=len(properties),
                    interface=name,
                    getter=getter,
                    setter=setter,
                    deleter=deleter,
                )
            )
        elif is_dunder(attr):
            continue
        elif isinstance(member, (staticmethod, classmethod)) or not attr.startswith("_"):
            raise SynthesisError(
                f"{name}.{attr} is a {type(member).__name__}, only abstract methods "
                "and properties can be proxied"
            )
        # Anything else is private machinery such as _abc_impl
    return InterfaceDescriptor(
        interface=interface,
        name=name,
        methods=tuple(methods),
        properties=tuple(properties),
        extends=extended_interfaces(interface),
    )


class DescriptorRegistry:
    """Process-wide, append-only cache of reflected interfaces.

    Interfaces are keyed by the class object. Qualified names are kept as a
    secondary index since Python does not guarantee they are unique; the most
    recently registered class wins a name lookup.
    """

    def __init__(self):
        self._log = logging.getLogger(self.__class__.__name__)
        self._lock = threading.Lock()
        self._by_type: dict[type, InterfaceDescriptor] = {}
        self._by_name: dict[str, InterfaceDescriptor] = {}

    def __contains__(self, interface: type | str) -> bool:
        if isinstance(interface, str):
            return interface in self._by_name
        return interface in self._by_type

    def __len__(self) -> int:
        return len(self._by_type)

    def register(self, interface: type) -> InterfaceDescriptor:
        descriptor = self._by_type.get(interface)
        if descriptor is not None:
            return descriptor
        with self._lock:
            descriptor = self._by_type.get(interface)
            if descriptor is None:
                descriptor = reflect_interface(interface)
                self._by_type[interface] = descriptor
                self._by_name[descriptor.name] = descriptor
                self._log.debug(
                    f"Registered {descriptor.name} with {len(descriptor.methods)} methods"
                )
        return descriptor

    def get(self, interface: type | str) -> InterfaceDescriptor:
        if isinstance(interface, str):
            descriptor = self._by_name.get(interface)
        else:
            descriptor = self._by_type.get(interface)
        if descriptor is None:
            raise DescriptorNotFoundError(f"Interface {interface!r} is not registered")
        return descriptor

    def resolve_method(self, interface: type | str, index: int) -> MethodDescriptor:
        descriptor = self.get(interface)
        if not 0 <= index < len(descriptor.methods):
            raise DescriptorNotFoundError(
                f"{descriptor.name} has no method at index {index}"
            )
        return descriptor.methods[index]

    def resolve_property(
        self, interface: type | str, index: int
    ) -> PropertyDescriptor:
        descriptor = self.get(interface)
        if not 0 <= index < len(descriptor.properties):
            raise DescriptorNotFoundError(
                f"{descriptor.name} has no property at index {index}"
            )
        return descriptor.properties[index]


registry = DescriptorRegistry()
