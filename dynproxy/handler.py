from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from dynproxy.descriptor import MethodDescriptor


class InvocationHandler(ABC):
    """Receives every call made on a proxy.

    Any object with a callable `invoke` attribute counts as a handler, it
    does not have to inherit from this class.
    """

    @abstractmethod
    def invoke(
        self, proxy: object, method: MethodDescriptor, args: tuple[Any, ...]
    ) -> Any:
        pass

    @classmethod
    def __subclasshook__(cls, C):
        if cls is InvocationHandler:
            if any(callable(vars(B).get("invoke")) for B in C.__mro__):
                return True
        return NotImplemented


class FunctionHandler(InvocationHandler):
    def __init__(self, func: Callable[[object, MethodDescriptor, tuple], Any]):
        self.func = func

    def __repr__(self) -> str:
        return f"FunctionHandler({self.func!r})"

    def invoke(self, proxy, method, args):
        return self.func(proxy, method, args)


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple[Any, ...]

    def __repr__(self) -> str:
        return f"{self.name}({', '.join(map(arg_to_str, self.args))})"


def arg_to_str(arg: Any) -> str:
    match arg:
        case arg if isinstance(arg, enum.Enum):
            return str(arg)
        case _:
            return repr(arg)


class RecordingHandler(InvocationHandler):
    """Records each call, then hands it to `inner` if there is one."""

    def __init__(
        self, inner: InvocationHandler | None = None, calls: list[Call] | None = None
    ):
        self.inner = inner
        self.calls = calls if calls is not None else []

    def invoke(self, proxy, method, args):
        self.calls.append(Call(method.name, args))
        if self.inner is None:
            return None
        return self.inner.invoke(proxy, method, args)


class ForwardingHandler(InvocationHandler):
    """Replays each call on every target and returns the first target's result."""

    def __init__(self, targets: Sequence[object], calls: list[Call] | None = None):
        self.targets = list(targets)
        self.calls = calls

    def invoke(self, proxy, method, args):
        if self.calls is not None:
            self.calls.append(Call(method.name, args))
        results = [method.invoke(target, args) for target in self.targets]
        return results[0] if results else None
