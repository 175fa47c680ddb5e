from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from inspect import isclass
from typing import Any, ClassVar, TypeVar

from dynproxy.base import *
from dynproxy.descriptor import DescriptorRegistry, interfaces_of
from dynproxy.descriptor import is_interface as is_interface_type
from dynproxy.handler import InvocationHandler
from dynproxy.proxy import BlueprintBuilder

T = TypeVar("T")


@dataclass
class FactoryOptions:
    suffix: str = "Proxy"
    base_type: type = object
    sealed: bool = True


class ProxyFactory:
    """Creates proxies and caches one blueprint per target type."""

    _instance: ClassVar[ProxyFactory | None] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self,
        options: FactoryOptions | None = None,
        registry: DescriptorRegistry | None = None,
    ):
        self._log = logging.getLogger(self.__class__.__name__)
        self.options = options or FactoryOptions()
        self.builder = BlueprintBuilder(registry)
        self._blueprints: dict[type, type] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> ProxyFactory:
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @property
    def blueprints(self) -> dict[str, type]:
        """Snapshot of the cached blueprints keyed by qualified name."""
        return {qualified_name(b): b for b in list(self._blueprints.values())}

    def blueprint_name(self, target: type) -> str:
        return f"{target.__name__}{self.options.suffix}"

    def get_blueprint(self, target: type, is_interface: bool = False) -> type:
        if not isclass(target):
            raise InvalidArgumentError(f"{target!r} is not a class")
        if is_interface and not is_interface_type(target):
            raise InvalidArgumentError(f"{target!r} is not an interface")
        blueprint = self._blueprints.get(target)
        if blueprint is not None:
            return blueprint
        with self._lock:
            blueprint = self._blueprints.get(target)
            if blueprint is None:
                blueprint = self._build(target, is_interface)
                self._blueprints[target] = blueprint
                self._log.info(f"Built blueprint {qualified_name(blueprint)}")
        return blueprint

    def _build(self, target: type, is_interface: bool) -> type:
        if is_interface:
            interfaces = [target]
        else:
            interfaces = interfaces_of(target)
        if not interfaces:
            raise InvalidArgumentError(
                f"{qualified_name(target)} does not implement any interfaces"
            )
        return self.builder.build(
            InvocationHandler,
            self.options.base_type,
            interfaces,
            self.blueprint_name(target),
            qualname=f"{target.__qualname__}{self.options.suffix}",
            module=target.__module__,
            sealed=self.options.sealed,
        )

    def create(self, handler: Any, target: type[T], is_interface: bool = False) -> T:
        """Create a proxy implementing `target`'s interfaces.

        When `is_interface` is set, `target` itself must be an interface and is
        the only one proxied. Otherwise every interface in `target`'s MRO is,
        which includes `target` when it is an interface.
        """
        if handler is None or not isinstance(handler, InvocationHandler):
            raise InvalidArgumentError(f"{handler!r} is not an InvocationHandler")
        blueprint = self.get_blueprint(target, is_interface)
        return blueprint(handler)


def create_proxy(handler: Any, target: type[T], is_interface: bool = False) -> T:
    return ProxyFactory.get_instance().create(handler, target, is_interface)
