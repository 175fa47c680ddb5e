class ProxyError(Exception):
    """Base class for all dynproxy errors."""


class InvalidArgumentError(ProxyError, ValueError):
    """Raised for a missing handler or an unusable interface set."""


class DescriptorNotFoundError(ProxyError, LookupError):
    """Raised when a forwarding routine refers to an unregistered method.

    This is never expected at run time, it means a blueprint and the
    descriptor registry disagree.
    """


class SynthesisError(ProxyError, TypeError):
    """Raised when an interface closure cannot be turned into a blueprint."""


class ConversionError(ProxyError, TypeError):
    """Raised when a handler result does not fit the declared return type."""


def qualified_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"
