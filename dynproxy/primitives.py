import enum
import operator
import struct
from numbers import Real
from typing import Any, Callable, NewType

from dynproxy.base import ConversionError

# Sized value types. Annotate interface methods with these to get the
# matching narrowing on return values; plain int and float stay unbounded.
Int8 = NewType("Int8", int)
Int16 = NewType("Int16", int)
Int32 = NewType("Int32", int)
Int64 = NewType("Int64", int)
UInt8 = NewType("UInt8", int)
UInt16 = NewType("UInt16", int)
UInt32 = NewType("UInt32", int)
UInt64 = NewType("UInt64", int)
Float32 = NewType("Float32", float)
Float64 = NewType("Float64", float)

NoneType = type(None)

Converter = Callable[[Any], Any]


def type_name(t: Any) -> str:
    if t is NoneType:
        return "None"
    if t is Any:
        return "Any"
    return getattr(t, "__name__", repr(t))


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise ConversionError(f"Expected bool, got {value!r}")


def to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ConversionError(f"Expected integer, got {value!r}")
    try:
        return operator.index(value)
    except TypeError as e:
        raise ConversionError(f"Expected integer, got {value!r}") from e


def make_int_converter(t: Any, bits: int, signed: bool) -> Converter:
    if signed:
        low, high = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        low, high = 0, (1 << bits) - 1

    def convert(value: Any) -> int:
        n = to_int(value)
        if not low <= n <= high:
            raise ConversionError(f"{n} is out of range for {type_name(t)}")
        return n

    return convert


def to_float64(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ConversionError(f"Expected real number, got {value!r}")
    try:
        return float(value)
    except OverflowError as e:
        raise ConversionError("Value is out of range for float") from e


def to_float32(value: Any) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", to_float64(value)))[0]
    except OverflowError as e:
        raise ConversionError(f"{value!r} is out of range for Float32") from e


def make_enum_converter(t: type[enum.Enum]) -> Converter:
    def convert(value: Any) -> enum.Enum:
        if isinstance(value, t):
            return value
        try:
            return t(value)
        except ValueError as e:
            raise ConversionError(f"{value!r} is not a valid {t.__name__}") from e

    return convert


def discard(value: Any) -> None:
    return None


def passthrough(value: Any) -> Any:
    return value


CONVERTERS: dict[Any, Converter] = {
    bool: to_bool,
    int: to_int,
    float: to_float64,
    Int8: make_int_converter(Int8, 8, True),
    Int16: make_int_converter(Int16, 16, True),
    Int32: make_int_converter(Int32, 32, True),
    Int64: make_int_converter(Int64, 64, True),
    UInt8: make_int_converter(UInt8, 8, False),
    UInt16: make_int_converter(UInt16, 16, False),
    UInt32: make_int_converter(UInt32, 32, False),
    UInt64: make_int_converter(UInt64, 64, False),
    Float32: to_float32,
    Float64: to_float64,
}


def is_void(return_type: Any) -> bool:
    return return_type is NoneType


def converter_for(return_type: Any) -> Converter:
    """Return the function that turns a handler result into `return_type`."""
    if is_void(return_type):
        return discard
    try:
        return CONVERTERS[return_type]
    except (KeyError, TypeError):
        # TypeError: unhashable annotations such as some typing aliases
        pass
    if isinstance(return_type, enum.EnumMeta):
        return make_enum_converter(return_type)
    return passthrough


def from_generic(return_type: Any, value: Any) -> Any:
    return converter_for(return_type)(value)
