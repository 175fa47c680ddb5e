import importlib
import importlib.util
import sys
from inspect import isclass
from pathlib import Path
from types import ModuleType

from dynproxy.base import InvalidArgumentError


def same_file(filename: str | None, path: Path) -> bool:
    return filename is not None and Path(filename).resolve() == path.resolve()


def load_module_from_py_file(path: Path) -> ModuleType:
    spec = importlib.util.spec_from_file_location(path.stem, path)
    if not spec or not spec.loader:
        raise InvalidArgumentError(f"Cannot load {path}")
    module = importlib.util.module_from_spec(spec)
    # Class annotations are resolved through sys.modules. Never shadow a module
    # loaded from somewhere else, such as a stdlib module with the same name.
    loaded = sys.modules.get(path.stem)
    if loaded is None or same_file(getattr(loaded, "__file__", None), path):
        sys.modules[path.stem] = module
    spec.loader.exec_module(module)
    return module


def load_target(target: str) -> type:
    """Load a class from `package.module:Name` or `path/to/file.py:Name`."""
    module_name, sep, attr = target.rpartition(":")
    if not sep or not module_name or not attr:
        raise InvalidArgumentError(f"Target {target!r} is not in module:Name format")
    if module_name.endswith(".py"):
        if not Path(module_name).is_file():
            raise InvalidArgumentError(f"No such file: {module_name}")
        module = load_module_from_py_file(Path(module_name))
    else:
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise InvalidArgumentError(f"Cannot import {module_name}: {e}") from e
    value = module
    for part in attr.split("."):
        try:
            value = getattr(value, part)
        except AttributeError as e:
            raise InvalidArgumentError(f"{module_name} has no {attr}") from e
    if not isclass(value):
        raise InvalidArgumentError(f"{target} is not a class")
    return value
