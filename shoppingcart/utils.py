"""Import helpers for classes configured by dotted path."""
import importlib
from typing import Any


def class_path(obj: Any) -> str:
    """Dotted path of a class, or of an instance's class."""
    cls = obj if isinstance(obj, type) else type(obj)
    return f"{cls.__module__}.{cls.__qualname__}"


def import_string(path: str) -> Any:
    """
    Import an object by dotted path, e.g. ``catalog.models.Product``.

    Nested classes (``module.Outer.Inner``) resolve too: the longest
    importable module prefix is imported and the rest walked with getattr.

    Raises:
        ImportError: If no prefix imports or an attribute is missing
    """
    parts = path.split(".")
    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        try:
            target = importlib.import_module(module_name)
        except ImportError:
            continue
        try:
            for attribute in parts[split:]:
                target = getattr(target, attribute)
        except AttributeError as e:
            raise ImportError(f"{path} not found in {module_name}") from e
        return target
    raise ImportError(f"No importable module in {path}")
