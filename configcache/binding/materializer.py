"""
Materialization of settings into dataclasses.

A dataclass field is bound to a configuration key with ``config_field``:

    @dataclass
    class HttpConfig:
        port: int = config_field("port", default=8080)
        debug: bool = config_field("debug", default=False)
        name: str = config_field("service_name", default="")
        workers: int = 4  # not bound, left untouched

Supported field types are exactly ``int``, ``bool`` and ``str``. Bindings
are resolved once per class; any other type fails with UnsupportedTypeError
as soon as the class is first used.
"""

import dataclasses
import functools
import re
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from configcache.domain.setting import Setting
from configcache.errors import ConversionError, MissingKeyError, UnsupportedTypeError

CONFIG_KEY_METADATA = "config_service"

_INT_RE = re.compile(r"[+-]?[0-9]+")

# Литералы как у strconv.ParseBool, которым пользуется config service
_TRUE_LITERALS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_LITERALS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

T = TypeVar("T")


class Kind(str, Enum):
    """Primitive kinds a setting value can be converted to."""

    INT = "int"
    BOOL = "bool"
    STR = "str"


_KINDS_BY_TYPE: dict[Any, Kind] = {int: Kind.INT, bool: Kind.BOOL, str: Kind.STR}


@dataclass(frozen=True)
class Binding:
    """Field name, configuration key and expected kind."""

    field: str
    key: str
    kind: Kind
    init: bool = True


def config_field(key: str, **kwargs: Any) -> Any:
    """
    Declare a dataclass field filled from configuration key ``key``.

    Accepts the same keyword arguments as ``dataclasses.field``.
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[CONFIG_KEY_METADATA] = key
    return dataclasses.field(metadata=metadata, **kwargs)


@functools.lru_cache(maxsize=None)
def bindings_for(cls: type) -> tuple[Binding, ...]:
    """
    Resolve bindings declared on a dataclass.

    Raises:
        TypeError: If cls is not a dataclass
        UnsupportedTypeError: If a bound field is not int, bool or str
    """
    if not (isinstance(cls, type) and dataclasses.is_dataclass(cls)):
        raise TypeError(f"{cls!r} is not a dataclass type")

    bindings: list[Binding] = []
    for f in dataclasses.fields(cls):
        key = f.metadata.get(CONFIG_KEY_METADATA)
        if not key:
            continue
        annotation = _resolve_annotation(cls, f)
        kind = _KINDS_BY_TYPE.get(annotation)
        if kind is None:
            raise UnsupportedTypeError(f.name, _type_name(annotation))
        bindings.append(Binding(field=f.name, key=key, kind=kind, init=f.init))
    return tuple(bindings)


def convert(value: str, kind: Kind) -> int | bool | str:
    """
    Convert raw setting value to a kind.

    Raises:
        ValueError: If value is not a valid literal of the kind
    """
    if kind is Kind.INT:
        if not _INT_RE.fullmatch(value):
            raise ValueError(f"invalid syntax for int: {value!r}")
        return int(value)
    if kind is Kind.BOOL:
        if value in _TRUE_LITERALS:
            return True
        if value in _FALSE_LITERALS:
            return False
        raise ValueError(f"invalid syntax for bool: {value!r}")
    return value


def resolve_values(cls: type, settings: Mapping[str, Setting]) -> dict[str, Any]:
    """
    Convert every bound field of cls from a snapshot.

    Returns:
        Mapping field name -> converted value

    Raises:
        MissingKeyError: If a bound key is absent
        ConversionError: If a value cannot be converted
    """
    values: dict[str, Any] = {}
    for binding in bindings_for(cls):
        setting = settings.get(binding.key)
        if setting is None:
            raise MissingKeyError(binding.key)
        try:
            values[binding.field] = convert(setting.value, binding.kind)
        except ValueError as e:
            raise ConversionError(
                binding.key, binding.field, setting.value, binding.kind.value, str(e)
            ) from e
    return values


def populate(target: Any, settings: Mapping[str, Setting]) -> None:
    """
    Fill bound fields of a dataclass instance.

    All values are converted before any field is assigned, so on error
    the target is left unchanged.
    """
    if isinstance(target, type) or not dataclasses.is_dataclass(target):
        raise TypeError(f"{target!r} is not a dataclass instance")

    values = resolve_values(type(target), settings)
    for name, value in values.items():
        setattr(target, name, value)


def materialize(cls: type[T], settings: Mapping[str, Setting]) -> T:
    """Build a new instance of cls with bound fields taken from a snapshot."""
    values = resolve_values(cls, settings)
    init_names = {b.field for b in bindings_for(cls) if b.init}
    instance = cls(**{k: v for k, v in values.items() if k in init_names})
    for name, value in values.items():
        if name not in init_names:
            object.__setattr__(instance, name, value)
    return instance


def _type_name(annotation: Any) -> str:
    return getattr(annotation, "__name__", None) or repr(annotation)


def _resolve_annotation(cls: type, f: dataclasses.Field[Any]) -> Any:
    """
    Resolve the annotation of one bound field.

    Only bound fields are evaluated, so unbound fields may use names that
    exist for type checkers only.
    """
    if not isinstance(f.type, str):
        return f.type

    module = sys.modules.get(cls.__module__)
    globalns = dict(vars(module)) if module else {}
    localns = dict(vars(cls))
    try:
        return eval(f.type, globalns, localns)  # noqa: S307
    except Exception as e:
        raise UnsupportedTypeError(f.name, f.type) from e
