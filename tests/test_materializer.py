from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING

import pytest

from configcache.binding.materializer import (
    CONFIG_KEY_METADATA,
    Binding,
    Kind,
    bindings_for,
    config_field,
    convert,
    materialize,
    populate,
)
from configcache.errors import ConversionError, MissingKeyError, UnsupportedTypeError
from tests.helpers import make_setting

if TYPE_CHECKING:
    from decimal import Decimal


@dataclass
class ServerConfig:
    port: int = config_field("port", default=0)
    debug: bool = config_field("debug", default=False)
    name: str = config_field("service_name", default="")
    workers: int = 4


@dataclass
class RatioConfig:
    ratio: float = config_field("ratio", default=0.0)


@dataclass
class LimitConfig:
    port: int = config_field("port", default=0)
    limit: Decimal | None = None


@dataclass
class UnresolvableConfig:
    amount: Decimal = config_field("amount", default=None)


@dataclass
class RequiredConfig:
    port: int = config_field("port")
    label: str = "default"


def _snapshot(**values: str):
    return {key: make_setting(key, value) for key, value in values.items()}


def test_bindings_follow_declaration_order() -> None:
    assert bindings_for(ServerConfig) == (
        Binding(field="port", key="port", kind=Kind.INT),
        Binding(field="debug", key="debug", kind=Kind.BOOL),
        Binding(field="name", key="service_name", kind=Kind.STR),
    )


def test_config_field_keeps_extra_metadata() -> None:
    @dataclass
    class Annotated:
        port: int = config_field("port", default=0, metadata={"doc": "listen port"})

    (port_field,) = fields(Annotated)
    assert port_field.metadata == {"doc": "listen port", CONFIG_KEY_METADATA: "port"}


def test_populate_fills_bound_fields() -> None:
    target = ServerConfig()

    populate(target, _snapshot(port="8080", debug="true", service_name="billing"))

    assert target == ServerConfig(port=8080, debug=True, name="billing", workers=4)


def test_populate_leaves_unbound_fields() -> None:
    target = ServerConfig(workers=16)

    populate(target, _snapshot(port="1", debug="0", service_name="x", workers="99"))

    assert target.workers == 16


def test_port_not_a_number_is_conversion_error() -> None:
    target = ServerConfig()

    with pytest.raises(ConversionError) as exc_info:
        populate(target, _snapshot(port="notanumber", debug="true", service_name="x"))

    assert exc_info.value.key == "port"
    assert exc_info.value.field == "port"
    assert exc_info.value.kind == "int"


def test_missing_key_is_reported() -> None:
    with pytest.raises(MissingKeyError) as exc_info:
        populate(ServerConfig(), _snapshot(debug="true", service_name="x"))

    assert exc_info.value.key == "port"
    assert "parameter port not found" in str(exc_info.value)


def test_failed_populate_does_not_touch_target() -> None:
    target = ServerConfig(port=1, debug=False, name="old")

    with pytest.raises(ConversionError):
        populate(target, _snapshot(port="8080", debug="maybe", service_name="new"))

    assert target == ServerConfig(port=1, debug=False, name="old")


def test_unsupported_type_is_rejected_eagerly() -> None:
    with pytest.raises(UnsupportedTypeError) as exc_info:
        bindings_for(RatioConfig)

    assert exc_info.value.field == "ratio"
    assert exc_info.value.kind == "float"


def test_unsupported_type_fails_populate_even_with_valid_value() -> None:
    with pytest.raises(UnsupportedTypeError):
        populate(RatioConfig(), _snapshot(ratio="0.5"))


def test_populate_rejects_non_dataclass() -> None:
    class Plain:
        port = 0

    with pytest.raises(TypeError):
        populate(Plain(), _snapshot(port="1"))

    with pytest.raises(TypeError):
        populate(ServerConfig, _snapshot(port="1"))


def test_materialize_builds_new_instance() -> None:
    config = materialize(RequiredConfig, _snapshot(port="9000"))

    assert config == RequiredConfig(port=9000, label="default")


def test_materialize_supports_frozen_dataclasses() -> None:
    @dataclass(frozen=True)
    class Frozen:
        enabled: bool = config_field("enabled", default=False)
        hidden: str = config_field("hidden", default="", init=False)
        extra: list[str] = field(default_factory=list)

    config = materialize(Frozen, _snapshot(enabled="T", hidden="secret"))

    assert config.enabled is True
    assert config.hidden == "secret"


@pytest.mark.parametrize("value", ["1", "t", "T", "TRUE", "true", "True"])
def test_convert_true_literals(value: str) -> None:
    assert convert(value, Kind.BOOL) is True


@pytest.mark.parametrize("value", ["0", "f", "F", "FALSE", "false", "False"])
def test_convert_false_literals(value: str) -> None:
    assert convert(value, Kind.BOOL) is False


@pytest.mark.parametrize("value", ["yes", "", "tRUE", " true", "2"])
def test_convert_rejects_other_bool_literals(value: str) -> None:
    with pytest.raises(ValueError):
        convert(value, Kind.BOOL)


@pytest.mark.parametrize(("value", "expected"), [("8080", 8080), ("+42", 42), ("-7", -7)])
def test_convert_int(value: str, expected: int) -> None:
    assert convert(value, Kind.INT) == expected


@pytest.mark.parametrize("value", ["", " 42", "4_2", "1.5", "0x10", "notanumber"])
def test_convert_rejects_invalid_int(value: str) -> None:
    with pytest.raises(ValueError):
        convert(value, Kind.INT)


def test_convert_str_is_passthrough() -> None:
    assert convert(" anything ", Kind.STR) == " anything "


def test_unbound_fields_may_use_type_checking_only_names() -> None:
    target = LimitConfig()

    populate(target, _snapshot(port="8080"))

    assert target.port == 8080
    assert target.limit is None
    assert materialize(LimitConfig, _snapshot(port="1")).port == 1


def test_unresolvable_bound_annotation_is_unsupported() -> None:
    with pytest.raises(UnsupportedTypeError) as exc_info:
        bindings_for(UnresolvableConfig)

    assert exc_info.value.field == "amount"
    assert exc_info.value.kind == "Decimal"
