"""Error types raised by the configuration cache."""


class ConfigServiceError(Exception):
    """Base class for configuration cache errors."""


class FetchError(ConfigServiceError):
    """Request to the configuration service failed (transport, status or body)."""


class MaterializeError(ConfigServiceError):
    """Base class for errors raised while filling a bound structure."""


class MissingKeyError(MaterializeError):
    """A bound configuration key is absent from the snapshot."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"parameter {key} not found")


class ConversionError(MaterializeError):
    """A setting value cannot be parsed as the field's declared kind."""

    def __init__(self, key: str, field: str, value: str, kind: str, reason: str) -> None:
        self.key = key
        self.field = field
        self.value = value
        self.kind = kind
        self.reason = reason
        super().__init__(
            f"failed to convert string {value!r} (key {key}) to field {field} "
            f"of type {kind}: {reason}"
        )


class UnsupportedTypeError(MaterializeError):
    """A bound field declares a type other than int, bool or str."""

    def __init__(self, field: str, kind: str) -> None:
        self.field = field
        self.kind = kind
        super().__init__(f"unsupported type: {kind} (field {field})")
