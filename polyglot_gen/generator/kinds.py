"""Field kind classification.

Every field is mapped to a Kind: a closed set of variants describing the
shape of its value. Container kinds carry the kinds of what they hold, so
a kind is a small tree that the LUT builder walks recursively.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import assert_never

from .errors import ClassificationError
from .types import Cardinality, FieldType, ProtoField, ProtoValueType


class KindTag(StrEnum):
    INTEGER = "integer"
    FLOAT = "float"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"
    ENUM = "enum"
    MESSAGE = "message"
    REPEATED = "repeated"
    MAP = "map"
    ONEOF = "oneof"


@dataclass(frozen=True)
class IntegerKind:
    bits: int
    signed: bool


@dataclass(frozen=True)
class FloatKind:
    bits: int


@dataclass(frozen=True)
class BoolKind:
    pass


@dataclass(frozen=True)
class StringKind:
    pass


@dataclass(frozen=True)
class BytesKind:
    pass


@dataclass(frozen=True)
class EnumKind:
    type_name: str


@dataclass(frozen=True)
class MessageKind:
    type_name: str


@dataclass(frozen=True)
class RepeatedKind:
    element: "Kind"


@dataclass(frozen=True)
class MapKind:
    key: "Kind"
    value: "Kind"


@dataclass(frozen=True)
class OneofKind:
    group: str
    number: int
    inner: "Kind"


Kind = (
    IntegerKind
    | FloatKind
    | BoolKind
    | StringKind
    | BytesKind
    | EnumKind
    | MessageKind
    | RepeatedKind
    | MapKind
    | OneofKind
)

ScalarKind = IntegerKind | FloatKind | BoolKind | StringKind | BytesKind

SCALAR_KINDS: dict[FieldType, ScalarKind] = {
    FieldType.INT32: IntegerKind(32, True),
    FieldType.SINT32: IntegerKind(32, True),
    FieldType.SFIXED32: IntegerKind(32, True),
    FieldType.INT64: IntegerKind(64, True),
    FieldType.SINT64: IntegerKind(64, True),
    FieldType.SFIXED64: IntegerKind(64, True),
    FieldType.UINT32: IntegerKind(32, False),
    FieldType.FIXED32: IntegerKind(32, False),
    FieldType.UINT64: IntegerKind(64, False),
    FieldType.FIXED64: IntegerKind(64, False),
    FieldType.FLOAT: FloatKind(32),
    FieldType.DOUBLE: FloatKind(64),
    FieldType.BOOL: BoolKind(),
    FieldType.STRING: StringKind(),
    FieldType.BYTES: BytesKind(),
}


def classify_value(value: ProtoValueType) -> Kind:
    """Classify a single (non-container) value type."""
    if value.type in SCALAR_KINDS:
        return SCALAR_KINDS[value.type]
    if not value.type_name:
        raise ClassificationError(f"{value.type} value type has no type name")
    if value.type == FieldType.ENUM:
        return EnumKind(value.type_name)
    if value.type == FieldType.MESSAGE:
        return MessageKind(value.type_name)
    raise ClassificationError(f"Unknown value type: {value.type}")


def is_valid_map_key(kind: Kind) -> bool:
    return isinstance(kind, (IntegerKind, BoolKind, StringKind))


def classify(proto_field: ProtoField) -> Kind:
    """Classify a field.

    Oneof membership wins over everything else, then maps, then repeated
    fields; anything left is a plain value.
    """
    value = classify_value(proto_field.value)

    if proto_field.cardinality == Cardinality.ONEOF:
        if not proto_field.oneof:
            raise ClassificationError(f"Oneof member {proto_field.name} has no group")
        return OneofKind(proto_field.oneof, proto_field.number, value)

    if proto_field.cardinality == Cardinality.MAP:
        if proto_field.key is None:
            raise ClassificationError(f"Map field {proto_field.name} has no key type")
        key = classify_value(proto_field.key)
        if not is_valid_map_key(key):
            raise ClassificationError(
                f"Map field {proto_field.name} has invalid key type {proto_field.key.type}"
            )
        return MapKind(key, value)

    if proto_field.cardinality == Cardinality.REPEATED:
        return RepeatedKind(value)

    if proto_field.cardinality == Cardinality.SINGULAR:
        return value

    raise ClassificationError(f"Unknown cardinality: {proto_field.cardinality}")


def tag_of(kind: Kind) -> KindTag:
    if isinstance(kind, IntegerKind):
        return KindTag.INTEGER
    if isinstance(kind, FloatKind):
        return KindTag.FLOAT
    if isinstance(kind, BoolKind):
        return KindTag.BOOL
    if isinstance(kind, StringKind):
        return KindTag.STRING
    if isinstance(kind, BytesKind):
        return KindTag.BYTES
    if isinstance(kind, EnumKind):
        return KindTag.ENUM
    if isinstance(kind, MessageKind):
        return KindTag.MESSAGE
    if isinstance(kind, RepeatedKind):
        return KindTag.REPEATED
    if isinstance(kind, MapKind):
        return KindTag.MAP
    if isinstance(kind, OneofKind):
        return KindTag.ONEOF
    assert_never(kind)


def describe(kind: Kind) -> str:
    """Human readable form of a kind tree, e.g. ``map<string, repeated<enum Color>>``."""
    if isinstance(kind, IntegerKind):
        return f"{'i' if kind.signed else 'u'}{kind.bits}"
    if isinstance(kind, FloatKind):
        return f"f{kind.bits}"
    if isinstance(kind, (BoolKind, StringKind, BytesKind)):
        return tag_of(kind).value
    if isinstance(kind, (EnumKind, MessageKind)):
        return f"{tag_of(kind).value} {kind.type_name}"
    if isinstance(kind, RepeatedKind):
        return f"repeated<{describe(kind.element)}>"
    if isinstance(kind, MapKind):
        return f"map<{describe(kind.key)}, {describe(kind.value)}>"
    if isinstance(kind, OneofKind):
        return f"oneof {kind.group}<{describe(kind.inner)}>"
    assert_never(kind)
