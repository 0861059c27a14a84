"""Descriptor model for schema files and the type index used during generation."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum

from dataclasses_json import DataClassJsonMixin

from .util import to_camel_case, to_snake_case


class FieldType(StrEnum):
    """Value type of a field, using protobuf's scalar names."""

    DOUBLE = "double"
    FLOAT = "float"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    FIXED32 = "fixed32"
    FIXED64 = "fixed64"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"
    ENUM = "enum"
    MESSAGE = "message"


class Cardinality(StrEnum):
    SINGULAR = "singular"
    REPEATED = "repeated"
    MAP = "map"
    ONEOF = "oneof"


SCALAR_TYPES = frozenset(t for t in FieldType if t not in (FieldType.ENUM, FieldType.MESSAGE))


@dataclass
class ProtoValueType(DataClassJsonMixin):
    """A field's value type.

    type_name is the fully-qualified name (no leading dot) for enum and
    message types, None for scalars.
    """

    type: FieldType
    type_name: str | None = None

    @property
    def is_named(self) -> bool:
        return self.type in (FieldType.ENUM, FieldType.MESSAGE)


@dataclass
class ProtoField(DataClassJsonMixin):
    """A field of a message.

    For maps, key holds the key type and value the value type.
    For oneof members, oneof names the group.
    """

    name: str
    number: int
    cardinality: Cardinality
    value: ProtoValueType
    key: ProtoValueType | None = None
    oneof: str | None = None
    comment: str | None = None


@dataclass
class ProtoEnumValue(DataClassJsonMixin):
    name: str
    number: int
    comment: str | None = None


@dataclass
class ProtoEnum(DataClassJsonMixin):
    """An enum type definition."""

    name: str
    full_name: str
    values: list[ProtoEnumValue]
    comment: str | None = None


@dataclass
class ProtoMessage(DataClassJsonMixin):
    """A message type definition, with its nested declarations."""

    name: str
    full_name: str
    fields: list[ProtoField]
    messages: list["ProtoMessage"] = field(default_factory=list)
    enums: list[ProtoEnum] = field(default_factory=list)
    comment: str | None = None


@dataclass
class ProtoFile(DataClassJsonMixin):
    """A schema file as delivered by an ingestion path.

    generate is False for files loaded only to resolve imports.
    """

    path: str
    package: str
    dependencies: list[str]
    messages: list[ProtoMessage]
    enums: list[ProtoEnum]
    generate: bool = True

    @property
    def output_path(self) -> str:
        stem = self.path[: -len(".proto")] if self.path.endswith(".proto") else self.path
        return f"{stem}.rs"

    @property
    def module_path(self) -> str:
        """Rust module path generated code for this file lives under."""
        if self.package:
            parts = self.package.split(".")
        else:
            parts = self.output_path[: -len(".rs")].split("/")
        return "::".join(["crate"] + [to_snake_case(p) for p in parts])


def walk_types(proto_file: ProtoFile) -> Iterator[ProtoEnum | ProtoMessage]:
    """Yield every declaration of a file in declaration order.

    File-level enums come first, then each message followed by its nested
    enums and messages, depth first.
    """

    def walk_message(message: ProtoMessage) -> Iterator[ProtoEnum | ProtoMessage]:
        yield message
        yield from message.enums
        for nested in message.messages:
            yield from walk_message(nested)

    yield from proto_file.enums
    for message in proto_file.messages:
        yield from walk_message(message)


def rust_type_name(full_name: str, package: str) -> str:
    """Flatten a fully-qualified name (minus package) into a Rust type name."""
    local = full_name
    if package and full_name.startswith(package + "."):
        local = full_name[len(package) + 1 :]
    return to_camel_case(local)


@dataclass(frozen=True)
class TypeInfo:
    """Where a named type lives and how generated code refers to it."""

    full_name: str
    file: ProtoFile
    decl: ProtoEnum | ProtoMessage
    rust_name: str


class TypeIndex:
    """Lookup of every named type across all loaded files."""

    def __init__(self, files: list[ProtoFile]):
        self.types: dict[str, TypeInfo] = {}
        for proto_file in files:
            for decl in walk_types(proto_file):
                self.types[decl.full_name] = TypeInfo(
                    full_name=decl.full_name,
                    file=proto_file,
                    decl=decl,
                    rust_name=rust_type_name(decl.full_name, proto_file.package),
                )

    def __contains__(self, full_name: str) -> bool:
        return full_name in self.types

    def __getitem__(self, full_name: str) -> TypeInfo:
        return self.types[full_name]

    def rust_name(self, full_name: str) -> str:
        return self.types[full_name].rust_name

    def enum(self, full_name: str) -> ProtoEnum:
        decl = self.types[full_name].decl
        if not isinstance(decl, ProtoEnum):
            raise KeyError(f"{full_name} is not an enum")
        return decl
