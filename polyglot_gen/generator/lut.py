"""Encode/decode fragment tables for message fields.

Each field is bound to the fragment generated for its kind. Container kinds
build their fragment by instantiating the fragment of the kind they hold
inside their own loop, so nesting depth is unbounded while the set of
fragment generators stays fixed.

Generated code targets the polyglot runtime: encoders consume and return a
``Cursor<Vec<u8>>`` (bound to ``e``), decoders read from
``&mut Cursor<&mut Vec<u8>>`` (bound to ``d``) into a default-initialised
``x``.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import assert_never

from .errors import InternalError
from .kinds import (
    BoolKind,
    BytesKind,
    EnumKind,
    FloatKind,
    IntegerKind,
    Kind,
    MapKind,
    MessageKind,
    OneofKind,
    RepeatedKind,
    StringKind,
    classify,
)
from .types import ProtoField, ProtoMessage, TypeIndex
from .util import rust_ident, to_camel_case

INDENT = "    "


@dataclass(frozen=True)
class Binding:
    """A field bound to its generated fragment.

    default is the Rust expression the field holds when absent on the wire;
    only set for decode bindings.
    """

    field: ProtoField
    kind: Kind
    fragment: str
    default: str | None = None


def _indent(lines: list[str], level: int = 1) -> list[str]:
    return [INDENT * level + line if line else line for line in lines]


def _scalar_suffix(kind: Kind) -> str:
    if isinstance(kind, IntegerKind):
        return f"{'i' if kind.signed else 'u'}{kind.bits}"
    if isinstance(kind, FloatKind):
        return f"f{kind.bits}"
    if isinstance(kind, BoolKind):
        return "bool"
    if isinstance(kind, StringKind):
        return "string"
    if isinstance(kind, BytesKind):
        return "bytes"
    raise InternalError(f"{kind} is not a scalar kind")


def wire_kind(kind: Kind) -> str:
    """The polyglot Kind tag announced in array and map headers."""
    if isinstance(kind, IntegerKind):
        return f"Kind::{'I' if kind.signed else 'U'}{kind.bits}"
    if isinstance(kind, FloatKind):
        return f"Kind::F{kind.bits}"
    if isinstance(kind, BoolKind):
        return "Kind::Bool"
    if isinstance(kind, StringKind):
        return "Kind::String"
    if isinstance(kind, BytesKind):
        return "Kind::Bytes"
    if isinstance(kind, EnumKind):
        return "Kind::U32"
    if isinstance(kind, MessageKind):
        return "Kind::Any"
    if isinstance(kind, RepeatedKind):
        return "Kind::Array"
    if isinstance(kind, MapKind):
        return "Kind::Map"
    if isinstance(kind, OneofKind):
        raise InternalError("oneof kinds have no wire kind")
    assert_never(kind)


def default_value(kind: Kind, index: TypeIndex) -> str:
    """Rust expression for a field that is absent on the wire."""
    if isinstance(kind, IntegerKind):
        return "0"
    if isinstance(kind, FloatKind):
        return "0.0"
    if isinstance(kind, BoolKind):
        return "false"
    if isinstance(kind, StringKind):
        return "String::new()"
    if isinstance(kind, (BytesKind, RepeatedKind)):
        return "Vec::new()"
    if isinstance(kind, MapKind):
        return "HashMap::new()"
    if isinstance(kind, EnumKind):
        enum = index.enum(kind.type_name)
        if not enum.values:
            raise InternalError(f"Enum {kind.type_name} has no values")
        return f"{index.rust_name(kind.type_name)}::{to_camel_case(enum.values[0].name)}"
    if isinstance(kind, (MessageKind, OneofKind)):
        return "None"
    assert_never(kind)


def oneof_type_name(message: ProtoMessage, group: str, index: TypeIndex) -> str:
    return index.rust_name(message.full_name) + to_camel_case(group)


def oneof_variant(proto_field: ProtoField) -> str:
    return to_camel_case(proto_field.name)


# Encoding


def encode_value(kind: Kind, expr: str, by_ref: bool, depth: int, index: TypeIndex) -> list[str]:
    """Statements encoding a present value held in expr.

    by_ref is True when expr is a reference (a loop or match binding).
    """
    value = f"*{expr}" if by_ref else expr
    borrowed = expr if by_ref else f"&{expr}"

    if isinstance(kind, (IntegerKind, FloatKind, BoolKind)):
        return [f"e = e.encode_{_scalar_suffix(kind)}({value});"]
    if isinstance(kind, (StringKind, BytesKind)):
        return [f"e = e.encode_{_scalar_suffix(kind)}({borrowed});"]
    if isinstance(kind, EnumKind):
        return [f"e = e.encode_u32({value} as u32);"]
    if isinstance(kind, MessageKind):
        return [f"e = {expr}.encode(e);"]
    if isinstance(kind, RepeatedKind):
        item = f"v{depth}"
        return [
            f"e = e.encode_array({expr}.len(), {wire_kind(kind.element)});",
            f"for {item} in {expr}.iter() {{",
            *_indent(encode_value(kind.element, item, True, depth + 1, index)),
            "}",
        ]
    if isinstance(kind, MapKind):
        key, item = f"k{depth}", f"v{depth}"
        return [
            f"e = e.encode_map({expr}.len(), {wire_kind(kind.key)}, {wire_kind(kind.value)});",
            f"for ({key}, {item}) in {expr}.iter() {{",
            *_indent(encode_value(kind.key, key, True, depth + 1, index)),
            *_indent(encode_value(kind.value, item, True, depth + 1, index)),
            "}",
        ]
    if isinstance(kind, OneofKind):
        raise InternalError("oneof kinds only appear at field level")
    assert_never(kind)


def encode_field(
    message: ProtoMessage, proto_field: ProtoField, kind: Kind, index: TypeIndex
) -> list[str]:
    """Statements encoding one field of self.

    Oneof members produce a match arm; the arms of a group are joined by
    encode_body.
    """
    name = rust_ident(proto_field.name)

    if isinstance(kind, MessageKind):
        return [
            f"e = match &self.{name} {{",
            f"{INDENT}Some(v) => v.encode(e),",
            f"{INDENT}None => e.encode_none(),",
            "};",
        ]
    if isinstance(kind, OneofKind):
        variant = f"{oneof_type_name(message, kind.group, index)}::{oneof_variant(proto_field)}"
        return [
            f"Some({variant}(v1)) => {{",
            f"{INDENT}e = e.encode_u32({kind.number});",
            *_indent(encode_value(kind.inner, "v1", True, 2, index)),
            "}",
        ]
    return encode_value(kind, f"self.{name}", False, 1, index)


def build_encode_lut(message: ProtoMessage, index: TypeIndex) -> list[Binding]:
    """Bind every field of a message to its encode fragment, in wire-number order."""
    bindings = []
    for proto_field in sorted(message.fields, key=lambda f: f.number):
        kind = classify(proto_field)
        fragment = encode_field(message, proto_field, kind, index)
        bindings.append(Binding(proto_field, kind, "\n".join(fragment)))
    return bindings


# Decoding


def decode_value(
    kind: Kind, assign: Callable[[str], str], depth: int, index: TypeIndex
) -> list[str]:
    """Statements decoding one value and handing it to assign."""
    if isinstance(kind, (IntegerKind, FloatKind, BoolKind, StringKind, BytesKind)):
        return [assign(f"d.decode_{_scalar_suffix(kind)}()?")]
    if isinstance(kind, EnumKind):
        return [assign(f"{index.rust_name(kind.type_name)}::try_from(d.decode_u32()?)?")]
    if isinstance(kind, MessageKind):
        return [assign(f"{index.rust_name(kind.type_name)}::decode(d)?")]
    if isinstance(kind, RepeatedKind):
        size, items = f"n{depth}", f"a{depth}"
        return [
            f"let {size} = d.decode_array({wire_kind(kind.element)})?;",
            f"let mut {items} = Vec::with_capacity({size});",
            f"for _ in 0..{size} {{",
            *_indent(
                decode_value(kind.element, lambda v: f"{items}.push({v});", depth + 1, index)
            ),
            "}",
            assign(items),
        ]
    if isinstance(kind, MapKind):
        size, items, key = f"n{depth}", f"m{depth}", f"k{depth}"
        return [
            f"let {size} = d.decode_map({wire_kind(kind.key)}, {wire_kind(kind.value)})?;",
            f"let mut {items} = HashMap::with_capacity({size});",
            f"for _ in 0..{size} {{",
            *_indent(decode_value(kind.key, lambda v: f"let {key} = {v};", depth + 1, index)),
            *_indent(
                decode_value(
                    kind.value, lambda v: f"{items}.insert({key}, {v});", depth + 1, index
                )
            ),
            "}",
            assign(items),
        ]
    if isinstance(kind, OneofKind):
        raise InternalError("oneof kinds only appear at field level")
    assert_never(kind)


def decode_field(
    message: ProtoMessage, proto_field: ProtoField, kind: Kind, index: TypeIndex
) -> list[str]:
    """Statements decoding one field into x.

    A None marker in place of a value leaves the field at its default.
    Oneof members produce a match arm keyed on the member's wire number.
    """
    name = rust_ident(proto_field.name)

    if isinstance(kind, MessageKind):
        return [
            "if !d.decode_none() {",
            *_indent(decode_value(kind, lambda v: f"x.{name} = Some({v});", 1, index)),
            "}",
        ]
    if isinstance(kind, OneofKind):
        variant = f"{oneof_type_name(message, kind.group, index)}::{oneof_variant(proto_field)}"
        group = rust_ident(kind.group)

        def assign(v: str) -> str:
            if isinstance(kind.inner, MessageKind):
                v = f"Box::new({v})"
            return f"x.{group} = Some({variant}({v}));"

        return [
            f"{kind.number} => {{",
            *_indent(decode_value(kind.inner, assign, 1, index)),
            "}",
        ]
    return [
        "if !d.decode_none() {",
        *_indent(decode_value(kind, lambda v: f"x.{name} = {v};", 1, index)),
        "}",
    ]


def build_decode_lut(message: ProtoMessage, index: TypeIndex) -> list[Binding]:
    """Bind every field of a message to its decode fragment and default, in wire-number order."""
    bindings = []
    for proto_field in sorted(message.fields, key=lambda f: f.number):
        kind = classify(proto_field)
        fragment = decode_field(message, proto_field, kind, index)
        default = default_value(kind, index)
        bindings.append(Binding(proto_field, kind, "\n".join(fragment), default))
    return bindings


# Assembly


def _group_oneofs(bindings: list[Binding]) -> list[list[Binding]]:
    """Split bindings into runs: one per plain field, one per oneof group.

    A group is placed where its lowest-numbered member sits.
    """
    runs: list[list[Binding]] = []
    groups: dict[str, list[Binding]] = {}
    for binding in bindings:
        if isinstance(binding.kind, OneofKind):
            if binding.kind.group in groups:
                groups[binding.kind.group].append(binding)
                continue
            groups[binding.kind.group] = [binding]
            runs.append(groups[binding.kind.group])
        else:
            runs.append([binding])
    return runs


def encode_body(bindings: list[Binding]) -> list[str]:
    """Statements of an encode method body, oneof arms joined into matches."""
    lines: list[str] = []
    for run in _group_oneofs(bindings):
        first = run[0]
        if not isinstance(first.kind, OneofKind):
            lines.extend(first.fragment.split("\n"))
            continue
        lines.append(f"match &self.{rust_ident(first.kind.group)} {{")
        for binding in run:
            lines.extend(_indent(binding.fragment.split("\n")))
        lines.append(f"{INDENT}None => e = e.encode_none(),")
        lines.append("}")
    return lines


def decode_body(bindings: list[Binding]) -> list[str]:
    """Statements of a decode method body, oneof arms joined into matches."""
    lines: list[str] = []
    for run in _group_oneofs(bindings):
        first = run[0]
        if not isinstance(first.kind, OneofKind):
            lines.extend(first.fragment.split("\n"))
            continue
        lines.append("if !d.decode_none() {")
        lines.append(f"{INDENT}match d.decode_u32()? {{")
        for binding in run:
            lines.extend(_indent(binding.fragment.split("\n"), 2))
        lines.append(f"{INDENT * 2}_ => return Err(DecodingError::InvalidStruct.into()),")
        lines.append(f"{INDENT}}}")
        lines.append("}")
    return lines
