"""Tests for encode/decode fragment tables."""

import pytest

from polyglot_gen.generator import parse
from polyglot_gen.generator.errors import InternalError
from polyglot_gen.generator.kinds import (
    EnumKind,
    MapKind,
    OneofKind,
    RepeatedKind,
    StringKind,
)
from polyglot_gen.generator.lut import (
    build_decode_lut,
    build_encode_lut,
    decode_body,
    decode_value,
    encode_body,
    encode_value,
    wire_kind,
)
from polyglot_gen.generator.types import TypeIndex

SCHEMA = """
syntax = "proto3";
package demo;

enum Color {
  RED = 0;
  GREEN = 1;
}

message Pixel {
  int32 x = 1;
  int32 y = 2;
  Color c = 3;
  string label = 4;
}

message Shape {
  string name = 1;
  oneof body {
    double radius = 3;
    Pixel corner = 2;
  }
  bool filled = 4;
}

message Shuffled {
  bytes c = 3;
  uint64 a = 1;
  repeated float b = 2;
}
"""


@pytest.fixture
def schema():
    return parse(SCHEMA, "demo.proto")


@pytest.fixture
def index(schema):
    return TypeIndex([schema])


def _message(schema, name):
    return next(m for m in schema.messages if m.name == name)


def describe_build_encode_lut():
    def binds_one_fragment_per_field(expect, schema, index):
        lut = build_encode_lut(_message(schema, "Pixel"), index)
        expect([b.field.name for b in lut]) == ["x", "y", "c", "label"]
        expect(lut[0].fragment) == "e = e.encode_i32(self.x);"
        expect(lut[2].fragment) == "e = e.encode_u32(self.c as u32);"
        expect(lut[3].fragment) == "e = e.encode_string(&self.label);"

    def orders_fields_by_wire_number(expect, schema, index):
        lut = build_encode_lut(_message(schema, "Shuffled"), index)
        expect([b.field.number for b in lut]) == [1, 2, 3]
        expect(lut[1].fragment.split("\n")) == [
            "e = e.encode_array(self.b.len(), Kind::F32);",
            "for v1 in self.b.iter() {",
            "    e = e.encode_f32(*v1);",
            "}",
        ]

    def is_deterministic(expect, schema, index):
        first = build_encode_lut(_message(schema, "Shape"), index)
        second = build_encode_lut(_message(schema, "Shape"), index)
        expect(first) == second


def describe_build_decode_lut():
    def attaches_defaults(expect, schema, index):
        lut = build_decode_lut(_message(schema, "Pixel"), index)
        expect([b.default for b in lut]) == ["0", "0", "Color::Red", "String::new()"]

    def guards_values_against_none(expect, schema, index):
        lut = build_decode_lut(_message(schema, "Pixel"), index)
        expect(lut[2].fragment.split("\n")) == [
            "if !d.decode_none() {",
            "    x.c = Color::try_from(d.decode_u32()?)?;",
            "}",
        ]

    def defaults_oneof_groups_to_none(expect, schema, index):
        lut = build_decode_lut(_message(schema, "Shape"), index)
        expect(lut[1].kind.group) == "body"
        expect(lut[1].default) == "None"
        expect(lut[2].default) == "None"


def describe_nested_containers():
    KIND = MapKind(StringKind(), RepeatedKind(EnumKind("demo.Color")))

    def encode_recurses_into_each_level(expect, index):
        expect(encode_value(KIND, "self.tags", False, 1, index)) == [
            "e = e.encode_map(self.tags.len(), Kind::String, Kind::Array);",
            "for (k1, v1) in self.tags.iter() {",
            "    e = e.encode_string(k1);",
            "    e = e.encode_array(v1.len(), Kind::U32);",
            "    for v2 in v1.iter() {",
            "        e = e.encode_u32(*v2 as u32);",
            "    }",
            "}",
        ]

    def decode_recurses_into_each_level(expect, index):
        expect(decode_value(KIND, lambda v: f"x.tags = {v};", 1, index)) == [
            "let n1 = d.decode_map(Kind::String, Kind::Array)?;",
            "let mut m1 = HashMap::with_capacity(n1);",
            "for _ in 0..n1 {",
            "    let k1 = d.decode_string()?;",
            "    let n2 = d.decode_array(Kind::U32)?;",
            "    let mut a2 = Vec::with_capacity(n2);",
            "    for _ in 0..n2 {",
            "        a2.push(Color::try_from(d.decode_u32()?)?);",
            "    }",
            "    m1.insert(k1, a2);",
            "}",
            "x.tags = m1;",
        ]


def describe_wire_kind():
    def announces_enums_as_u32(expect):
        expect(wire_kind(EnumKind("demo.Color"))) == "Kind::U32"

    def has_no_kind_for_oneofs(expect):
        with pytest.raises(InternalError):
            wire_kind(OneofKind("g", 1, StringKind()))


def describe_bodies():
    def joins_oneof_arms_into_one_match(expect, schema, index):
        lut = build_encode_lut(_message(schema, "Shape"), index)
        expect(encode_body(lut)) == [
            "e = e.encode_string(&self.name);",
            "match &self.body {",
            "    Some(ShapeBody::Corner(v1)) => {",
            "        e = e.encode_u32(2);",
            "        e = v1.encode(e);",
            "    }",
            "    Some(ShapeBody::Radius(v1)) => {",
            "        e = e.encode_u32(3);",
            "        e = e.encode_f64(*v1);",
            "    }",
            "    None => e = e.encode_none(),",
            "}",
            "e = e.encode_bool(self.filled);",
        ]

    def dispatches_oneof_on_member_number(expect, schema, index):
        lut = build_decode_lut(_message(schema, "Shape"), index)
        expect(decode_body(lut)) == [
            "if !d.decode_none() {",
            "    x.name = d.decode_string()?;",
            "}",
            "if !d.decode_none() {",
            "    match d.decode_u32()? {",
            "        2 => {",
            "            x.body = Some(ShapeBody::Corner(Box::new(Pixel::decode(d)?)));",
            "        }",
            "        3 => {",
            "            x.body = Some(ShapeBody::Radius(d.decode_f64()?));",
            "        }",
            "        _ => return Err(DecodingError::InvalidStruct.into()),",
            "    }",
            "}",
            "if !d.decode_none() {",
            "    x.filled = d.decode_bool()?;",
            "}",
        ]


def describe_absent_messages():
    NESTED = """
    syntax = "proto3";
    message Inner { int32 v = 1; }
    message Outer {
      Inner a = 1;
      int32 b = 2;
      repeated Inner rest = 3;
    }
    """

    @pytest.fixture
    def outer():
        proto_file = parse(NESTED, "outer.proto")
        return _message(proto_file, "Outer"), TypeIndex([proto_file])

    def guards_leading_message_field_at_call_site(expect, outer):
        lut = build_decode_lut(*outer)
        expect(lut[0].fragment.split("\n")) == [
            "if !d.decode_none() {",
            "    x.a = Some(Inner::decode(d)?);",
            "}",
        ]
        expect(lut[0].default) == "None"

    def keeps_reading_fields_after_an_absent_message(expect, outer):
        expect(decode_body(build_decode_lut(*outer))[3:6]) == [
            "if !d.decode_none() {",
            "    x.b = d.decode_i32()?;",
            "}",
        ]

    def decodes_container_elements_directly(expect, outer):
        lut = build_decode_lut(*outer)
        expect(lut[2].fragment.split("\n")) == [
            "if !d.decode_none() {",
            "    let n1 = d.decode_array(Kind::Any)?;",
            "    let mut a1 = Vec::with_capacity(n1);",
            "    for _ in 0..n1 {",
            "        a1.push(Inner::decode(d)?);",
            "    }",
            "    x.rest = a1;",
            "}",
        ]

    def encodes_absent_message_as_none(expect, outer):
        lut = build_encode_lut(*outer)
        expect(lut[0].fragment.split("\n")) == [
            "e = match &self.a {",
            "    Some(v) => v.encode(e),",
            "    None => e.encode_none(),",
            "};",
        ]


def describe_field_order():
    def matches_between_encoder_and_decoder(expect, schema, index):
        for message in schema.messages:
            encode = [b.field.number for b in build_encode_lut(message, index)]
            decode = [b.field.number for b in build_decode_lut(message, index)]
            expect(encode) == decode
