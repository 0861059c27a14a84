"""Tests for the protoc plugin."""

import pytest
from google.protobuf.compiler import plugin_pb2 as plugin
from google.protobuf.descriptor_pb2 import FieldDescriptorProto, FileDescriptorProto

from polyglot_gen.generator.errors import ValidationError
from polyglot_gen.generator.formatter import NoopFormatter, RustFmt
from polyglot_gen.generator.plugin import file_from_descriptor, parse_parameter, run
from polyglot_gen.generator.types import Cardinality, FieldType

OPTIONAL = FieldDescriptorProto.LABEL_OPTIONAL
REPEATED = FieldDescriptorProto.LABEL_REPEATED


def _pixel_descriptor():
    fd = FileDescriptorProto(name="pixel.proto", package="demo", syntax="proto3")

    color = fd.enum_type.add(name="Color")
    color.value.add(name="RED", number=0)
    color.value.add(name="GREEN", number=1)

    msg = fd.message_type.add(name="Pixel")
    msg.field.add(name="x", number=1, label=OPTIONAL, type=FieldDescriptorProto.TYPE_INT32)
    msg.field.add(
        name="c",
        number=3,
        label=OPTIONAL,
        type=FieldDescriptorProto.TYPE_ENUM,
        type_name=".demo.Color",
    )

    entry = msg.nested_type.add(name="TagsEntry")
    entry.options.map_entry = True
    entry.field.add(name="key", number=1, label=OPTIONAL, type=FieldDescriptorProto.TYPE_STRING)
    entry.field.add(name="value", number=2, label=OPTIONAL, type=FieldDescriptorProto.TYPE_INT32)
    msg.field.add(
        name="tags",
        number=4,
        label=REPEATED,
        type=FieldDescriptorProto.TYPE_MESSAGE,
        type_name=".demo.Pixel.TagsEntry",
    )

    msg.oneof_decl.add(name="_alpha")
    msg.field.add(
        name="alpha",
        number=5,
        label=OPTIONAL,
        type=FieldDescriptorProto.TYPE_FLOAT,
        oneof_index=0,
        proto3_optional=True,
    )
    msg.oneof_decl.add(name="shape")
    msg.field.add(
        name="radius", number=6, label=OPTIONAL, type=FieldDescriptorProto.TYPE_DOUBLE, oneof_index=1
    )

    location = fd.source_code_info.location.add()
    location.path.extend([4, 0])
    location.leading_comments = " A single pixel.\n"
    return fd


def _cycle_descriptor():
    fd = FileDescriptorProto(name="cycle.proto", package="loops", syntax="proto3")
    for name, other in (("A", "B"), ("B", "A")):
        msg = fd.message_type.add(name=name)
        msg.field.add(
            name=other.lower(),
            number=1,
            label=OPTIONAL,
            type=FieldDescriptorProto.TYPE_MESSAGE,
            type_name=f".loops.{other}",
        )
    return fd


def _request(*files, parameter="no_format", generate=None):
    request = plugin.CodeGeneratorRequest(parameter=parameter)
    request.proto_file.extend(files)
    request.file_to_generate.extend(generate or [f.name for f in files])
    return request


def describe_file_from_descriptor():
    def converts_messages_and_enums(expect):
        proto_file = file_from_descriptor(_pixel_descriptor())
        expect(proto_file.package) == "demo"
        expect([e.full_name for e in proto_file.enums]) == ["demo.Color"]
        expect([m.full_name for m in proto_file.messages]) == ["demo.Pixel"]
        expect(proto_file.messages[0].comment) == "A single pixel."

    def strips_leading_dot_from_type_names(expect):
        field = file_from_descriptor(_pixel_descriptor()).messages[0].fields[1]
        expect(field.value.type) == FieldType.ENUM
        expect(field.value.type_name) == "demo.Color"

    def turns_map_entries_into_map_fields(expect):
        message = file_from_descriptor(_pixel_descriptor()).messages[0]
        tags = message.fields[2]
        expect(tags.cardinality) == Cardinality.MAP
        expect(tags.key.type) == FieldType.STRING
        expect(tags.value.type) == FieldType.INT32
        expect(message.messages) == []

    def treats_proto3_optional_as_singular(expect):
        alpha = file_from_descriptor(_pixel_descriptor()).messages[0].fields[3]
        expect(alpha.cardinality) == Cardinality.SINGULAR
        expect(alpha.oneof) == None

    def keeps_real_oneofs(expect):
        radius = file_from_descriptor(_pixel_descriptor()).messages[0].fields[4]
        expect(radius.cardinality) == Cardinality.ONEOF
        expect(radius.oneof) == "shape"

    def rejects_groups(expect):
        fd = FileDescriptorProto(name="old.proto", syntax="proto2")
        msg = fd.message_type.add(name="Old")
        msg.field.add(
            name="g", number=1, label=OPTIONAL, type=FieldDescriptorProto.TYPE_GROUP, type_name=".Old.G"
        )
        with pytest.raises(ValidationError):
            file_from_descriptor(fd)


def describe_parse_parameter():
    def defaults_to_rustfmt(expect):
        formatter = parse_parameter("").formatter()
        expect(isinstance(formatter, RustFmt)) == True
        expect(formatter.command) == ["rustfmt", "--edition", "2021"]

    def reads_all_settings(expect):
        options = parse_parameter("rustfmt=/opt/bin/rustfmt, edition=2018")
        expect(options.formatter().command) == ["/opt/bin/rustfmt", "--edition", "2018"]

    def disables_formatting(expect):
        expect(isinstance(parse_parameter("no_format").formatter(), NoopFormatter)) == True

    def rejects_unknown_settings(expect):
        with pytest.raises(ValidationError):
            parse_parameter("fast")


def describe_run():
    def generates_requested_files(expect):
        response = run(_request(_pixel_descriptor()))
        expect(response.error) == ""
        expect([f.name for f in response.file]) == ["pixel.rs"]
        content = response.file[0].content
        expect("pub struct Pixel {" in content) == True
        expect("    pub tags: HashMap<String, i32>,\n" in content) == True
        expect("    pub alpha: f32,\n" in content) == True
        expect("    pub shape: Option<PixelShape>,\n" in content) == True

    def advertises_proto3_optional(expect):
        response = run(_request(_pixel_descriptor()))
        expect(response.supported_features) == plugin.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL

    def skips_files_not_requested(expect):
        response = run(_request(_pixel_descriptor(), _cycle_descriptor(), generate=["pixel.proto"]))
        expect(response.error) == ""
        expect([f.name for f in response.file]) == ["pixel.rs"]

    def reports_unsupported_schemas(expect):
        response = run(_request(_cycle_descriptor()))
        expect(len(response.file)) == 0
        expect("cycle.proto" in response.error) == True
        expect("loops.A -> loops.B" in response.error) == True

    def reports_bad_parameters(expect):
        response = run(_request(_pixel_descriptor(), parameter="bogus"))
        expect("bogus" in response.error) == True
