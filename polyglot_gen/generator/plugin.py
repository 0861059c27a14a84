"""protoc plugin entry point.

Reads a CodeGeneratorRequest from stdin and writes a CodeGeneratorResponse
to stdout:

    protoc --plugin=protoc-gen-polyglot-rs --polyglot-rs_out=./src foo.proto
"""

import sys
from dataclasses import dataclass

from google.protobuf.compiler import plugin_pb2 as plugin
from google.protobuf.descriptor_pb2 import (
    DescriptorProto,
    EnumDescriptorProto,
    FieldDescriptorProto,
    FileDescriptorProto,
    SourceCodeInfo,
)

from .errors import ValidationError
from .formatter import Formatter, NoopFormatter, RustFmt
from .rust import generate
from .types import (
    Cardinality,
    FieldType,
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoFile,
    ProtoMessage,
    ProtoValueType,
)

SCALAR_FIELD_TYPES = {
    FieldDescriptorProto.TYPE_DOUBLE: FieldType.DOUBLE,
    FieldDescriptorProto.TYPE_FLOAT: FieldType.FLOAT,
    FieldDescriptorProto.TYPE_INT32: FieldType.INT32,
    FieldDescriptorProto.TYPE_INT64: FieldType.INT64,
    FieldDescriptorProto.TYPE_UINT32: FieldType.UINT32,
    FieldDescriptorProto.TYPE_UINT64: FieldType.UINT64,
    FieldDescriptorProto.TYPE_SINT32: FieldType.SINT32,
    FieldDescriptorProto.TYPE_SINT64: FieldType.SINT64,
    FieldDescriptorProto.TYPE_FIXED32: FieldType.FIXED32,
    FieldDescriptorProto.TYPE_FIXED64: FieldType.FIXED64,
    FieldDescriptorProto.TYPE_SFIXED32: FieldType.SFIXED32,
    FieldDescriptorProto.TYPE_SFIXED64: FieldType.SFIXED64,
    FieldDescriptorProto.TYPE_BOOL: FieldType.BOOL,
    FieldDescriptorProto.TYPE_STRING: FieldType.STRING,
    FieldDescriptorProto.TYPE_BYTES: FieldType.BYTES,
}

# Field numbers inside descriptor.proto, used to address source locations
_FILE_MESSAGES = 4
_FILE_ENUMS = 5
_MESSAGE_FIELDS = 2
_MESSAGE_NESTED = 3
_MESSAGE_ENUMS = 4
_ENUM_VALUES = 2


@dataclass
class PluginOptions:
    """Settings taken from the protoc parameter string."""

    format: bool = True
    rustfmt: str = "rustfmt"
    edition: str = "2021"

    def formatter(self) -> Formatter:
        if not self.format:
            return NoopFormatter()
        return RustFmt(self.rustfmt, self.edition)


def parse_parameter(parameter: str) -> PluginOptions:
    """Parse ``no_format,rustfmt=<path>,edition=<year>``."""
    options = PluginOptions()
    for item in filter(None, (p.strip() for p in parameter.split(","))):
        name, _, value = item.partition("=")
        if name == "no_format":
            options.format = False
        elif name == "rustfmt" and value:
            options.rustfmt = value
        elif name == "edition" and value:
            options.edition = value
        else:
            raise ValidationError(f"Unknown plugin parameter: {item}")
    return options


def _comments(info: SourceCodeInfo) -> dict[tuple[int, ...], str]:
    comments = {}
    for location in info.location:
        text = location.leading_comments.strip() or location.trailing_comments.strip()
        if text:
            comments[tuple(location.path)] = text
    return comments


def _qualify(scope: str, name: str) -> str:
    return f"{scope}.{name}" if scope else name


class _Converter:
    """Maps one FileDescriptorProto onto the descriptor model."""

    def __init__(self, descriptor: FileDescriptorProto):
        self.descriptor = descriptor
        self.comments = _comments(descriptor.source_code_info)

    def value_type(self, fd: FieldDescriptorProto) -> ProtoValueType:
        if fd.type == FieldDescriptorProto.TYPE_ENUM:
            return ProtoValueType(FieldType.ENUM, fd.type_name.lstrip("."))
        if fd.type == FieldDescriptorProto.TYPE_MESSAGE:
            return ProtoValueType(FieldType.MESSAGE, fd.type_name.lstrip("."))
        if fd.type not in SCALAR_FIELD_TYPES:
            raise ValidationError(
                f"{self.descriptor.name}: field {fd.name} has unsupported type {fd.type}"
            )
        return ProtoValueType(SCALAR_FIELD_TYPES[fd.type])

    def enum(self, desc: EnumDescriptorProto, scope: str, path: tuple[int, ...]) -> ProtoEnum:
        return ProtoEnum(
            name=desc.name,
            full_name=_qualify(scope, desc.name),
            values=[
                ProtoEnumValue(v.name, v.number, self.comments.get(path + (_ENUM_VALUES, i)))
                for i, v in enumerate(desc.value)
            ],
            comment=self.comments.get(path),
        )

    def field(
        self,
        desc: DescriptorProto,
        fd: FieldDescriptorProto,
        map_entries: dict[str, DescriptorProto],
        path: tuple[int, ...],
    ) -> ProtoField:
        type_name = fd.type_name.lstrip(".")
        key = None
        oneof = None
        value = None

        if fd.label == FieldDescriptorProto.LABEL_REPEATED and type_name in map_entries:
            entry = {f.number: f for f in map_entries[type_name].field}
            cardinality = Cardinality.MAP
            key = self.value_type(entry[1])
            value = self.value_type(entry[2])
        elif fd.HasField("oneof_index") and not fd.proto3_optional:
            cardinality = Cardinality.ONEOF
            oneof = desc.oneof_decl[fd.oneof_index].name
        elif fd.label == FieldDescriptorProto.LABEL_REPEATED:
            cardinality = Cardinality.REPEATED
        else:
            cardinality = Cardinality.SINGULAR

        return ProtoField(
            name=fd.name,
            number=fd.number,
            cardinality=cardinality,
            value=value or self.value_type(fd),
            key=key,
            oneof=oneof,
            comment=self.comments.get(path),
        )

    def message(self, desc: DescriptorProto, scope: str, path: tuple[int, ...]) -> ProtoMessage:
        full_name = _qualify(scope, desc.name)
        map_entries = {
            _qualify(full_name, nested.name): nested
            for nested in desc.nested_type
            if nested.options.map_entry
        }
        return ProtoMessage(
            name=desc.name,
            full_name=full_name,
            fields=[
                self.field(desc, fd, map_entries, path + (_MESSAGE_FIELDS, i))
                for i, fd in enumerate(desc.field)
            ],
            messages=[
                self.message(nested, full_name, path + (_MESSAGE_NESTED, i))
                for i, nested in enumerate(desc.nested_type)
                if not nested.options.map_entry
            ],
            enums=[
                self.enum(e, full_name, path + (_MESSAGE_ENUMS, i))
                for i, e in enumerate(desc.enum_type)
            ],
            comment=self.comments.get(path),
        )

    def convert(self, generate: bool) -> ProtoFile:
        package = self.descriptor.package
        return ProtoFile(
            path=self.descriptor.name,
            package=package,
            dependencies=list(self.descriptor.dependency),
            messages=[
                self.message(m, package, (_FILE_MESSAGES, i))
                for i, m in enumerate(self.descriptor.message_type)
            ],
            enums=[
                self.enum(e, package, (_FILE_ENUMS, i))
                for i, e in enumerate(self.descriptor.enum_type)
            ],
            generate=generate,
        )


def file_from_descriptor(descriptor: FileDescriptorProto, generate: bool = True) -> ProtoFile:
    return _Converter(descriptor).convert(generate)


def files_from_request(request: plugin.CodeGeneratorRequest) -> list[ProtoFile]:
    wanted = set(request.file_to_generate)
    return [file_from_descriptor(fd, fd.name in wanted) for fd in request.proto_file]


def run(request: plugin.CodeGeneratorRequest) -> plugin.CodeGeneratorResponse:
    """Answer one generation request.

    Schema and formatter problems are reported through response.error;
    internal errors propagate.
    """
    response = plugin.CodeGeneratorResponse()
    response.supported_features = plugin.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL

    try:
        options = parse_parameter(request.parameter)
        files = files_from_request(request)
    except ValidationError as e:
        response.error = str(e)
        return response

    result = generate(files, options.formatter())
    if not result.ok:
        response.error = "\n".join(e.describe() for e in result.errors)
        return response

    for generated in result.files:
        out = response.file.add()
        out.name = generated.path
        out.content = generated.content.decode("utf-8")
    return response


def main() -> int:
    """Main entry point."""
    if sys.stdin.isatty():
        print("protoc-gen-polyglot-rs is a protoc plugin, run it through protoc:", file=sys.stderr)
        print("  protoc --polyglot-rs_out=./src schema.proto", file=sys.stderr)
        return 1

    request = plugin.CodeGeneratorRequest()
    request.ParseFromString(sys.stdin.buffer.read())
    response = run(request)
    sys.stdout.buffer.write(response.SerializeToString())
    return 0


if __name__ == "__main__":
    sys.exit(main())
