"""Rust code generator for polyglot schemas."""

from dataclasses import dataclass, field
from typing import assert_never

from jinja2 import Environment, PackageLoader

from polyglot_gen import __version__

from .deps import analyze
from .errors import FormatterError, GeneratorError, UnsupportedSchemaError
from .formatter import Formatter
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
)
from .lut import (
    Binding,
    build_decode_lut,
    build_encode_lut,
    decode_body,
    encode_body,
    oneof_type_name,
    oneof_variant,
)
from .types import ProtoEnum, ProtoFile, ProtoMessage, TypeIndex, walk_types
from .util import rust_ident, to_camel_case

env = Environment(
    loader=PackageLoader("polyglot_gen.generator", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    line_comment_prefix="%%",
    line_statement_prefix="%",
)

template = env.get_template("rust.rs.j2")

# Largest discriminant #[repr(u32)] can hold
MAX_ENUM_VALUE = 2**32 - 1


@dataclass
class GeneratedFile:
    path: str
    content: bytes


@dataclass
class FileError:
    path: str
    error: GeneratorError

    def describe(self) -> str:
        """One report for this file, with any formatter output appended verbatim."""
        message = f"{self.path}: {self.error}"
        if isinstance(self.error, FormatterError) and self.error.diagnostics:
            message += "\n" + self.error.diagnostics.decode("utf-8", errors="replace")
        return message


@dataclass
class GenerationResult:
    files: list[GeneratedFile] = field(default_factory=list)
    errors: list[FileError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class _EnumBlock:
    name: str
    comment: str | None
    variants: list[tuple[str, int]]

    is_enum = True


@dataclass
class _OneofBlock:
    name: str
    variants: list[tuple[str, str]]


@dataclass
class _MessageBlock:
    name: str
    comment: str | None
    fields: list[tuple[str, str, str | None]]
    oneofs: list[_OneofBlock]
    defaults: list[tuple[str, str]]
    encode: list[str]
    decode: list[str]

    is_enum = False


def rust_type(kind: Kind, index: TypeIndex) -> str:
    """Map a kind to the Rust type holding a present value of it."""
    if isinstance(kind, IntegerKind):
        return f"{'i' if kind.signed else 'u'}{kind.bits}"
    if isinstance(kind, FloatKind):
        return f"f{kind.bits}"
    if isinstance(kind, BoolKind):
        return "bool"
    if isinstance(kind, StringKind):
        return "String"
    if isinstance(kind, BytesKind):
        return "Vec<u8>"
    if isinstance(kind, (EnumKind, MessageKind)):
        return index.rust_name(kind.type_name)
    if isinstance(kind, RepeatedKind):
        return f"Vec<{rust_type(kind.element, index)}>"
    if isinstance(kind, MapKind):
        return f"HashMap<{rust_type(kind.key, index)}, {rust_type(kind.value, index)}>"
    if isinstance(kind, OneofKind):
        inner = rust_type(kind.inner, index)
        return f"Box<{inner}>" if isinstance(kind.inner, MessageKind) else inner
    assert_never(kind)


def _field_type(kind: Kind, index: TypeIndex) -> str:
    if isinstance(kind, MessageKind):
        return f"Option<{rust_type(kind, index)}>"
    return rust_type(kind, index)


def uses_map(kind: Kind) -> bool:
    if isinstance(kind, MapKind):
        return True
    if isinstance(kind, RepeatedKind):
        return uses_map(kind.element)
    if isinstance(kind, OneofKind):
        return uses_map(kind.inner)
    return False


def check_enums(proto_file: ProtoFile) -> None:
    """Reject enums the #[repr(u32)] layout cannot express."""
    for decl in walk_types(proto_file):
        if not isinstance(decl, ProtoEnum):
            continue
        if not decl.values:
            raise UnsupportedSchemaError(proto_file.path, f"enum {decl.full_name} has no values")
        seen: dict[int, str] = {}
        for value in decl.values:
            if not 0 <= value.number <= MAX_ENUM_VALUE:
                raise UnsupportedSchemaError(
                    proto_file.path,
                    f"enum {decl.full_name} value {value.name} = {value.number} "
                    "does not fit in u32",
                )
            if value.number in seen:
                raise UnsupportedSchemaError(
                    proto_file.path,
                    f"enum {decl.full_name} aliases {value.name} and {seen[value.number]}",
                )
            seen[value.number] = value.name


def _enum_block(enum: ProtoEnum, index: TypeIndex) -> _EnumBlock:
    return _EnumBlock(
        name=index.rust_name(enum.full_name),
        comment=enum.comment,
        variants=[(to_camel_case(v.name), v.number) for v in enum.values],
    )


def _message_block(
    message: ProtoMessage, encode: list[Binding], decode: list[Binding], index: TypeIndex
) -> _MessageBlock:
    """Collect everything the template needs to declare one message.

    Struct fields keep declaration order; a oneof group takes the place of
    its first declared member.
    """
    bindings = {b.field.name: b for b in decode}
    fields: list[tuple[str, str, str | None]] = []
    defaults: list[tuple[str, str]] = []
    oneofs: dict[str, _OneofBlock] = {}

    for proto_field in message.fields:
        binding = bindings[proto_field.name]
        kind = binding.kind
        if isinstance(kind, OneofKind):
            group = oneofs.get(kind.group)
            if group is None:
                group = _OneofBlock(oneof_type_name(message, kind.group, index), [])
                oneofs[kind.group] = group
                fields.append((rust_ident(kind.group), f"Option<{group.name}>", None))
                defaults.append((rust_ident(kind.group), "None"))
            group.variants.append((oneof_variant(proto_field), rust_type(kind, index)))
            continue
        name = rust_ident(proto_field.name)
        fields.append((name, _field_type(kind, index), proto_field.comment))
        defaults.append((name, binding.default or "Default::default()"))

    return _MessageBlock(
        name=index.rust_name(message.full_name),
        comment=message.comment,
        fields=fields,
        oneofs=list(oneofs.values()),
        defaults=defaults,
        encode=encode_body(encode),
        decode=decode_body(decode),
    )


def doc_lines(comment: str | None) -> list[str]:
    if not comment:
        return []
    return [f"/// {line}".rstrip() for line in comment.strip().splitlines()]


def render_source(proto_file: ProtoFile, index: TypeIndex, version: str = __version__) -> str:
    """Assemble the unformatted Rust source for one schema file."""
    check_enums(proto_file)
    plan = analyze(proto_file, index)

    blocks: list[_EnumBlock | _MessageBlock] = []
    needs_map = False
    for full_name in plan.order:
        decl = index[full_name].decl
        if isinstance(decl, ProtoEnum):
            blocks.append(_enum_block(decl, index))
            continue
        encode = build_encode_lut(decl, index)
        decode = build_decode_lut(decl, index)
        needs_map = needs_map or any(uses_map(b.kind) for b in encode)
        blocks.append(_message_block(decl, encode, decode, index))

    return template.render(
        version=version,
        source_path=proto_file.path,
        package=proto_file.package,
        imports=plan.imports,
        needs_map=needs_map,
        blocks=blocks,
        doc_lines=doc_lines,
        BLANK_LINE="",
    )


def render(
    proto_file: ProtoFile,
    index: TypeIndex,
    formatter: Formatter,
    version: str = __version__,
) -> bytes:
    """Render a schema file to formatted Rust source."""
    source = render_source(proto_file, index, version)
    return formatter.format(source.encode("utf-8"))


def generate(files: list[ProtoFile], formatter: Formatter) -> GenerationResult:
    """Render every file marked for generation.

    Unsupported schemas and formatter failures only fail their own file;
    internal errors propagate and abort the run.
    """
    index = TypeIndex(files)
    result = GenerationResult()
    for proto_file in files:
        if not proto_file.generate:
            continue
        try:
            content = render(proto_file, index, formatter)
        except (UnsupportedSchemaError, FormatterError) as e:
            result.errors.append(FileError(proto_file.path, e))
            continue
        result.files.append(GeneratedFile(proto_file.output_path, content))
    return result
