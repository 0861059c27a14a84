"""Schema text loader using Lark.

Parses .proto files into drafts, then resolves type references across all
loaded files into the descriptor model.
"""

import ast
import os
from dataclasses import dataclass, field
from typing import Any, TypeVar

from lark import Lark, Token, v_args
from lark.exceptions import UnexpectedInput
from lark.visitors import Transformer

from .errors import ValidationError
from .types import (
    SCALAR_TYPES,
    Cardinality,
    FieldType,
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoFile,
    ProtoMessage,
    ProtoValueType,
)

_g_parser: Lark | None = None

MAX_FIELD_NUMBER = 536870911
RESERVED_FIELD_NUMBERS = range(19000, 20000)
MAP_KEY_TYPES = frozenset(
    [
        FieldType.INT32,
        FieldType.INT64,
        FieldType.UINT32,
        FieldType.UINT64,
        FieldType.SINT32,
        FieldType.SINT64,
        FieldType.FIXED32,
        FieldType.FIXED64,
        FieldType.SFIXED32,
        FieldType.SFIXED64,
        FieldType.BOOL,
        FieldType.STRING,
    ]
)


@dataclass
class _Syntax:
    value: str


@dataclass
class _Package:
    value: str


@dataclass
class _Import:
    path: str


@dataclass
class _Option:
    name: str
    value: Any


@dataclass
class _Label:
    value: str


@dataclass
class _Reserved:
    ranges: list[tuple[int, int]]
    names: list[str]


@dataclass
class _Field:
    name: str
    number: int
    type: str
    line: int
    label: str | None = None
    key: str | None = None
    oneof: str | None = None


@dataclass
class _Oneof:
    name: str
    fields: list[_Field]


@dataclass
class _EnumValue:
    name: str
    number: int
    line: int


@dataclass
class _Enum:
    name: str
    values: list[_EnumValue]
    reserved: list[_Reserved]
    line: int
    full_name: str = ""


@dataclass
class _Message:
    name: str
    fields: list[_Field]
    messages: list["_Message"]
    enums: list[_Enum]
    reserved: list[_Reserved]
    line: int
    full_name: str = ""


@dataclass
class _FileDraft:
    path: str
    package: str
    imports: list[str]
    messages: list[_Message]
    enums: list[_Enum]
    lines: list[str] = field(default_factory=list)


TFilter = TypeVar("TFilter", bound=object)


def _filter(args: list[Any], class_type: type[TFilter]) -> list[TFilter]:
    return [v for v in args if isinstance(v, class_type)]


def _find_one(args: list[Any], class_type: type[object]) -> Any:
    filtered = _filter(args, class_type)
    if len(filtered) == 0:
        return None
    if len(filtered) > 1:
        raise RuntimeError(f"Found more than one {class_type}")
    if hasattr(filtered[0], "value"):
        return filtered[0].value
    return filtered[0]


def _tokens(args: list[Any], kind: str) -> list[Token]:
    return [a for a in args if isinstance(a, Token) and a.type == kind]


def _join(args: list[Any]) -> str:
    return "".join(str(a) for a in args if a is not None)


def _parse_int(text: str) -> int:
    sign = -1 if text.startswith("-") else 1
    digits = text.lstrip("+-")
    if digits.lower().startswith("0x"):
        return sign * int(digits, 16)
    if len(digits) > 1 and digits.startswith("0"):
        return sign * int(digits, 8)
    return sign * int(digits)


def _unquote(text: str) -> str:
    return ast.literal_eval(text)


class TreeTransformer(Transformer):
    """Transform the parse tree into drafts."""

    def syntax(self, args: list[Any]) -> _Syntax:
        return _Syntax(_unquote(args[0]))

    def package(self, args: list[Any]) -> _Package:
        return _Package(args[0])

    def import_(self, args: list[Any]) -> _Import:
        return _Import(_unquote(_tokens(args, "STRING")[0]))

    def import_modifier(self, args: list[Any]) -> str:
        return str(args[0])

    def option(self, args: list[Any]) -> _Option:
        return _Option(name=args[0], value=args[1])

    def field_option(self, args: list[Any]) -> _Option:
        return _Option(name=args[0], value=args[1])

    def field_options(self, args: list[Any]) -> list[_Option]:
        return _filter(args, _Option)

    def option_name(self, args: list[Any]) -> str:
        return _join(args)

    def constant(self, args: list[Any]) -> Any:
        value = args[0]
        if isinstance(value, Token) and value.type == "STRING":
            return _unquote(value)
        return value

    def label(self, args: list[Any]) -> _Label:
        return _Label(str(args[0]))

    def type_ref(self, args: list[Any]) -> str:
        return _join(args)

    def full_ident(self, args: list[Any]) -> str:
        return _join(args)

    def signed_int(self, args: list[Any]) -> int:
        return _parse_int(_join(args))

    def signed_number(self, args: list[Any]) -> int | float:
        text = _join(args)
        if _tokens(args, "FLOAT"):
            return float(text)
        return _parse_int(text)

    def range(self, args: list[Any]) -> tuple[int, int]:
        start = _parse_int(args[0])
        end = args[1] if len(args) > 1 and args[1] is not None else start
        return (start, end)

    def range_end(self, args: list[Any]) -> int:
        text = str(args[0])
        return MAX_FIELD_NUMBER if text == "max" else _parse_int(text)

    def reserved(self, args: list[Any]) -> _Reserved:
        return _Reserved(
            ranges=_filter(args, tuple),
            names=[_unquote(t) for t in _tokens(args, "STRING")],
        )

    @v_args(meta=True)
    def field(self, meta: Any, args: list[Any]) -> _Field:
        type_name, name, number = [a for a in args if isinstance(a, (str, Token))][:3]
        return _Field(
            name=str(name),
            number=_parse_int(number),
            type=str(type_name),
            line=meta.line,
            label=_find_one(args, _Label),
        )

    @v_args(meta=True)
    def map_field(self, meta: Any, args: list[Any]) -> _Field:
        key, value, name, number = [a for a in args if isinstance(a, (str, Token))][:4]
        return _Field(
            name=str(name),
            number=_parse_int(number),
            type=str(value),
            key=str(key),
            line=meta.line,
        )

    @v_args(meta=True)
    def oneof_field(self, meta: Any, args: list[Any]) -> _Field:
        type_name, name, number = [a for a in args if isinstance(a, (str, Token))][:3]
        return _Field(
            name=str(name), number=_parse_int(number), type=str(type_name), line=meta.line
        )

    def oneof(self, args: list[Any]) -> _Oneof:
        name = str(args[0])
        fields = _filter(args, _Field)
        for f in fields:
            f.oneof = name
        return _Oneof(name=name, fields=fields)

    @v_args(meta=True)
    def enum_value(self, meta: Any, args: list[Any]) -> _EnumValue:
        return _EnumValue(name=str(args[0]), number=args[1], line=meta.line)

    @v_args(meta=True)
    def enum(self, meta: Any, args: list[Any]) -> _Enum:
        return _Enum(
            name=str(args[0]),
            values=_filter(args, _EnumValue),
            reserved=_filter(args, _Reserved),
            line=meta.line,
        )

    @v_args(meta=True)
    def message(self, meta: Any, args: list[Any]) -> _Message:
        fields = _filter(args, _Field)
        for oneof in _filter(args, _Oneof):
            fields.extend(oneof.fields)
        return _Message(
            name=str(args[0]),
            fields=sorted(fields, key=lambda f: f.line),
            messages=_filter(args, _Message),
            enums=_filter(args, _Enum),
            reserved=_filter(args, _Reserved),
            line=meta.line,
        )


def _get_parser() -> Lark:
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/protodef.lark", encoding="utf-8") as f:
            grammar = f.read()
        _g_parser = Lark(grammar, parser="lalr", propagate_positions=True)

    return _g_parser


def _trailing_comment(line: str) -> str | None:
    """Text after the first // that sits outside a string literal."""
    quote = None
    i = 0
    while i < len(line):
        ch = line[i]
        if quote:
            if ch == "\\":
                i += 1
            elif ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
        elif line.startswith("//", i):
            return line[i + 2 :].strip() or None
        i += 1
    return None


def _comment(lines: list[str], line: int) -> str | None:
    """Leading // comment block above a line, or the trailing comment on it."""
    block: list[str] = []
    i = line - 2
    while i >= 0 and lines[i].strip().startswith("//"):
        block.insert(0, lines[i].strip()[2:].strip())
        i -= 1
    if block:
        return "\n".join(block)

    current = lines[line - 1] if 0 < line <= len(lines) else ""
    return _trailing_comment(current)


def parse_draft(text: str, path: str) -> _FileDraft:
    """Parse one schema file into an unresolved draft."""
    try:
        tree = _get_parser().parse(text)
    except UnexpectedInput as e:
        raise ValidationError(f"{path}:{e.line}:{e.column}: unexpected input") from e

    items = TreeTransformer().transform(tree).children
    syntax = _find_one(items, _Syntax)
    if syntax not in (None, "proto2", "proto3"):
        raise ValidationError(f"{path}: unsupported syntax {syntax!r}")

    return _FileDraft(
        path=path,
        package=_find_one(items, _Package) or "",
        imports=[i.path for i in _filter(items, _Import)],
        messages=_filter(items, _Message),
        enums=_filter(items, _Enum),
        lines=text.splitlines(),
    )


def _qualify(scope: str, name: str) -> str:
    return f"{scope}.{name}" if scope else name


def _declare(draft: _FileDraft, declared: dict[str, FieldType]) -> None:
    """Assign full names to every declaration of a draft and register them."""

    def add(full_name: str, kind: FieldType) -> None:
        if full_name in declared:
            raise ValidationError(f"{draft.path}: {full_name} is already defined")
        declared[full_name] = kind

    def walk(message: _Message, scope: str) -> None:
        message.full_name = _qualify(scope, message.name)
        add(message.full_name, FieldType.MESSAGE)
        for enum in message.enums:
            enum.full_name = _qualify(message.full_name, enum.name)
            add(enum.full_name, FieldType.ENUM)
        for nested in message.messages:
            walk(nested, message.full_name)

    for enum in draft.enums:
        enum.full_name = _qualify(draft.package, enum.name)
        add(enum.full_name, FieldType.ENUM)
    for message in draft.messages:
        walk(message, draft.package)


def resolve_type(ref: str, scope: str, declared: dict[str, FieldType]) -> str | None:
    """Resolve a type reference the way protoc does: innermost scope outwards."""
    if ref.startswith("."):
        return ref[1:] if ref[1:] in declared else None
    parts = scope.split(".") if scope else []
    while True:
        candidate = ".".join(parts + [ref])
        if candidate in declared:
            return candidate
        if not parts:
            return None
        parts.pop()


class _Builder:
    """Turns drafts into the descriptor model, resolving and validating fields."""

    def __init__(self, draft: _FileDraft, declared: dict[str, FieldType]):
        self.draft = draft
        self.declared = declared

    def error(self, line: int, message: str) -> ValidationError:
        return ValidationError(f"{self.draft.path}:{line}: {message}")

    def value_type(self, ref: str, scope: str, line: int) -> ProtoValueType:
        if ref in SCALAR_TYPES:
            return ProtoValueType(FieldType(ref))
        full_name = resolve_type(ref, scope, self.declared)
        if full_name is None:
            raise self.error(line, f"unknown type {ref}")
        return ProtoValueType(self.declared[full_name], full_name)

    def field(self, draft: _Field, scope: str) -> ProtoField:
        value = self.value_type(draft.type, scope, draft.line)
        key = None
        if draft.key is not None:
            key = self.value_type(draft.key, scope, draft.line)
            if key.type not in MAP_KEY_TYPES:
                raise self.error(draft.line, f"invalid map key type {draft.key}")
            cardinality = Cardinality.MAP
        elif draft.oneof is not None:
            cardinality = Cardinality.ONEOF
        elif draft.label == "repeated":
            cardinality = Cardinality.REPEATED
        else:
            cardinality = Cardinality.SINGULAR

        return ProtoField(
            name=draft.name,
            number=draft.number,
            cardinality=cardinality,
            value=value,
            key=key,
            oneof=draft.oneof,
            comment=_comment(self.draft.lines, draft.line),
        )

    def check_fields(self, message: _Message) -> None:
        numbers: dict[int, str] = {}
        names: set[str] = set()
        for f in message.fields:
            if not 1 <= f.number <= MAX_FIELD_NUMBER:
                raise self.error(f.line, f"field {f.name} number {f.number} out of range")
            if f.number in RESERVED_FIELD_NUMBERS:
                raise self.error(f.line, f"field {f.name} uses reserved number {f.number}")
            if f.number in numbers:
                raise self.error(
                    f.line, f"field {f.name} reuses number {f.number} of {numbers[f.number]}"
                )
            if f.name in names:
                raise self.error(f.line, f"duplicate field name {f.name}")
            for reserved in message.reserved:
                if f.name in reserved.names or any(
                    lo <= f.number <= hi for lo, hi in reserved.ranges
                ):
                    raise self.error(f.line, f"field {f.name} uses a reserved name or number")
            numbers[f.number] = f.name
            names.add(f.name)

    def enum(self, draft: _Enum) -> ProtoEnum:
        for value in draft.values:
            for reserved in draft.reserved:
                if value.name in reserved.names or any(
                    lo <= value.number <= hi for lo, hi in reserved.ranges
                ):
                    raise self.error(value.line, f"enum value {value.name} is reserved")
        return ProtoEnum(
            name=draft.name,
            full_name=draft.full_name,
            values=[
                ProtoEnumValue(v.name, v.number, _comment(self.draft.lines, v.line))
                for v in draft.values
            ],
            comment=_comment(self.draft.lines, draft.line),
        )

    def message(self, draft: _Message) -> ProtoMessage:
        self.check_fields(draft)
        return ProtoMessage(
            name=draft.name,
            full_name=draft.full_name,
            fields=[self.field(f, draft.full_name) for f in draft.fields],
            messages=[self.message(m) for m in draft.messages],
            enums=[self.enum(e) for e in draft.enums],
            comment=_comment(self.draft.lines, draft.line),
        )

    def build(self, generate: bool) -> ProtoFile:
        return ProtoFile(
            path=self.draft.path,
            package=self.draft.package,
            dependencies=list(self.draft.imports),
            messages=[self.message(m) for m in self.draft.messages],
            enums=[self.enum(e) for e in self.draft.enums],
            generate=generate,
        )


def build(drafts: list[_FileDraft], generate: set[str]) -> list[ProtoFile]:
    """Resolve drafts into schema files; files whose path is in generate are marked for output."""
    declared: dict[str, FieldType] = {}
    for draft in drafts:
        _declare(draft, declared)
    return [_Builder(draft, declared).build(draft.path in generate) for draft in drafts]


def parse_many(sources: dict[str, str]) -> list[ProtoFile]:
    """Parse several in-memory schema files that may import each other."""
    drafts = [parse_draft(text, path) for path, text in sources.items()]
    for draft in drafts:
        for imported in draft.imports:
            if imported not in sources:
                raise ValidationError(f"{draft.path}: import {imported} not found")
    return build(drafts, set(sources))


def parse(text: str, path: str = "schema.proto") -> ProtoFile:
    """Parse a single self-contained schema file."""
    return parse_many({path: text})[0]


def _relative_path(path: str, include_paths: list[str]) -> tuple[str, str]:
    """Split a file path into (include root, import path)."""
    absolute = os.path.abspath(path)
    for root in include_paths:
        root = os.path.abspath(root)
        if absolute.startswith(root + os.sep):
            return root, os.path.relpath(absolute, root).replace(os.sep, "/")
    return os.path.dirname(absolute), os.path.basename(absolute)


def load(paths: list[str], include_paths: list[str] | None = None) -> list[ProtoFile]:
    """Load schema files from disk along with everything they import.

    Only the given files are marked for generation.
    """
    roots = [os.path.abspath(p) for p in include_paths or []]
    pending: list[tuple[str, str]] = []
    wanted: list[str] = []
    for path in paths:
        root, rel = _relative_path(path, roots)
        if root not in roots:
            roots.append(root)
        pending.append((os.path.join(root, rel), rel))
        wanted.append(rel)

    drafts: dict[str, _FileDraft] = {}
    while pending:
        disk_path, rel = pending.pop(0)
        if rel in drafts:
            continue
        try:
            with open(disk_path, encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise ValidationError(f"Cannot read {rel}: {e.strerror}") from e
        draft = parse_draft(text, rel)
        drafts[rel] = draft

        for imported in draft.imports:
            if imported in drafts:
                continue
            for root in roots:
                candidate = os.path.join(root, imported)
                if os.path.isfile(candidate):
                    pending.append((candidate, imported))
                    break
            else:
                raise ValidationError(f"{rel}: import {imported} not found")

    return build(list(drafts.values()), set(wanted))
