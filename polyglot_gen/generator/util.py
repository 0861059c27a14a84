"""Identifier helpers for generated Rust code."""

import re

RUST_KEYWORDS = frozenset(
    [
        "as", "async", "await", "break", "const", "continue", "dyn", "else", "enum",
        "extern", "false", "fn", "for", "if", "impl", "in", "let", "loop", "match",
        "mod", "move", "mut", "pub", "ref", "return", "static", "struct", "trait",
        "true", "type", "unsafe", "use", "where", "while", "abstract", "become",
        "box", "do", "final", "macro", "override", "priv", "try", "typeof",
        "unsized", "virtual", "yield",
    ]
)

# Cannot be raw identifiers
_RESERVED = frozenset(["crate", "self", "super", "Self"])

_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def to_camel_case(name: str) -> str:
    """Convert snake_case, SCREAMING_CASE or dotted names to CamelCase."""
    words = [w for part in name.split(".") for w in re.split(r"[_\W]+", part) if w]
    out = []
    for word in words:
        if word.isupper():
            word = word.lower()
        out.append(word[0].upper() + word[1:])
    return "".join(out)


def to_snake_case(name: str) -> str:
    """Convert CamelCase or mixedCase names to snake_case."""
    return _BOUNDARY.sub("_", name).replace("-", "_").lower()


def rust_ident(name: str) -> str:
    """Escape a Rust keyword as a raw identifier."""
    if name in _RESERVED:
        return f"{name}_"
    if name in RUST_KEYWORDS:
        return f"r#{name}"
    return name
