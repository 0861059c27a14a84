"""polyglot-gen - Rust codec generator for polyglot protocol schemas."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("polyglot-gen")
except PackageNotFoundError:
    __version__ = "(local)"
