"""Errors raised while loading schemas and generating code."""


class GeneratorError(RuntimeError):
    """Base class for all generator failures."""


class ValidationError(GeneratorError):
    """Raised when a schema definition is malformed or references unknown types."""


class UnsupportedSchemaError(GeneratorError):
    """Raised when a schema cannot be expressed in the target language.

    Aborts generation for the offending file only.
    """

    def __init__(self, path: str, message: str, members: list[str] | None = None):
        self.path = path
        self.members = members or []
        super().__init__(f"{path}: {message}")


class InternalError(GeneratorError):
    """Raised when the generator's own tables are inconsistent. Fatal for the run."""


class ClassificationError(InternalError):
    """Raised when a field descriptor cannot be classified."""


class FormatterError(GeneratorError):
    """Raised when the source formatter fails or cannot be invoked."""

    def __init__(self, message: str, diagnostics: bytes = b""):
        self.diagnostics = diagnostics
        super().__init__(message)
