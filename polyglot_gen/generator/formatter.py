"""Source formatters applied to generated code."""

import subprocess
from typing import Protocol

from .errors import FormatterError


class Formatter(Protocol):
    """Turns assembled source text into its canonical form."""

    def format(self, source: bytes) -> bytes: ...


class NoopFormatter:
    """Returns source unchanged."""

    def format(self, source: bytes) -> bytes:
        return source


class RustFmt:
    """Pipes source through rustfmt.

    The call blocks until rustfmt exits; there is no timeout.
    """

    def __init__(self, executable: str = "rustfmt", edition: str = "2021"):
        self.executable = executable
        self.edition = edition

    @property
    def command(self) -> list[str]:
        return [self.executable, "--edition", self.edition]

    def format(self, source: bytes) -> bytes:
        try:
            result = subprocess.run(self.command, input=source, capture_output=True, check=False)
        except OSError as e:
            raise FormatterError(f"Could not run {self.executable}: {e}") from e

        if result.returncode != 0:
            raise FormatterError(
                f"{self.executable} exited with status {result.returncode}",
                diagnostics=result.stderr + result.stdout,
            )
        return result.stdout
