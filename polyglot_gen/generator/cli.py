"""Command-line interface for polyglot code generation."""

from __future__ import annotations

import json
import os
import sys
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.table import Table

from polyglot_gen.generator.deps import analyze
from polyglot_gen.generator.errors import UnsupportedSchemaError, ValidationError
from polyglot_gen.generator.formatter import NoopFormatter, RustFmt
from polyglot_gen.generator.kinds import classify, describe
from polyglot_gen.generator.parser import load
from polyglot_gen.generator.rust import generate
from polyglot_gen.generator.types import ProtoEnum, TypeIndex

if TYPE_CHECKING:
    from polyglot_gen.generator.types import ProtoFile

err_console = Console(stderr=True)


def _load_or_exit(inputs: tuple[str, ...], proto_paths: tuple[str, ...]) -> list[ProtoFile]:
    try:
        return load(list(inputs), list(proto_paths))
    except ValidationError as e:
        err_console.print(f"[bold red]error:[/bold red] {e}", highlight=False)
        sys.exit(1)


@click.group()
def cli() -> None:
    """Polyglot Rust codec generator."""


@cli.command()
@click.option(
    "--input", "-i", "inputs", required=True, multiple=True, help="Schema file to generate"
)
@click.option(
    "--proto-path", "-I", "proto_paths", multiple=True, help="Directory searched for imports"
)
@click.option("--output", "-o", "output_dir", default=".", help="Output directory")
@click.option("--no-format", is_flag=True, default=False, help="Skip rustfmt")
@click.option("--rustfmt", default="rustfmt", help="rustfmt executable")
@click.option("--edition", default="2021", help="Rust edition passed to rustfmt")
def gen(
    inputs: tuple[str, ...],
    proto_paths: tuple[str, ...],
    output_dir: str,
    no_format: bool,
    rustfmt: str,
    edition: str,
) -> None:
    """Generate Rust encoders and decoders from schema files."""
    files = _load_or_exit(inputs, proto_paths)
    formatter = NoopFormatter() if no_format else RustFmt(rustfmt, edition)
    result = generate(files, formatter)

    for generated in result.files:
        path = os.path.join(output_dir, generated.path)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "wb") as f:
            f.write(generated.content)
        click.echo(f"Generated {path}")

    for failure in result.errors:
        err_console.print(f"[bold red]error:[/bold red] {failure.describe()}", highlight=False)

    if not result.ok:
        sys.exit(1)


@cli.command()
@click.option(
    "--input", "-i", "inputs", required=True, multiple=True, help="Schema file to inspect"
)
@click.option(
    "--proto-path", "-I", "proto_paths", multiple=True, help="Directory searched for imports"
)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def plan(inputs: tuple[str, ...], proto_paths: tuple[str, ...], output_json: bool) -> None:
    """Show emission order, imports and field kinds without generating code."""
    files = _load_or_exit(inputs, proto_paths)
    index = TypeIndex(files)
    data = {f.path: _plan_data(f, index) for f in files if f.generate}

    if output_json:
        print(json.dumps(data, indent=2))
    else:
        _output_plain(data)

    if any("error" in entry for entry in data.values()):
        sys.exit(1)


def _plan_data(proto_file: ProtoFile, index: TypeIndex) -> dict:
    """Collect the plan of one file as plain data."""
    try:
        emission = analyze(proto_file, index)
    except UnsupportedSchemaError as e:
        return {"error": str(e), "members": e.members}

    types = {}
    for full_name in emission.order:
        decl = index[full_name].decl
        if isinstance(decl, ProtoEnum):
            types[full_name] = {"kind": "enum", "values": {v.name: v.number for v in decl.values}}
        else:
            types[full_name] = {
                "kind": "message",
                "fields": {
                    f.name: {"number": f.number, "kind": describe(classify(f))}
                    for f in sorted(decl.fields, key=lambda f: f.number)
                },
            }

    return {
        "output": proto_file.output_path,
        "order": list(emission.order),
        "imports": [ref.rust_path for ref in emission.imports],
        "types": types,
    }


def _output_plain(data: dict) -> None:
    """Output plans using rich text formatting."""
    console = Console()

    for path, entry in data.items():
        console.print(f"[bold cyan]{path}[/bold cyan]")

        if "error" in entry:
            console.print(f"  [red]{entry['error']}[/red]", highlight=False)
            console.print()
            continue

        if entry["imports"]:
            console.print("[dim]Imports[/dim]")
            for rust_path in entry["imports"]:
                console.print(f"  {rust_path}", highlight=False)

        table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
        table.add_column("#", style="dim", justify="right")
        table.add_column("Type", style="white")
        table.add_column("Field", style="white")
        table.add_column("No.", style="green", justify="right")
        table.add_column("Kind", style="yellow")

        for position, (full_name, info) in enumerate(entry["types"].items(), start=1):
            if info["kind"] == "enum":
                table.add_row(str(position), full_name, "", "", "enum")
                continue
            table.add_row(str(position), full_name, "", "", "message")
            for name, field_info in info["fields"].items():
                table.add_row("", "", name, str(field_info["number"]), field_info["kind"])

        console.print(table)
        console.print()


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
