"""Tests for CLI interface."""

import json
import os
import tempfile

from click.testing import CliRunner

from polyglot_gen.generator.cli import cli


def describe_gen_command():
    def generates_rust_code(expect, proto_dir):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as output_dir:
            result = runner.invoke(
                cli,
                ["gen", "-i", f"{proto_dir}/pixel.proto", "-o", output_dir, "--no-format"],
            )
            expect(result.exit_code) == 0
            with open(f"{output_dir}/pixel.rs") as f:
                content = f.read()
            expect("pub struct Pixel {" in content) == True
            expect("impl TryFrom<u32> for Color {" in content) == True

    def creates_nested_output_directories(expect, proto_dir):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as output_dir:
            result = runner.invoke(
                cli,
                [
                    "gen",
                    "-i",
                    f"{proto_dir}/shapes/point.proto",
                    "-I",
                    proto_dir,
                    "-o",
                    output_dir,
                    "--no-format",
                ],
            )
            expect(result.exit_code) == 0
            expect(os.path.isfile(f"{output_dir}/shapes/point.rs")) == True

    def fails_on_inline_cycles(expect, proto_dir):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as output_dir:
            result = runner.invoke(
                cli,
                ["gen", "-i", f"{proto_dir}/cycle.proto", "-o", output_dir, "--no-format"],
            )
            expect(result.exit_code) == 1
            expect(os.listdir(output_dir)) == []

    def fails_when_formatter_is_missing(expect, proto_dir):
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as output_dir:
            result = runner.invoke(
                cli,
                [
                    "gen",
                    "-i",
                    f"{proto_dir}/pixel.proto",
                    "-o",
                    output_dir,
                    "--rustfmt",
                    "/nonexistent/rustfmt",
                ],
            )
            expect(result.exit_code) == 1
            expect(os.listdir(output_dir)) == []

    def fails_on_missing_input(expect, proto_dir):
        runner = CliRunner()
        result = runner.invoke(cli, ["gen", "-i", f"{proto_dir}/missing.proto", "--no-format"])
        expect(result.exit_code) == 1


def describe_plan_command():
    def outputs_json(expect, proto_dir):
        runner = CliRunner()
        result = runner.invoke(cli, ["plan", "-i", f"{proto_dir}/canvas.proto", "--json"])
        expect(result.exit_code) == 0
        data = json.loads(result.output)
        plan = data["canvas.proto"]
        expect(plan["order"]) == ["demo.Canvas"]
        expect(plan["imports"]) == [
            "crate::demo::Color",
            "crate::demo::Pixel",
            "crate::shapes::Point",
        ]
        fields = plan["types"]["demo.Canvas"]["fields"]
        expect(fields["palette"]["kind"]) == "map<string, enum demo.Color>"
        expect(fields["sample"]["kind"]) == "oneof background<message demo.Pixel>"

    def outputs_json_for_cycles(expect, proto_dir):
        runner = CliRunner()
        result = runner.invoke(cli, ["plan", "-i", f"{proto_dir}/cycle.proto", "--json"])
        expect(result.exit_code) == 1
        data = json.loads(result.output)
        expect(data["cycle.proto"]["members"]) == ["loops.A", "loops.B"]

    def outputs_table(expect, proto_dir):
        runner = CliRunner()
        result = runner.invoke(cli, ["plan", "-i", f"{proto_dir}/pixel.proto"])
        expect(result.exit_code) == 0
        expect("pixel.proto" in result.output) == True
        expect("demo.Pixel" in result.output) == True
