import json
from pathlib import Path

import pytest

from nodescript import compile_from_json
from nodescript.config import Settings
from nodescript.server.serializers.graph_serializer import function_to_dict, graph_to_dict

from sample_graphs import add_function, calls_add, greeting


EXAMPLES = Path(__file__).resolve().parents[2] / "examples"


def write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


class TestCompileFromJson:
    def test_writes_fnl_file(self, tmp_path, capsys):
        src = write_json(tmp_path / "greeting.json", graph_to_dict(greeting().build()))
        out_dir = tmp_path / "out"
        assert compile_from_json.main([src, "--out", str(out_dir)]) == 0

        written = (out_dir / "scenario_a.fnl").read_text(encoding="utf-8")
        assert written.startswith(";; Compiled from node graph: Scenario A\n")
        assert "[compile_from_json] wrote" in capsys.readouterr().out

    def test_print_keeps_stdout_clean(self, tmp_path, capsys):
        bundle = {
            "program": graph_to_dict(calls_add().build()),
            "functions": [function_to_dict(add_function())],
        }
        src = write_json(tmp_path / "calls.json", bundle)
        assert compile_from_json.main([src, "--print"]) == 0
        captured = capsys.readouterr()
        assert captured.out.startswith(";; Compiled from node graph: Calls\n")
        assert "(fn add [a b]" in captured.out
        assert "[compile_from_json] functions : 1" in captured.err

    def test_missing_file(self, tmp_path, capsys):
        assert compile_from_json.main([str(tmp_path / "nope.json")]) == 1
        assert "File not found" in capsys.readouterr().err

    def test_invalid_json(self, tmp_path, capsys):
        src = tmp_path / "broken.json"
        src.write_text("{not json", encoding="utf-8")
        assert compile_from_json.main([str(src)]) == 1
        assert "Invalid JSON" in capsys.readouterr().err

    def test_schema_failure(self, tmp_path, capsys):
        src = write_json(tmp_path / "bad.json", {"nodes": []})
        assert compile_from_json.main([src]) == 1
        assert "Schema validation failed" in capsys.readouterr().err

    def test_compile_errors_are_listed(self, tmp_path, capsys):
        src = write_json(tmp_path / "calls.json", graph_to_dict(calls_add().build()))
        assert compile_from_json.main([src, "--print"]) == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "unknown_function" in captured.err

    def test_unencodable_string_is_reported(self, tmp_path, capsys):
        data = graph_to_dict(greeting().build())
        data["variables"][0]["default"] = "\ud800"
        src = write_json(tmp_path / "surrogate.json", data)
        out_dir = tmp_path / "out"
        assert compile_from_json.main([src, "--out", str(out_dir)]) == 1
        assert "invalid_literal" in capsys.readouterr().err
        assert not out_dir.exists()

    def test_duplicate_functions_in_bundle(self, tmp_path, capsys):
        fn = function_to_dict(add_function())
        bundle = {"program": graph_to_dict(calls_add().build()), "functions": [fn, fn]}
        src = write_json(tmp_path / "dup.json", bundle)
        assert compile_from_json.main([src, "--print"]) == 1
        assert "duplicate_function" in capsys.readouterr().err

    def test_shipped_example(self, capsys):
        assert compile_from_json.main([str(EXAMPLES / "countdown.json"), "--print"]) == 0
        assert capsys.readouterr().out == (
            ";; Compiled from node graph: Countdown\n"
            "\n"
            "(fn announce [count]\n"
            "  (.. (tostring count) \"...\"))\n"
            "\n"
            "(var n 3)\n"
            "(while (> n 0)\n"
            "  (local result (announce n))\n"
            "  (print result)\n"
            "  (set n (- n 1)))\n"
            "(print \"liftoff\")\n"
        )

    @pytest.mark.parametrize("name, filename", [
        ("Scenario A", "scenario_a.fnl"),
        ("Hello World!", "hello_world.fnl"),
        ("***", "program.fnl"),
    ])
    def test_output_filename(self, name, filename):
        assert compile_from_json._graph_name_to_filename(name) == filename


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.port == 3001
        assert settings.out_dir == "compiled"

    def test_overrides(self):
        settings = Settings.from_env({"NODESCRIPT_PORT": "8080", "NODESCRIPT_LOG_LEVEL": "debug"})
        assert settings.port == 8080
        assert settings.log_level == "DEBUG"

    def test_bad_port(self):
        with pytest.raises(ValueError, match="NODESCRIPT_PORT"):
            Settings.from_env({"NODESCRIPT_PORT": "eighty"})
