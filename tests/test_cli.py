import json
import subprocess
from pathlib import Path

import pytest
from conftest import FIXTURES, read_fixture

import cobraspec


def _fake_hugo(calls):
    pages = {
        ("--help",): "root.txt",
        ("help", "build"): "build.txt",
        ("build", "--help"): "build.txt",
        ("help", "mod"): "mod.txt",
        ("help", "server"): "server.txt",
        ("server", "--help"): "server.txt",
        ("help", "mod", "clean"): "mod_clean.txt",
        ("mod", "clean", "--help"): "mod_clean.txt",
        ("help", "mod", "get"): "mod_get.txt",
        ("mod", "get", "--help"): "mod_get.txt",
    }

    def fake_run(cmd, capture_output, text, timeout):
        calls.append(cmd)
        name = pages.get(tuple(cmd[1:]))
        if name is None:
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="unknown")
        return subprocess.CompletedProcess(cmd, 0, stdout=read_fixture(name), stderr="")

    return fake_run


def test_discover_writes_artifacts(
    cobraspec_home: Path, monkeypatch: pytest.MonkeyPatch, capsys
):
    calls = []
    monkeypatch.setattr(cobraspec.subprocess, "run", _fake_hugo(calls))

    assert cobraspec.main(["discover", "--executable", "/usr/local/bin/hugo"]) == 0

    out = capsys.readouterr().out
    json_path = cobraspec_home / "data" / "hugo.json"
    types_path = cobraspec_home / "data" / "hugo_types.py"
    assert f"Wrote {json_path}" in out
    assert f"Wrote {types_path}" in out
    assert calls[0] == ["/usr/local/bin/hugo", "--help"]

    payload = json.loads(json_path.read_text())
    assert [c["command"] for c in payload["commands"]] == [
        "build",
        "mod",
        "mod clean",
        "mod get",
        "server",
    ]

    # The default schema location is what build_args reads afterwards.
    assert cobraspec.build_args("server", {"port": 1313, "quiet": True}) == [
        "server",
        "--port",
        "1313",
        "--quiet",
    ]


def test_discover_print_and_custom_name(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys
):
    monkeypatch.setattr(cobraspec.subprocess, "run", _fake_hugo([]))
    monkeypatch.setenv("COBRASPEC_EXECUTABLE", "hugo")

    code = cobraspec.main(
        [
            "discover",
            "--name",
            "hugo-extended",
            "--out-dir",
            str(tmp_path),
            "--max-workers",
            "4",
            "--print",
        ]
    )
    assert code == 0
    assert (tmp_path / "hugo-extended.json").exists()
    types_source = (tmp_path / "hugo-extended_types.py").read_text()
    assert "class HugoExtendedServerOptions" in types_source

    out = capsys.readouterr().out
    assert '"globalFlags": [' in out


def test_discover_reports_probe_failure(monkeypatch: pytest.MonkeyPatch, capsys):
    def fake_run(cmd, capture_output, text, timeout):
        if cmd[1:] == ["--help"]:
            return subprocess.CompletedProcess(
                cmd, 0, stdout=read_fixture("root.txt"), stderr=""
            )
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="Error: boom")

    monkeypatch.setattr(cobraspec.subprocess, "run", fake_run)

    assert cobraspec.main(["discover"]) == 1
    err = capsys.readouterr().err
    assert err.startswith("error: ")
    assert "while probing command 'build'" in err


def test_parse_help_command(capsys):
    code = cobraspec.main(
        ["parse-help", str(FIXTURES / "mod_clean.txt"), "--path", "mod", "clean"]
    )
    assert code == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["pathTokens"] == ["mod", "clean"]
    assert [f["long"] for f in payload["flags"]] == ["--all", "--pattern"]
    assert len(payload["globalFlags"]) == 6


def test_args_command(hugo_spec, tmp_path: Path, capsys):
    schema = tmp_path / "hugo.json"
    schema.write_text(cobraspec.schema_to_json(hugo_spec))

    code = cobraspec.main(
        [
            "args",
            "server",
            "--schema",
            str(schema),
            "--options",
            '{"port": 1313, "theme": ["a", "b"], "buildDrafts": true}',
        ]
    )
    assert code == 0
    assert json.loads(capsys.readouterr().out) == [
        "server",
        "--port",
        "1313",
        "--theme",
        "a",
        "--theme",
        "b",
        "--buildDrafts",
    ]


def test_args_command_with_positional(capsys):
    code = cobraspec.main(["args", "new site", "my-site"])
    assert code == 0
    assert json.loads(capsys.readouterr().out) == ["new", "site", "my-site"]


def test_args_command_rejects_non_object_options(capsys):
    assert cobraspec.main(["args", "build", "--options", "[1, 2]"]) == 2
    assert "--options must be a JSON object" in capsys.readouterr().err


def test_args_command_missing_schema(capsys):
    assert cobraspec.main(["args", "build", "--options", '{"minify": true}']) == 1
    assert "Schema file not found" in capsys.readouterr().err


def test_run_command_exit_code(hugo_spec, monkeypatch: pytest.MonkeyPatch, capsys):
    cobraspec.override_schema(hugo_spec)
    seen = []

    def fake_run(cmd, capture_output, text):
        seen.append(cmd)
        return subprocess.CompletedProcess(cmd, 3, stdout=None, stderr=None)

    monkeypatch.setattr(cobraspec.subprocess, "run", fake_run)

    code = cobraspec.main(
        ["run", "build", "--executable", "hugo", "--options", '{"minify": true}']
    )
    assert code == 3
    assert seen == [["hugo", "build", "--minify"]]
    assert "failed with exit code 3" in capsys.readouterr().err


def test_no_action_prints_usage(capsys):
    assert cobraspec.main([]) == 2
    assert "usage:" in capsys.readouterr().err
