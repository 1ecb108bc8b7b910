from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

import cobraspec

FIXTURES = Path(__file__).parent / "fixtures" / "hugo"

HUGO_PAGES: dict[tuple[str, ...], str] = {
    (): "root.txt",
    ("build",): "build.txt",
    ("mod",): "mod.txt",
    ("server",): "server.txt",
    ("mod", "clean"): "mod_clean.txt",
    ("mod", "get"): "mod_get.txt",
}


def read_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


@dataclass(slots=True)
class FakeHelpProvider:
    help_texts: dict[tuple[str, ...], str]
    calls: list[tuple[str, ...]] = field(default_factory=list)

    def get_help_text(self, *, path: tuple[str, ...]) -> str:
        self.calls.append(path)
        if path not in self.help_texts:
            raise cobraspec.HelpProviderError(
                "Help call failed (exit 1): unknown command",
                path=path,
                argv=["hugo", *path, "--help"],
                returncode=1,
            )
        return self.help_texts[path]


@pytest.fixture(autouse=True)
def cobraspec_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "cobraspec-home"
    monkeypatch.setenv("COBRASPEC_HOME", str(home))
    for key in ("EXECUTABLE", "NAME", "SCHEMA_PATH", "VERBOSE", "MAX_WORKERS"):
        monkeypatch.delenv(f"COBRASPEC_{key}", raising=False)
    cobraspec.reset_schema_cache()
    yield home
    cobraspec.reset_schema_cache()


@pytest.fixture()
def hugo_help_texts() -> dict[tuple[str, ...], str]:
    return {path: read_fixture(name) for path, name in HUGO_PAGES.items()}


@pytest.fixture()
def hugo_provider(hugo_help_texts) -> FakeHelpProvider:
    return FakeHelpProvider(help_texts=hugo_help_texts)


@pytest.fixture()
def fake_provider():
    return FakeHelpProvider


@pytest.fixture()
def hugo_spec(hugo_provider) -> cobraspec.CliSpec:
    result = cobraspec.discover_command_tree(help_provider=hugo_provider)
    return cobraspec.assemble_spec(
        commands=result.commands, global_flags=result.global_flags
    )
