#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = []
# ///
"""cobraspec - typed argv building for Cobra-style command line programs.

Discovers a target CLI's command tree and flag grammar by parsing its own
`--help` output, persists the result as a JSON schema (plus a module of typed
option declarations), and later uses that schema to turn an options mapping
into a correctly ordered argument vector.

Storage model:
- Generated artifacts live under `~/.config/cobraspec/data/`.
- One `<name>.json` schema and one `<name>_types.py` module per target CLI.
- `COBRASPEC_HOME` environment variable overrides the storage location.

Usage:
    cobraspec discover --executable hugo             # Scan help output, write artifacts
    cobraspec parse-help server.txt --path server    # Parse a saved help page
    cobraspec args server --options '{"port": 1313}' # Print the argv as JSON
    cobraspec run build --options '{"minify": true}' # Run the target CLI
"""

from __future__ import annotations

import argparse
import concurrent.futures
import json
import keyword
import os
import re
import subprocess
import sys
import threading
from collections import deque
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Final, Iterable, Mapping, Protocol, Sequence, assert_never

CommandPath = tuple[str, ...]

# Reserved path token for the discovery root. Never matches a real subcommand
# name, since those are restricted to `[A-Za-z0-9][A-Za-z0-9-]*`.
ROOT_TOKEN: Final[str] = "<root>"

DEFAULT_EXECUTABLE: Final[str] = "hugo"


class CobraspecError(RuntimeError):
    pass


class HelpProviderError(CobraspecError):
    """Raised when the target CLI could not produce help text for a path."""

    def __init__(
        self,
        message: str,
        *,
        path: CommandPath,
        argv: Sequence[str],
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        label = _command_path_label(path) or ROOT_TOKEN
        super().__init__(f"{message} (while probing command '{label}')")
        self.path = path
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr


class SchemaError(CobraspecError):
    pass


class CommandFailedError(CobraspecError):
    def __init__(
        self, message: str, *, returncode: int | None, stderr: str = ""
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


class FlagKind(str, Enum):
    """Normalized flag type used for declarations and argv serialization."""

    BOOLEAN = "boolean"
    STRING = "string"
    NUMBER = "number"
    STRING_LIST = "string[]"
    NUMBER_LIST = "number[]"


@dataclass(frozen=True, slots=True)
class FlagSpec:
    """One command-line flag as printed in a `Flags:` section."""

    long: str  # e.g. "--baseURL"
    kind: FlagKind
    description: str
    short: str | None = None  # e.g. "-b"
    type_token: str | None = None  # raw pflag type word, e.g. "strings"
    enum: tuple[str, ...] | None = None
    default_raw: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"long": self.long}
        if self.short is not None:
            out["short"] = self.short
        if self.type_token is not None:
            out["typeToken"] = self.type_token
        out["kind"] = self.kind.value
        out["description"] = self.description
        if self.enum is not None:
            out["enum"] = list(self.enum)
        if self.default_raw is not None:
            out["defaultRaw"] = self.default_raw
        return out

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> FlagSpec:
        enum = payload.get("enum")
        return cls(
            long=payload["long"],
            kind=FlagKind(payload["kind"]),
            description=payload.get("description", ""),
            short=payload.get("short"),
            type_token=payload.get("typeToken"),
            enum=tuple(enum) if enum is not None else None,
            default_raw=payload.get("defaultRaw"),
        )


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """Parsed help metadata for one node of the command tree."""

    path_tokens: CommandPath
    flags: tuple[FlagSpec, ...] = ()
    global_flags: tuple[FlagSpec, ...] = ()
    subcommands: tuple[str, ...] = ()

    @property
    def is_root(self) -> bool:
        return self.path_tokens == (ROOT_TOKEN,)

    @property
    def command(self) -> str:
        return " ".join(self.path_tokens)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pathTokens": list(self.path_tokens),
            "flags": [f.to_dict() for f in self.flags],
            "globalFlags": [f.to_dict() for f in self.global_flags],
            "subcommands": list(self.subcommands),
        }


@dataclass(frozen=True, slots=True)
class CommandFlags:
    command: str  # space-joined path, e.g. "mod clean"
    flags: tuple[FlagSpec, ...] = ()


@dataclass(frozen=True, slots=True)
class CliSpec:
    """The assembled, persisted schema consumed by `build_args`."""

    global_flags: tuple[FlagSpec, ...] = ()
    commands: tuple[CommandFlags, ...] = ()

    def flags_for(self, command: str) -> list[FlagSpec]:
        """Global flags followed by the command's local flags."""
        local: tuple[FlagSpec, ...] = ()
        for entry in self.commands:
            if entry.command == command:
                local = entry.flags
                break
        return [*self.global_flags, *local]

    def to_dict(self) -> dict[str, Any]:
        return {
            "globalFlags": [f.to_dict() for f in self.global_flags],
            "commands": [
                {"command": c.command, "flags": [f.to_dict() for f in c.flags]}
                for c in self.commands
            ],
        }

    @classmethod
    def from_dict(cls, payload: object) -> CliSpec:
        return validate_cli_spec(payload=payload)


def _validate_flag(*, payload: object, where: str) -> FlagSpec:
    if not isinstance(payload, dict):
        raise ValueError(f"{where} must be an object")
    long = payload.get("long")
    if not isinstance(long, str) or not long:
        raise ValueError(f"{where}.long must be a non-empty string")
    kind = payload.get("kind")
    if kind not in {k.value for k in FlagKind}:
        raise ValueError(f"{where}.kind must be one of the known flag kinds")
    description = payload.get("description", "")
    if not isinstance(description, str):
        raise ValueError(f"{where}.description must be a string")
    for key in ("short", "typeToken", "defaultRaw"):
        value = payload.get(key)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{where}.{key} must be a string")
    enum = payload.get("enum")
    if enum is not None:
        if not isinstance(enum, list) or not all(isinstance(v, str) for v in enum):
            raise ValueError(f"{where}.enum must be a list of strings")
    return FlagSpec.from_dict(payload)


def _validate_flag_list(*, payload: object, where: str) -> tuple[FlagSpec, ...]:
    if not isinstance(payload, list):
        raise ValueError(f"{where} must be a list")
    flags = [
        _validate_flag(payload=item, where=f"{where}[{idx}]")
        for idx, item in enumerate(payload)
    ]
    longs = [f.long for f in flags]
    if len(set(longs)) != len(longs):
        raise ValueError(f"{where} contains duplicate long flags")
    return tuple(flags)


def validate_cli_spec(*, payload: object) -> CliSpec:
    if not isinstance(payload, dict):
        raise ValueError("schema must be an object")
    global_flags = _validate_flag_list(
        payload=payload.get("globalFlags"), where="globalFlags"
    )
    raw_commands = payload.get("commands")
    if not isinstance(raw_commands, list):
        raise ValueError("commands must be a list")
    global_longs = {f.long for f in global_flags}
    commands: list[CommandFlags] = []
    for idx, item in enumerate(raw_commands):
        if not isinstance(item, dict):
            raise ValueError(f"commands[{idx}] must be an object")
        command = item.get("command")
        if not isinstance(command, str) or not command.strip():
            raise ValueError(f"commands[{idx}].command must be a non-empty string")
        flags = _validate_flag_list(
            payload=item.get("flags"), where=f"commands[{idx}].flags"
        )
        if any(f.long in global_longs for f in flags):
            raise ValueError(f"commands[{idx}].flags repeats a global flag")
        commands.append(CommandFlags(command=command, flags=flags))
    return CliSpec(global_flags=global_flags, commands=tuple(commands))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def cobraspec_home() -> Path:
    """Return cobraspec's home directory.

    Defaults to `~/.config/cobraspec`, overridable via `COBRASPEC_HOME`.
    """
    raw = os.environ.get("COBRASPEC_HOME")
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".config" / "cobraspec"


def cobraspec_data_dir() -> Path:
    return cobraspec_home() / "data"


def cobraspec_config_path() -> Path:
    return cobraspec_home() / "config.json"


def _load_config() -> dict:
    path = cobraspec_config_path()
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text())
    except json.JSONDecodeError:
        return {}
    if isinstance(payload, dict):
        return payload
    return {}


def _config_get(*, key: str) -> object | None:
    # Environment variables override config.json.
    # Example: `COBRASPEC_EXECUTABLE=/opt/hugo/bin/hugo`, `COBRASPEC_VERBOSE=2`.
    env_key = f"COBRASPEC_{key.upper()}"
    env_val = os.environ.get(env_key)
    if env_val is not None and env_val.strip() != "":
        return env_val
    return _load_config().get(key)


def _setting_int(*, config_key: str, default: int) -> int:
    cfg = _config_get(key=config_key)
    if cfg is None:
        return default
    try:
        return int(cfg)
    except (TypeError, ValueError):
        return default


def _verbose_level() -> int:
    """0 = quiet, 1 = discovery progress, 2 = also argv and help sizes."""
    raw = _config_get(key="verbose")
    if isinstance(raw, str):
        raw = raw.strip().lower()
        if raw in {"", "0", "false", "no", "off"}:
            return 0
        return 1 if raw in {"1", "true", "yes", "on"} else 2
    if isinstance(raw, (bool, int)):
        return min(max(int(raw), 0), 2)
    return 0


def target_executable() -> str:
    cfg = _config_get(key="executable")
    if isinstance(cfg, str) and cfg.strip():
        return cfg.strip()
    return DEFAULT_EXECUTABLE


def target_name(*, executable: str | None = None) -> str:
    """Artifact stem for the target CLI, e.g. `hugo` for `/usr/bin/hugo.exe`."""
    cfg = _config_get(key="name")
    if isinstance(cfg, str) and cfg.strip():
        return _artifact_stem(cfg.strip())
    exe = executable or target_executable()
    name = Path(exe).name
    if name.lower().endswith(".exe"):
        name = name[: -len(".exe")]
    return _artifact_stem(name)


def _artifact_stem(name: str) -> str:
    """Sanitize a name for use as a file stem."""
    safe = name.replace("/", "_").replace("\\", "_")
    safe = safe.replace(":", "_")
    safe = re.sub(r"\s+", "_", safe)
    return safe


def schema_path() -> Path:
    cfg = _config_get(key="schema_path")
    if isinstance(cfg, str) and cfg.strip():
        return Path(cfg.strip()).expanduser()
    return cobraspec_data_dir() / f"{target_name()}.json"


def _command_path_label(path: CommandPath | None) -> str:
    if not path:
        return ""
    return " ".join(path)


# ---------------------------------------------------------------------------
# Flag-line grammar
# ---------------------------------------------------------------------------

# A single row in a `Flags:` / `Global Flags:` section:
#   `  -b, --baseURL string   hostname (and path) to the root`
#   `      --cacheDir string  filesystem path to cache directory`
#   `  -D, --buildDrafts      include content marked as draft`
FLAG_LINE: Final[re.Pattern[str]] = re.compile(
    r"^\s*(?:(?P<short>-[A-Za-z]),\s*)?"
    r"(?P<long>--[A-Za-z0-9][A-Za-z0-9-]*)"
    r"(?:\s+(?P<type>[A-Za-z][A-Za-z0-9]*))?"
    r"\s+(?P<desc>\S.*?)\s*$"
)

# Wrapped description text: indented, not starting with a dash.
CONTINUATION_LINE: Final[re.Pattern[str]] = re.compile(
    r"^\s{2,}(?P<more>[^-\s].*?)\s*$"
)

# `Flags:`, `Global Flags:`, `Available Commands:` ...
SECTION_HEADER: Final[re.Pattern[str]] = re.compile(r"^(?P<name>[A-Z][A-Za-z ]+):\s*$")

# `  server      Start the embedded web server`
AVAILABLE_COMMAND_LINE: Final[re.Pattern[str]] = re.compile(
    r"^\s{2,}(?P<name>[a-z0-9][a-z0-9-]*)\s{2,}.+$", re.IGNORECASE
)

# Cobra ends help pages with `Use "hugo [command] --help" for more ...`.
USE_HINT_PREFIX: Final[str] = 'Use "'

# pflag type words. Anything else captured in the type column is really the
# first word of a boolean flag's description.
KNOWN_TYPE_TOKENS: Final[frozenset[str]] = frozenset(
    {
        "string",
        "strings",
        "int",
        "int64",
        "uint",
        "uint64",
        "float64",
        "bool",
        "boolean",
        "file",
        "duration",
        "ints",
    }
)

_DEFAULT_CLAUSE: Final[re.Pattern[str]] = re.compile(
    r"(?:\s*\(default(?:\s+is)?\s+([^)]+)\))+\s*$", re.IGNORECASE
)
_ENUM_CLAUSE: Final[re.Pattern[str]] = re.compile(r"\(([^()]*\|[^()]*)\)")
_ENUM_TOKEN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9._-]+$")


class LineKind(Enum):
    FLAG = "flag"
    CONTINUATION = "continuation"
    SECTION_HEADER = "section-header"
    USE_HINT = "use-hint"
    BLANK = "blank"
    OTHER = "other"


def _normalize_line(line: str) -> str:
    return line.replace("\t", "    ").rstrip()


def classify_line(line: str) -> LineKind:
    raw = _normalize_line(line)
    stripped = raw.strip()
    if not stripped:
        return LineKind.BLANK
    if raw.startswith(USE_HINT_PREFIX):
        return LineKind.USE_HINT
    if SECTION_HEADER.match(stripped):
        return LineKind.SECTION_HEADER
    if FLAG_LINE.match(raw):
        return LineKind.FLAG
    if CONTINUATION_LINE.match(raw):
        return LineKind.CONTINUATION
    return LineKind.OTHER


def map_type_token_to_kind(token: str | None) -> FlagKind:
    if not token:
        return FlagKind.BOOLEAN
    match token.lower():
        case "bool" | "boolean":
            return FlagKind.BOOLEAN
        case "string" | "file" | "duration":
            return FlagKind.STRING
        case "strings":
            return FlagKind.STRING_LIST
        case "int" | "int64" | "uint" | "uint64" | "float64":
            return FlagKind.NUMBER
        case "ints":
            return FlagKind.NUMBER_LIST
        case _:
            return FlagKind.STRING


def extract_default(description: str) -> tuple[str, str | None]:
    """Strip a trailing `(default ...)` / `(default is ...)` clause.

    Returns the cleaned description and the raw default text, e.g.
    `'"127.0.0.1"'`, `'true'` or `'hugo.yaml|json|toml'`.
    """
    m = _DEFAULT_CLAUSE.search(description)
    if not m:
        return description, None
    return description[: m.start()].rstrip(), m.group(1).strip()


def extract_enum(description: str) -> tuple[str, tuple[str, ...] | None]:
    """Pull a `(a|b|c)` enumeration out of a description.

    Only the first parenthetical containing a pipe is considered, and only
    simple tokens are accepted, so things like example URLs are left alone.
    """
    m = _ENUM_CLAUSE.search(description)
    if not m:
        return description, None
    parts = [p.strip() for p in m.group(1).split("|")]
    parts = [p for p in parts if p]
    if len(parts) < 2 or not all(_ENUM_TOKEN.match(p) for p in parts):
        return description, None
    cleaned = description[: m.start()] + description[m.end() :]
    cleaned = re.sub(r"\s{2,}", " ", cleaned).strip()
    return cleaned, tuple(parts)


def _build_flag(
    *, long: str, short: str | None, type_token: str | None, description: str
) -> FlagSpec:
    desc = description.strip()
    if type_token and type_token.lower() not in KNOWN_TYPE_TOKENS:
        desc = f"{type_token} {desc}".strip()
        type_token = None
    desc, default_raw = extract_default(desc)
    desc, enum = extract_enum(desc)
    return FlagSpec(
        long=long,
        kind=map_type_token_to_kind(type_token),
        description=desc,
        short=short,
        type_token=type_token,
        enum=enum,
        default_raw=default_raw,
    )


def parse_flag_line(line: str) -> FlagSpec | None:
    m = FLAG_LINE.match(_normalize_line(line))
    if not m:
        return None
    return _build_flag(
        long=m.group("long"),
        short=m.group("short"),
        type_token=m.group("type"),
        description=m.group("desc"),
    )


# ---------------------------------------------------------------------------
# Help-section parser
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _PendingFlag:
    long: str
    short: str | None
    type_token: str | None
    parts: list[str] = field(default_factory=list)

    def finish(self) -> FlagSpec:
        description = re.sub(r"\s{2,}", " ", " ".join(self.parts)).strip()
        return _build_flag(
            long=self.long,
            short=self.short,
            type_token=self.type_token,
            description=description,
        )


def parse_flag_section(lines: Sequence[str], start: int) -> list[FlagSpec]:
    """Parse flag rows from `lines[start:]` until the section ends.

    The section ends at a `Use "..."` hint, at the next section header, or
    at end of input. Wrapped description lines are merged into the flag
    above them before defaults and enums are extracted. `--help` is dropped.
    """
    out: list[FlagSpec] = []
    pending: _PendingFlag | None = None

    for line in lines[start:]:
        kind = classify_line(line)
        if kind in (LineKind.USE_HINT, LineKind.SECTION_HEADER):
            break

        raw = _normalize_line(line)
        if kind is LineKind.FLAG:
            if pending is not None:
                out.append(pending.finish())
            m = FLAG_LINE.match(raw)
            assert m is not None
            if m.group("long") == "--help":
                pending = None
                continue
            pending = _PendingFlag(
                long=m.group("long"),
                short=m.group("short"),
                type_token=m.group("type"),
                parts=[m.group("desc")],
            )
        elif kind is LineKind.CONTINUATION and pending is not None:
            c = CONTINUATION_LINE.match(raw)
            assert c is not None
            pending.parts.append(c.group("more").strip())
        else:
            if pending is not None:
                out.append(pending.finish())
            pending = None

    if pending is not None:
        out.append(pending.finish())

    return _dedupe_section(out)


def _dedupe_section(flags: list[FlagSpec]) -> list[FlagSpec]:
    seen: set[str] = set()
    out: list[FlagSpec] = []
    for flag in flags:
        if flag.long in seen:
            continue
        seen.add(flag.long)
        out.append(flag)
    return out


def _find_header(lines: Sequence[str], header: str) -> int | None:
    for idx, line in enumerate(lines):
        if line.strip() == header:
            return idx
    return None


def parse_available_commands(help_text: str) -> list[str]:
    lines = help_text.splitlines()
    idx = _find_header(lines, "Available Commands:")
    if idx is None:
        return []

    out: list[str] = []
    for line in lines[idx + 1 :]:
        raw = _normalize_line(line)
        if not raw.strip():
            continue
        if SECTION_HEADER.match(raw.strip()):
            break
        m = AVAILABLE_COMMAND_LINE.match(raw)
        if m:
            out.append(m.group("name"))
    return out


def parse_command_help(help_text: str, path_tokens: CommandPath) -> CommandSpec:
    """Parse the `Flags:`, `Global Flags:` and `Available Commands:` sections."""
    lines = help_text.splitlines()

    flags: list[FlagSpec] = []
    flags_idx = _find_header(lines, "Flags:")
    if flags_idx is not None:
        flags = parse_flag_section(lines, flags_idx + 1)

    global_flags: list[FlagSpec] = []
    global_idx = _find_header(lines, "Global Flags:")
    if global_idx is not None:
        global_flags = parse_flag_section(lines, global_idx + 1)

    return CommandSpec(
        path_tokens=tuple(path_tokens),
        flags=tuple(flags),
        global_flags=tuple(global_flags),
        subcommands=tuple(parse_available_commands(help_text)),
    )


# ---------------------------------------------------------------------------
# Command-tree discovery
# ---------------------------------------------------------------------------


class HelpProvider(Protocol):
    def get_help_text(self, *, path: CommandPath) -> str: ...


@dataclass(frozen=True, slots=True)
class SubprocessHelpProvider:
    """Captures help text by running the target executable."""

    executable: str
    timeout_s: int = 30

    def get_help_text(self, *, path: CommandPath) -> str:
        if not path:
            return self._run(path=path, args=["--help"])

        # Some commands route `--help` to a default child, so ask via `help`
        # first to see the parent's own subcommand listing.
        output = self._run(path=path, args=["help", *path])
        if "Available Commands:" in output:
            return output
        return self._run(path=path, args=[*path, "--help"])

    def _run(self, *, path: CommandPath, args: list[str]) -> str:
        argv = [self.executable, *args]
        if _verbose_level() > 1:
            print(f"[cobraspec] exec: {' '.join(argv)}", file=sys.stderr)
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise HelpProviderError(
                f"Could not run {self.executable}: {e}", path=path, argv=argv
            ) from e
        except subprocess.TimeoutExpired as e:
            raise HelpProviderError(
                f"Help call timed out after {self.timeout_s}s", path=path, argv=argv
            ) from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise HelpProviderError(
                f"Help call failed (exit {result.returncode}): {stderr or 'no stderr'}",
                path=path,
                argv=argv,
                returncode=result.returncode,
                stderr=stderr,
            )
        return result.stdout or ""


@dataclass(frozen=True, slots=True)
class DiscoveryResult:
    commands: tuple[CommandSpec, ...]  # visit order, root first
    global_flags: tuple[FlagSpec, ...]  # accumulated, not deduplicated


def _probe(*, help_provider: HelpProvider, path: CommandPath) -> str:
    try:
        return help_provider.get_help_text(path=path)
    except HelpProviderError:
        raise
    except Exception as e:
        raise HelpProviderError(
            f"Help provider failed: {e}", path=path, argv=[]
        ) from e


def _fetch_help_texts(
    *,
    help_provider: HelpProvider,
    paths: list[CommandPath],
    executor: concurrent.futures.ThreadPoolExecutor | None,
) -> list[str]:
    if executor is None:
        return [_probe(help_provider=help_provider, path=path) for path in paths]

    futures = [
        executor.submit(_probe, help_provider=help_provider, path=path)
        for path in paths
    ]
    try:
        return [future.result() for future in futures]
    except Exception:
        for future in futures:
            future.cancel()
        raise


def discover_command_tree(
    *, help_provider: HelpProvider, max_workers: int = 1
) -> DiscoveryResult:
    """Breadth-first walk of the command tree, starting at the root.

    Each breadth-first level is fetched as a batch (concurrently when
    `max_workers > 1`) and then processed in worklist order, so the result
    does not depend on the worker count. Paths already visited are skipped.
    The first help-provider failure aborts the whole walk.
    """
    queue: deque[CommandPath] = deque([()])
    visited: set[str] = set()
    commands: list[CommandSpec] = []
    global_flags: list[FlagSpec] = []
    verbosity = _verbose_level()

    pool = (
        concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)
        if max_workers > 1
        else nullcontext()
    )
    with pool as executor:
        while queue:
            level: list[CommandPath] = []
            while queue:
                path = queue.popleft()
                key = " ".join(path)
                if key in visited:
                    continue
                visited.add(key)
                level.append(path)
            if not level:
                break

            if verbosity:
                for path in level:
                    print(
                        f"[cobraspec] probing: {_command_path_label(path) or ROOT_TOKEN}",
                        file=sys.stderr,
                    )

            help_texts = _fetch_help_texts(
                help_provider=help_provider, paths=level, executor=executor
            )

            for path, help_text in zip(level, help_texts):
                if verbosity > 1:
                    print(
                        f"[cobraspec] help chars: {len(help_text)}", file=sys.stderr
                    )
                spec = parse_command_help(help_text, path or (ROOT_TOKEN,))
                commands.append(spec)
                global_flags.extend(spec.global_flags)
                for sub in spec.subcommands:
                    queue.append(path + (sub,))

    if verbosity:
        print(f"[cobraspec] discovered {len(commands)} commands", file=sys.stderr)

    return DiscoveryResult(commands=tuple(commands), global_flags=tuple(global_flags))


# ---------------------------------------------------------------------------
# Schema assembly
# ---------------------------------------------------------------------------


def dedupe_by_long(flags: Iterable[FlagSpec]) -> list[FlagSpec]:
    """Deduplicate flags by long name. First occurrence wins."""
    seen: dict[str, FlagSpec] = {}
    for flag in flags:
        seen.setdefault(flag.long, flag)
    return list(seen.values())


def assemble_spec(
    *, commands: Iterable[CommandSpec], global_flags: Iterable[FlagSpec]
) -> CliSpec:
    """Reduce discovered nodes into the persisted schema.

    If two nodes describe the same global flag differently, the first one
    seen is kept.
    """
    globals_ = dedupe_by_long(global_flags)
    global_longs = {f.long for f in globals_}
    entries = [
        CommandFlags(
            command=cmd.command,
            flags=tuple(f for f in cmd.flags if f.long not in global_longs),
        )
        for cmd in commands
        if not cmd.is_root
    ]
    return CliSpec(global_flags=tuple(globals_), commands=tuple(entries))


# ---------------------------------------------------------------------------
# Declaration emitter
# ---------------------------------------------------------------------------


def _normalize_long(long: str) -> str:
    return long[2:] if long.startswith("--") else long


def camelize_if_kebab(name: str) -> str:
    """`build-drafts` -> `buildDrafts`. Mixed-case names pass through."""
    if "-" not in name or any(ch.isupper() for ch in name):
        return name
    first, *rest = name.split("-")
    return first + "".join(p[:1].upper() + p[1:] for p in rest)


def _pascal(tokens: Iterable[str]) -> str:
    parts: list[str] = []
    for token in tokens:
        for piece in re.split(r"[\W_]+", token):
            if piece:
                parts.append(piece[:1].upper() + piece[1:])
    return "".join(parts)


def _sorted_flags(flags: Iterable[FlagSpec]) -> list[FlagSpec]:
    return sorted(flags, key=lambda f: (f.long.lower(), f.long))


def sorted_spec(spec: CliSpec) -> CliSpec:
    """Flags sorted by long name, commands sorted by joined path."""
    return CliSpec(
        global_flags=tuple(_sorted_flags(spec.global_flags)),
        commands=tuple(
            CommandFlags(command=c.command, flags=tuple(_sorted_flags(c.flags)))
            for c in sorted(spec.commands, key=lambda c: (c.command.lower(), c.command))
        ),
    )


def schema_to_json(spec: CliSpec) -> str:
    return json.dumps(sorted_spec(spec).to_dict(), indent=2) + "\n"


def _python_type(flag: FlagSpec) -> str:
    if flag.enum:
        literal = "Literal[" + ", ".join(json.dumps(v) for v in flag.enum) + "]"
        if flag.kind in (FlagKind.STRING_LIST, FlagKind.NUMBER_LIST):
            return f"list[{literal}]"
        return literal
    match flag.kind:
        case FlagKind.BOOLEAN:
            return "bool"
        case FlagKind.STRING:
            return "str"
        case FlagKind.NUMBER:
            return "float"
        case FlagKind.STRING_LIST:
            return "list[str]"
        case FlagKind.NUMBER_LIST:
            return "list[float]"
        case _:
            assert_never(flag.kind)


def _flag_comment(flag: FlagSpec) -> str:
    text = flag.description
    if flag.default_raw:
        text = f"{text} (default {flag.default_raw})".strip()
    return " ".join(text.split())


def _property_name(flag: FlagSpec) -> str:
    return camelize_if_kebab(_normalize_long(flag.long))


def _is_plain_identifier(name: str) -> bool:
    return name.isidentifier() and not keyword.iskeyword(name)


def _emit_class(
    *, name: str, base: str, flags: Sequence[FlagSpec], lines: list[str]
) -> None:
    lines.append(f"class {name}({base}, total=False):")
    if not flags:
        lines.append("    pass")
    for flag in flags:
        comment = _flag_comment(flag)
        if comment:
            lines.append(f"    #: {comment}")
        lines.append(f"    {_property_name(flag)}: {_python_type(flag)}")
    lines.append("")
    lines.append("")


def _emit_functional(*, name: str, flags: Sequence[FlagSpec], lines: list[str]) -> None:
    lines.append(f"{name} = TypedDict(")
    lines.append(f"    {json.dumps(name)},")
    lines.append("    {")
    for flag in flags:
        comment = _flag_comment(flag)
        if comment:
            lines.append(f"        #: {comment}")
        lines.append(f"        {json.dumps(_property_name(flag))}: {_python_type(flag)},")
    lines.append("    },")
    lines.append("    total=False,")
    lines.append(")")
    lines.append("")
    lines.append("")


def emit_declarations(spec: CliSpec, *, prefix: str) -> str:
    """Render typed option declarations as Python source.

    One `TypedDict` for the global options, one per command extending it,
    a `Literal` of command strings and an `OPTIONS_FOR` lookup table.
    """
    spec = sorted_spec(spec)
    type_prefix = _pascal([prefix]) or "Cli"
    if type_prefix[0].isdigit():
        type_prefix = f"Cli{type_prefix}"
    global_name = f"{type_prefix}GlobalOptions"

    lines: list[str] = [
        "# AUTO-GENERATED by cobraspec. DO NOT EDIT.",
        f'"""Typed options for the `{prefix}` command line."""',
        "",
        "from __future__ import annotations",
        "",
        "from typing import Literal, TypedDict",
        "",
        "",
    ]

    global_plain = all(_is_plain_identifier(_property_name(f)) for f in spec.global_flags)
    if global_plain:
        _emit_class(name=global_name, base="TypedDict", flags=spec.global_flags, lines=lines)
    else:
        _emit_functional(name=global_name, flags=spec.global_flags, lines=lines)

    class_names: list[tuple[str, str]] = []
    for entry in spec.commands:
        name = f"{type_prefix}{_pascal(entry.command.split())}Options"
        class_names.append((entry.command, name))
        if all(_is_plain_identifier(_property_name(f)) for f in entry.flags):
            _emit_class(name=name, base=global_name, flags=entry.flags, lines=lines)
        else:
            merged = _sorted_flags([*spec.global_flags, *entry.flags])
            _emit_functional(name=name, flags=merged, lines=lines)

    if class_names:
        lines.append(f"{type_prefix}Command = Literal[")
        for command, _ in class_names:
            lines.append(f"    {json.dumps(command)},")
        lines.append("]")
    else:
        lines.append(f"{type_prefix}Command = str")
    lines.append("")
    lines.append("OPTIONS_FOR: dict[str, type] = {")
    for command, name in class_names:
        lines.append(f"    {json.dumps(command)}: {name},")
    lines.append("}")

    return "\n".join(lines) + "\n"


def _atomic_write(*, path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # Atomic write: write to temp file then rename
    temp_path = path.with_name(f"{path.name}.tmp.{os.getpid()}")
    try:
        temp_path.write_text(text)
        temp_path.replace(path)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


def write_artifacts(*, spec: CliSpec, out_dir: Path, name: str) -> tuple[Path, Path]:
    """Write `<name>.json` and `<name>_types.py`; return both paths."""
    stem = _artifact_stem(name)
    json_path = out_dir / f"{stem}.json"
    types_path = out_dir / f"{stem}_types.py"
    _atomic_write(path=json_path, text=schema_to_json(spec))
    _atomic_write(path=types_path, text=emit_declarations(spec, prefix=name))
    return json_path, types_path


def generate_artifacts(
    *,
    help_provider: HelpProvider,
    out_dir: Path,
    name: str,
    max_workers: int = 1,
) -> tuple[CliSpec, tuple[Path, Path]]:
    """Discover, assemble and write artifacts in one go."""
    result = discover_command_tree(help_provider=help_provider, max_workers=max_workers)
    spec = assemble_spec(commands=result.commands, global_flags=result.global_flags)
    return spec, write_artifacts(spec=spec, out_dir=out_dir, name=name)


# ---------------------------------------------------------------------------
# Argument-vector builder
# ---------------------------------------------------------------------------


def read_schema(*, path: Path) -> CliSpec:
    if not path.exists():
        raise SchemaError(f"Schema file not found: {path}")
    try:
        payload = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise SchemaError(f"Schema file is not valid JSON: {path}: {e}") from e
    try:
        return validate_cli_spec(payload=payload)
    except ValueError as e:
        raise SchemaError(f"Invalid schema in {path}: {e}") from e


class _SchemaCache:
    """Process-wide schema, read from disk at most once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._spec: CliSpec | None = None

    def get(self) -> CliSpec:
        spec = self._spec
        if spec is not None:
            return spec
        with self._lock:
            if self._spec is None:
                path = schema_path()
                if _verbose_level():
                    print(f"[cobraspec] loading schema: {path}", file=sys.stderr)
                self._spec = read_schema(path=path)
            return self._spec

    def override(self, spec: CliSpec) -> None:
        with self._lock:
            self._spec = spec

    def reset(self) -> None:
        with self._lock:
            self._spec = None


_SCHEMA_CACHE: Final[_SchemaCache] = _SchemaCache()


def load_schema() -> CliSpec:
    return _SCHEMA_CACHE.get()


def override_schema(spec: CliSpec | Mapping[str, Any]) -> None:
    """Use `spec` instead of reading the schema file."""
    if not isinstance(spec, CliSpec):
        spec = validate_cli_spec(payload=dict(spec))
    _SCHEMA_CACHE.override(spec)


def reset_schema_cache() -> None:
    _SCHEMA_CACHE.reset()


def to_kebab(name: str) -> str:
    """`someUnknownFlag` / `some_unknown_flag` -> `some-unknown-flag`."""
    kebab = re.sub(r"[A-Z]", lambda m: f"-{m.group(0).lower()}", name)
    return kebab.replace("_", "-")


def find_flag(flags: Iterable[FlagSpec], key: str) -> FlagSpec | None:
    kebab = to_kebab(key)
    for flag in flags:
        name = _normalize_long(flag.long)
        if name == kebab or name == key:
            return flag
    return None


def infer_kind(value: object) -> FlagKind:
    # bool is a subclass of int, so it has to be checked first.
    if isinstance(value, bool):
        return FlagKind.BOOLEAN
    if isinstance(value, (int, float)):
        return FlagKind.NUMBER
    if isinstance(value, (list, tuple)):
        first = value[0] if value else None
        if isinstance(first, (int, float)) and not isinstance(first, bool):
            return FlagKind.NUMBER_LIST
        return FlagKind.STRING_LIST
    return FlagKind.STRING


def _format_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_args(
    command: str,
    options: Mapping[str, Any] | None = None,
    *,
    positional: Sequence[str] | None = None,
    spec: CliSpec | None = None,
) -> list[str]:
    """Build an argv (without the executable) for `command`.

    Example: `build_args("build", {"theme": ["a", "b"], "minify": True})`
    gives `["build", "--theme", "a", "--theme", "b", "--minify"]`.

    Keys are matched against the schema by kebab-case or verbatim name, and
    a matched flag is emitted with the schema's exact spelling. Unknown keys
    are kebab-cased and their kind is inferred from the value.

    A scalar given for a list flag is emitted as a single occurrence.
    Boolean values for string or number flags render as `true`/`false`.
    """
    args = command.split()
    if positional:
        args.extend(str(p) for p in positional)

    if not options:
        return args

    if spec is None:
        spec = load_schema()
    all_flags = spec.flags_for(command)

    for key, value in options.items():
        if value is None:
            continue

        flag_spec = find_flag(all_flags, key)
        if flag_spec is not None:
            long = flag_spec.long
            flag_name = long if long.startswith("--") else f"--{long}"
            kind = flag_spec.kind
        else:
            flag_name = f"--{to_kebab(key)}"
            kind = infer_kind(value)

        match kind:
            case FlagKind.BOOLEAN:
                if value is True:
                    args.append(flag_name)
            case FlagKind.STRING | FlagKind.NUMBER:
                args.extend((flag_name, _format_value(value)))
            case FlagKind.STRING_LIST | FlagKind.NUMBER_LIST:
                items = value if isinstance(value, (list, tuple)) else [value]
                for item in items:
                    args.extend((flag_name, _format_value(item)))
            case _:
                assert_never(kind)

    return args


def run_command(
    command: str,
    options: Mapping[str, Any] | None = None,
    *,
    positional: Sequence[str] | None = None,
    executable: str | None = None,
    capture: bool = False,
) -> subprocess.CompletedProcess[str]:
    """Run the target CLI with arguments built from `options`.

    With `capture=False` the child inherits stdio. Raises
    `CommandFailedError` on a non-zero exit.
    """
    exe = executable or target_executable()
    argv = [exe, *build_args(command, options, positional=positional)]
    if _verbose_level():
        print(f"[cobraspec] exec: {' '.join(argv)}", file=sys.stderr)
    try:
        result = subprocess.run(argv, capture_output=capture, text=True)
    except (FileNotFoundError, PermissionError) as e:
        raise CommandFailedError(f"Could not run {exe}: {e}", returncode=None) from e

    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        message = f"{exe} {command} failed with exit code {result.returncode}"
        if stderr:
            message = f"{message}\n{stderr}"
        raise CommandFailedError(message, returncode=result.returncode, stderr=stderr)
    return result


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


def _parse_options_arg(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"--options is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ValueError("--options must be a JSON object")
    return payload


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Typed argv building for Cobra-style CLIs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="action")

    # discover command
    discover_p = subparsers.add_parser(
        "discover", help="Scan the target CLI's help output and write artifacts"
    )
    discover_p.add_argument("--executable", help="Target CLI (default from config)")
    discover_p.add_argument("--name", help="Artifact name and type prefix")
    discover_p.add_argument("--out-dir", type=Path, help="Output directory")
    discover_p.add_argument(
        "--max-workers",
        type=int,
        default=_setting_int(config_key="max_workers", default=1),
        help="Concurrent help calls per tree level",
    )
    discover_p.add_argument(
        "--print", action="store_true", help="Also print the schema JSON to stdout"
    )

    # parse-help command
    parse_p = subparsers.add_parser("parse-help", help="Parse a saved help page")
    parse_p.add_argument("file", type=Path, help="File containing help output")
    parse_p.add_argument("--path", nargs="+", help="Command path (e.g. mod clean)")

    # args command
    args_p = subparsers.add_parser("args", help="Print the argv for a command as JSON")
    args_p.add_argument("command", help='Command path, e.g. "mod clean"')
    args_p.add_argument("positional", nargs="*", help="Positional arguments")
    args_p.add_argument("--options", help="Options as a JSON object")
    args_p.add_argument("--schema", type=Path, help="Schema file (default from config)")

    # run command
    run_p = subparsers.add_parser("run", help="Run the target CLI with built argv")
    run_p.add_argument("command", help='Command path, e.g. "server"')
    run_p.add_argument("positional", nargs="*", help="Positional arguments")
    run_p.add_argument("--options", help="Options as a JSON object")
    run_p.add_argument("--schema", type=Path, help="Schema file (default from config)")
    run_p.add_argument("--executable", help="Target CLI (default from config)")

    args = parser.parse_args(argv)

    if args.action is None:
        parser.print_usage(sys.stderr)
        return 2

    try:
        if args.action == "discover":
            executable = args.executable or target_executable()
            name = args.name or target_name(executable=executable)
            out_dir = args.out_dir or cobraspec_data_dir()
            provider = SubprocessHelpProvider(
                executable=executable,
                timeout_s=_setting_int(config_key="help_timeout_s", default=30),
            )
            spec, paths = generate_artifacts(
                help_provider=provider,
                out_dir=out_dir,
                name=name,
                max_workers=max(1, args.max_workers),
            )
            for path in paths:
                print(f"Wrote {path}")
            if args.print:
                print(schema_to_json(spec), end="")
            return 0

        elif args.action == "parse-help":
            path_tokens = tuple(args.path) if args.path else (ROOT_TOKEN,)
            spec = parse_command_help(args.file.read_text(), path_tokens)
            print(json.dumps(spec.to_dict(), indent=2))
            return 0

        elif args.action in ("args", "run"):
            try:
                options = _parse_options_arg(args.options)
            except ValueError as e:
                print(str(e), file=sys.stderr)
                return 2
            if args.schema is not None:
                override_schema(read_schema(path=args.schema))

            if args.action == "args":
                built = build_args(args.command, options, positional=args.positional)
                print(json.dumps(built))
                return 0

            try:
                run_command(
                    args.command,
                    options,
                    positional=args.positional,
                    executable=args.executable,
                )
            except CommandFailedError as e:
                print(f"error: {e}", file=sys.stderr)
                return e.returncode or 1
            return 0

    except CobraspecError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    return 1


if __name__ == "__main__":
    sys.exit(main())
