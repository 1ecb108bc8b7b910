import pytest

import cobraspec
from cobraspec import FlagKind, LineKind


def test_parse_flag_line_with_short_and_type():
    flag = cobraspec.parse_flag_line(
        "  -b, --baseURL string             hostname (and path) to the root"
    )
    assert flag is not None
    assert flag.short == "-b"
    assert flag.long == "--baseURL"
    assert flag.type_token == "string"
    assert flag.kind is FlagKind.STRING
    assert flag.description == "hostname (and path) to the root"


def test_boolean_description_word_is_not_a_type():
    flag = cobraspec.parse_flag_line(
        "  -D, --buildDrafts                include content marked as draft"
    )
    assert flag is not None
    assert flag.type_token is None
    assert flag.kind is FlagKind.BOOLEAN
    assert flag.description == "include content marked as draft"


def test_single_word_description_without_type():
    flag = cobraspec.parse_flag_line("      --quiet   quiet")
    assert flag is not None
    assert flag.long == "--quiet"
    assert flag.type_token is None
    assert flag.description == "quiet"


def test_flag_line_extracts_default_and_enum():
    flag = cobraspec.parse_flag_line(
        "      --logLevel string   log level (debug|info|warn|error) (default \"warn\")"
    )
    assert flag is not None
    assert flag.enum == ("debug", "info", "warn", "error")
    assert flag.default_raw == '"warn"'
    assert flag.description == "log level"


def test_reparsing_the_same_line_is_stable():
    line = "  -p, --port int                   port on which the server will listen (default 1313)"
    assert cobraspec.parse_flag_line(line) == cobraspec.parse_flag_line(line)


def test_parse_flag_line_rejects_bare_long_flag():
    assert cobraspec.parse_flag_line("--minify") is None
    assert cobraspec.parse_flag_line("Usage:") is None


@pytest.mark.parametrize(
    ("token", "kind"),
    [
        (None, FlagKind.BOOLEAN),
        ("bool", FlagKind.BOOLEAN),
        ("Boolean", FlagKind.BOOLEAN),
        ("string", FlagKind.STRING),
        ("file", FlagKind.STRING),
        ("duration", FlagKind.STRING),
        ("strings", FlagKind.STRING_LIST),
        ("int", FlagKind.NUMBER),
        ("uint64", FlagKind.NUMBER),
        ("float64", FlagKind.NUMBER),
        ("ints", FlagKind.NUMBER_LIST),
        ("stringToString", FlagKind.STRING),
    ],
)
def test_map_type_token_to_kind(token, kind):
    assert cobraspec.map_type_token_to_kind(token) is kind


def test_extract_default_forms():
    assert cobraspec.extract_default("append port (default true)") == (
        "append port",
        "true",
    )
    assert cobraspec.extract_default('bind address (default "127.0.0.1")') == (
        "bind address",
        '"127.0.0.1"',
    )
    assert cobraspec.extract_default("config file (Default is hugo.yaml|json|toml)") == (
        "config file",
        "hugo.yaml|json|toml",
    )
    assert cobraspec.extract_default("port (default -1)") == ("port", "-1")
    assert cobraspec.extract_default("no default here") == ("no default here", None)


def test_extract_default_is_idempotent():
    for text in (
        "append port (default true)",
        "stacked (default 1) (default 2)",
        "plain text",
    ):
        cleaned, _ = cobraspec.extract_default(text)
        assert cobraspec.extract_default(cleaned) == (cleaned, None)


def test_extract_default_only_strips_trailing_clause():
    text = "value (default 3) used for retries"
    assert cobraspec.extract_default(text) == (text, None)


def test_extract_enum_accepts_simple_tokens():
    cleaned, enum = cobraspec.extract_enum("log level (debug|info|warn|error) to use")
    assert enum == ("debug", "info", "warn", "error")
    assert cleaned == "log level to use"


def test_extract_enum_rejects_non_enum_parentheticals():
    for text in (
        "see (https://example.com/a|b c)",
        "single (only|)",
        "no pipes (here)",
        "spaced (one two|three)",
    ):
        assert cobraspec.extract_enum(text) == (text, None)


def test_extract_enum_only_considers_first_piped_parenthetical():
    text = "x (a b|c) then (d|e)"
    assert cobraspec.extract_enum(text) == (text, None)


def test_classify_line():
    assert cobraspec.classify_line("Flags:") is LineKind.SECTION_HEADER
    assert cobraspec.classify_line("Global Flags:  ") is LineKind.SECTION_HEADER
    assert cobraspec.classify_line("") is LineKind.BLANK
    assert cobraspec.classify_line("   ") is LineKind.BLANK
    assert (
        cobraspec.classify_line('Use "hugo [command] --help" for more information.')
        is LineKind.USE_HINT
    )
    assert cobraspec.classify_line("      --minify   minify output") is LineKind.FLAG
    assert cobraspec.classify_line('\t\t"ms", "s". (default "100ms")') is LineKind.CONTINUATION
    assert cobraspec.classify_line("hugo is the main command.") is LineKind.OTHER
