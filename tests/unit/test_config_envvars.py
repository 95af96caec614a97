"""Unit tests for environment variable handling."""

import json

import pytest

from apphosting_preparer.config.envvars import (
    FIREBASE_CONFIG_VAR,
    FIREBASE_WEBAPP_CONFIG_VAR,
    firebase_env_vars,
    merge_env_vars,
    parse_server_side_env_vars,
    render_dotenv,
    validate_user_env_vars,
)
from apphosting_preparer.config.models import Availability, EnvVar
from apphosting_preparer.core.errors import FahError, Reason


def var(name: str, value: str = "v") -> EnvVar:
    return EnvVar(variable=name, value=value)


def read_dotenv_value(line: str) -> str:
    """Decode one KEY="value" line the way godotenv reads double quoted values.

    Unescaped $ would be expanded by the reader, so it is rejected here.
    """
    _, _, quoted = line.rstrip("\n").partition("=")
    assert quoted.startswith('"') and quoted.endswith('"')
    body = quoted[1:-1]
    result = []
    i = 0
    while i < len(body):
        char = body[i]
        if char == "\\":
            following = body[i + 1]
            result.append({"n": "\n", "r": "\r"}.get(following, following))
            i += 2
            continue
        assert char not in '$`"', f"unescaped {char!r} in {line!r}"
        result.append(char)
        i += 1
    return "".join(result)


class TestValidateUserEnvVars:
    """Tests for validate_user_env_vars function."""

    def test_valid(self) -> None:
        """Test that ordinary names pass."""
        validate_user_env_vars([var("API_URL"), var("DEBUG")], "apphosting.yaml")

    @pytest.mark.parametrize(
        "name", ["PORT", "K_SERVICE", FIREBASE_CONFIG_VAR, "X_FIREBASE_TOKEN", "X_GOOGLE_ID"]
    )
    def test_reserved(self, name: str) -> None:
        """Test that reserved names are rejected."""
        with pytest.raises(FahError, match="is reserved") as exc_info:
            validate_user_env_vars([var(name)], "apphosting.yaml")
        assert exc_info.value.reason == Reason.INVALID_APPHOSTING_YAML

    def test_duplicate(self) -> None:
        """Test that repeated names are rejected."""
        with pytest.raises(FahError, match="more than once"):
            validate_user_env_vars([var("A"), var("A")], "apphosting.yaml")


class TestMergeEnvVars:
    """Tests for merge_env_vars function."""

    def test_override_wins(self) -> None:
        """Test that override values replace base values in place."""
        merged = merge_env_vars([var("A", "1"), var("B", "2")], [var("A", "9")])
        assert [(v.variable, v.value) for v in merged] == [("A", "9"), ("B", "2")]

    def test_new_vars_appended(self) -> None:
        """Test that variables only in override are appended."""
        merged = merge_env_vars([var("A")], [var("C"), var("B")])
        assert [v.variable for v in merged] == ["A", "C", "B"]

    def test_empty(self) -> None:
        """Test merging empty lists."""
        assert merge_env_vars([], []) == []


class TestParseServerSideEnvVars:
    """Tests for parse_server_side_env_vars function."""

    def test_valid(self) -> None:
        """Test parsing a list of variables."""
        raw = json.dumps(
            [
                {"variable": "A", "value": "1"},
                {"variable": "B", "secret": "s", "availability": ["RUNTIME"]},
            ]
        )
        env = parse_server_side_env_vars(raw)
        assert env[0].value == "1"
        assert env[1].secret == "s"
        assert env[1].availability == [Availability.RUNTIME]

    def test_empty_list(self) -> None:
        """Test that an empty list is valid."""
        assert parse_server_side_env_vars("[]") == []

    @pytest.mark.parametrize("raw", ["not json", '{"variable": "A"}', '[{"variable": "A"}]'])
    def test_invalid(self, raw: str) -> None:
        """Test that malformed values are user errors."""
        with pytest.raises(FahError) as exc_info:
            parse_server_side_env_vars(raw)
        assert exc_info.value.reason == Reason.INVALID_ENV_VARS

    def test_duplicate(self) -> None:
        """Test that repeated names are rejected."""
        raw = json.dumps([{"variable": "A", "value": "1"}, {"variable": "A", "value": "2"}])
        with pytest.raises(FahError, match="more than once"):
            parse_server_side_env_vars(raw)


class TestFirebaseEnvVars:
    """Tests for firebase_env_vars function."""

    def test_none_set(self) -> None:
        """Test that nothing is added without config."""
        assert firebase_env_vars("", "") == []

    def test_both_set(self) -> None:
        """Test the availability of both Firebase variables."""
        env = firebase_env_vars('{"projectId": "p1"}', '{"appId": "a"}')
        assert [v.variable for v in env] == [FIREBASE_CONFIG_VAR, FIREBASE_WEBAPP_CONFIG_VAR]
        assert env[0].availability == [Availability.BUILD, Availability.RUNTIME]
        assert env[1].availability == [Availability.BUILD]
        assert env[0].value == '{"projectId": "p1"}'

    def test_invalid_json(self) -> None:
        """Test that invalid JSON is a user error."""
        with pytest.raises(FahError, match="not valid JSON") as exc_info:
            firebase_env_vars("{oops", "")
        assert exc_info.value.reason == Reason.INVALID_FIREBASE_CONFIG

    def test_not_an_object(self) -> None:
        """Test that JSON must be an object."""
        with pytest.raises(FahError, match="must be a JSON object"):
            firebase_env_vars("", "[1, 2]")


class TestRenderDotenv:
    """Tests for render_dotenv function."""

    def test_simple(self) -> None:
        """Test rendering plain values."""
        assert render_dotenv({"A": "1", "B": "two"}) == 'A="1"\nB="two"\n'

    def test_escaping(self) -> None:
        """Test that quotes, backslashes and newlines are escaped."""
        rendered = render_dotenv({"A": 'say "hi"\\now\nnext'})
        assert rendered == 'A="say \\"hi\\"\\\\now\\nnext"\n'

    def test_expansion_characters_escaped(self) -> None:
        """Test that $, backtick and ! can't trigger expansion when read back."""
        rendered = render_dotenv({"PW": "pa${HOME}ss`id`!"})
        assert rendered == 'PW="pa\\${HOME}ss\\`id\\`\\!"\n'

    @pytest.mark.parametrize(
        "value",
        ["pa${HOME}ss", "$USER", 'q"uo\\te', "multi\nline\r", "`cmd` !hist", "plain"],
    )
    def test_round_trip(self, value: str) -> None:
        """Test that a double quote reader gets the original value back."""
        line = render_dotenv({"KEY": value})
        assert read_dotenv_value(line) == value

    def test_empty(self) -> None:
        """Test rendering no variables."""
        assert render_dotenv({}) == ""
