from __future__ import annotations

import os

import pytest

from app.core.config import DEFAULT_DATABASE_URL, Settings, _parse_env_line, load_env_if_present


BASE_ENV = {
    "KR_PSK": "psk",
    "KR_ADMIN_SECRET": "admin",
    "KR_API_KEYS": '["sk-1", "sk-2"]',
}


def test_from_env_applies_defaults():
    settings = Settings.from_env(BASE_ENV)

    assert len(settings.pool) == 2
    assert settings.database_url == DEFAULT_DATABASE_URL
    assert (settings.secret_daily_limit, settings.identity_daily_limit, settings.identity_lifetime_limit) == (90, 5, 50)
    assert (settings.rate_limit_requests, settings.rate_limit_window_seconds) == (100, 900)
    assert settings.trust_proxy_headers is False


def test_from_env_reads_overrides():
    settings = Settings.from_env(
        {
            **BASE_ENV,
            "DATABASE_URL": "postgresql+psycopg://u:p@db:5432/keyrelay",
            "KR_SECRET_DAILY_LIMIT": "10",
            "KR_IDENTITY_DAILY_LIMIT": "2",
            "KR_IDENTITY_LIFETIME_LIMIT": "20",
        }
    )

    assert settings.database_url.startswith("postgresql+psycopg://")
    assert (settings.secret_daily_limit, settings.identity_daily_limit, settings.identity_lifetime_limit) == (10, 2, 20)


@pytest.mark.parametrize(
    "overrides",
    [
        {"KR_PSK": ""},
        {"KR_ADMIN_SECRET": "psk"},
        {"KR_API_KEYS": "[]"},
        {"KR_API_KEYS": "sk-1,sk-2"},
        {"KR_API_KEYS": '{"a": "sk-1"}'},
        {"KR_API_KEYS": '["sk-1", "sk-1"]'},
        {"KR_SECRET_DAILY_LIMIT": "0"},
        {"KR_IDENTITY_DAILY_LIMIT": "five"},
        {"KR_TRUST_PROXY_HEADERS": "maybe"},
    ],
)
def test_invalid_configuration_fails_fast(overrides):
    with pytest.raises(RuntimeError):
        Settings.from_env({**BASE_ENV, **overrides})


def test_secrets_are_kept_out_of_repr():
    text = repr(Settings.from_env(BASE_ENV))

    for secret in ("psk", "admin", "sk-1", "sk-2"):
        assert f"'{secret}'" not in text


@pytest.mark.parametrize(
    "line, expected",
    [
        ("KR_PSK=abc", ("KR_PSK", "abc")),
        ("export KR_PSK = 'abc'", ("KR_PSK", "abc")),
        ("KR_API_KEYS='[\"a\"]'", ("KR_API_KEYS", '["a"]')),
        ("# comment", None),
        ("", None),
        ("no-equals", None),
    ],
)
def test_parse_env_line(line, expected):
    assert _parse_env_line(line) == expected


def test_env_file_does_not_override_process_env(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("KR_TEST_ONLY_A=from-file\nKR_TEST_ONLY_B=from-file\n", encoding="utf-8")
    monkeypatch.setenv("KR_TEST_ONLY_A", "from-process")
    monkeypatch.delenv("KR_TEST_ONLY_B", raising=False)

    loaded = load_env_if_present(paths=[env_file, tmp_path / "missing.env"])

    assert loaded == [env_file]
    assert os.environ["KR_TEST_ONLY_A"] == "from-process"
    assert os.environ["KR_TEST_ONLY_B"] == "from-file"
    monkeypatch.delenv("KR_TEST_ONLY_B")


@pytest.mark.parametrize("raw, expected", [("1", True), ("true", True), ("Yes", True), ("0", False), ("off", False)])
def test_trust_proxy_headers_flag(raw, expected):
    assert Settings.from_env({**BASE_ENV, "KR_TRUST_PROXY_HEADERS": raw}).trust_proxy_headers is expected
