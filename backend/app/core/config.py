"""Service configuration.

Constraints:
- Configuration is read from the process environment once, at startup, into an
  immutable `Settings` value that is passed to every component.
- `.env` files (repo root, then `backend/`) are honoured without overriding
  variables already present in the environment.
- Invalid or missing values fail fast with RuntimeError.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from app.core.pool import SecretPool


DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./keyrelay.db"


def _parse_env_line(line: str) -> Optional[tuple[str, str]]:
    line = line.strip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    key, value = (part.strip() for part in line.split("=", 1))
    if key.startswith("export "):
        key = key[len("export "):].strip()
    if not key:
        return None
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return key, value


def env_file_candidates() -> list[Path]:
    # backend/app/core/config.py -> repo root is parents[3]
    repo_root = Path(__file__).resolve().parents[3]
    return [repo_root / ".env", repo_root / "backend" / ".env"]


def load_env_if_present(*, override: bool = False, paths: Optional[list[Path]] = None) -> list[Path]:
    """Load KEY=VALUE files into os.environ. Returns the files that were read."""
    loaded: list[Path] = []
    for p in paths if paths is not None else env_file_candidates():
        if not p.is_file():
            continue
        try:
            content = p.read_text(encoding="utf-8")
        except OSError:
            continue
        for raw in content.splitlines():
            parsed = _parse_env_line(raw)
            if parsed is None:
                continue
            k, v = parsed
            if override or k not in os.environ:
                os.environ[k] = v
        loaded.append(p)
    return loaded


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if not value:
        raise RuntimeError(f"Missing required env var {name}.")
    return value


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        n = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name}; must be integer.") from e
    if n <= 0:
        raise RuntimeError(f"{name} must be > 0.")
    return n


def _flag(env: Mapping[str, str], name: str) -> bool:
    raw = (env.get(name) or "").strip().lower()
    if raw in ("", "0", "false", "no", "off"):
        return False
    if raw in ("1", "true", "yes", "on"):
        return True
    raise RuntimeError(f"Invalid {name}; must be a boolean.")


def _parse_pool(raw: str) -> SecretPool:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise RuntimeError("Invalid KR_API_KEYS; must be a JSON array of strings.") from e
    if not isinstance(data, list):
        raise RuntimeError("Invalid KR_API_KEYS; must be a JSON array of strings.")
    try:
        return SecretPool(data)
    except ValueError as e:
        raise RuntimeError(f"Invalid KR_API_KEYS: {e}") from e


@dataclass(frozen=True, slots=True)
class Settings:
    psk: str = field(repr=False)
    admin_secret: str = field(repr=False)
    pool: SecretPool
    database_url: str = DEFAULT_DATABASE_URL
    secret_daily_limit: int = 90
    identity_daily_limit: int = 5
    identity_lifetime_limit: int = 50
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 15 * 60
    store_timeout_seconds: int = 5
    trust_proxy_headers: bool = False

    def __post_init__(self) -> None:
        if not self.psk:
            raise RuntimeError("Shared secret must not be empty.")
        if not self.admin_secret:
            raise RuntimeError("Admin secret must not be empty.")
        if self.admin_secret == self.psk:
            raise RuntimeError("KR_ADMIN_SECRET must differ from KR_PSK.")
        for name in (
            "secret_daily_limit",
            "identity_daily_limit",
            "identity_lifetime_limit",
            "rate_limit_requests",
            "rate_limit_window_seconds",
            "store_timeout_seconds",
        ):
            if getattr(self, name) <= 0:
                raise RuntimeError(f"{name} must be > 0.")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        if env is None:
            load_env_if_present()
            env = os.environ
        return cls(
            psk=_require(env, "KR_PSK"),
            admin_secret=_require(env, "KR_ADMIN_SECRET"),
            pool=_parse_pool(_require(env, "KR_API_KEYS")),
            database_url=env.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
            secret_daily_limit=_positive_int(env, "KR_SECRET_DAILY_LIMIT", 90),
            identity_daily_limit=_positive_int(env, "KR_IDENTITY_DAILY_LIMIT", 5),
            identity_lifetime_limit=_positive_int(env, "KR_IDENTITY_LIFETIME_LIMIT", 50),
            rate_limit_requests=_positive_int(env, "KR_RATE_LIMIT_REQUESTS", 100),
            rate_limit_window_seconds=_positive_int(env, "KR_RATE_LIMIT_WINDOW_SECONDS", 15 * 60),
            store_timeout_seconds=_positive_int(env, "KR_STORE_TIMEOUT_SECONDS", 5),
            trust_proxy_headers=_flag(env, "KR_TRUST_PROXY_HEADERS"),
        )
