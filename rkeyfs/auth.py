from __future__ import annotations

import os
from pathlib import Path

from rkeyfs.config import TOKEN_ENV_VARS


def resolve_access_token(config_token: str | None = None) -> str | None:
    """Resolve a record store access token from env, config, or a local token file."""
    for env_name in TOKEN_ENV_VARS:
        value = os.getenv(env_name, "").strip()
        if value:
            return value

    if config_token and config_token.strip():
        return config_token.strip()

    for path in _token_file_candidates():
        try:
            if path.exists() and path.is_file():
                value = path.read_text(encoding="utf-8").strip()
                if value:
                    return value
        except OSError:
            continue

    return None


def _token_file_candidates() -> list[Path]:
    home = Path.home()
    return [
        home / ".config" / "rkeyfs" / "token",
        home / ".rkeyfs" / "token",
    ]


def missing_token_hint() -> str:
    return (
        "Writes require an access token for the record store. Set `RKEYFS_ACCESS_TOKEN`, "
        "save one to `~/.config/rkeyfs/token`, or update `.rkeyfs.json`. "
        "rkeyfs does not log in by itself; issue the token with your account's client."
    )
