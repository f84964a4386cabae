from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

from rkeyfs.models import DEFAULT_COLLECTION
from rkeyfs.store import DEFAULT_LIST_LIMIT


CONFIG_FILENAME = ".rkeyfs.json"
DEFAULT_SERVICE_URL = "https://bsky.social"
TOKEN_ENV_VARS = ("RKEYFS_ACCESS_TOKEN", "ATP_ACCESS_TOKEN")
PROFILE_HOSTS = {"bsky.app", "www.bsky.app"}


@dataclass(slots=True)
class RkeyFsConfig:
    account_id: str
    service_url: str = DEFAULT_SERVICE_URL
    access_token: str = ""
    collection: str = DEFAULT_COLLECTION
    list_limit: int = DEFAULT_LIST_LIMIT


def config_path(base_dir: Path | None = None) -> Path:
    return (base_dir or Path.cwd()).resolve() / CONFIG_FILENAME


def load_config(base_dir: Path | None = None) -> RkeyFsConfig:
    path = config_path(base_dir)
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {path}. Run `rkeyfs init <account_id>` first."
        )

    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)

    list_limit = int(data.get("list_limit") or DEFAULT_LIST_LIMIT)
    if list_limit < 1:
        raise ValueError(f"list_limit must be >= 1 in {path}")

    return RkeyFsConfig(
        account_id=normalize_account_id(data["account_id"]),
        service_url=normalize_service_url(data.get("service_url") or DEFAULT_SERVICE_URL),
        access_token=data.get("access_token", ""),
        collection=data.get("collection") or DEFAULT_COLLECTION,
        list_limit=list_limit,
    )


def save_config(config: RkeyFsConfig, base_dir: Path | None = None) -> Path:
    path = config_path(base_dir)
    payload = asdict(config)
    payload["account_id"] = normalize_account_id(str(payload["account_id"]))
    payload["service_url"] = normalize_service_url(str(payload["service_url"]))
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2)
        fh.write("\n")
    return path


def default_token() -> str:
    for env_name in TOKEN_ENV_VARS:
        value = os.getenv(env_name, "").strip()
        if value:
            return value
    return ""


def normalize_service_url(service_url: str) -> str:
    value = (service_url or "").strip()
    if not value:
        return DEFAULT_SERVICE_URL
    if "://" not in value:
        value = f"https://{value}"
    return value.rstrip("/")


def normalize_account_id(account_id: str) -> str:
    value = (account_id or "").strip()
    if not value:
        return value

    # Handle form (`@alice.example.com`).
    if value.startswith("@"):
        return value[1:].lower()

    # Record URI form (`at://did:plc:abc/collection/rkey`).
    if value.startswith("at://"):
        return value[len("at://"):].split("/", 1)[0]

    if "://" not in value:
        if value.startswith("did:"):
            return value
        return value.lower()

    # Profile URLs (`https://bsky.app/profile/did:plc:abc`).
    parsed = urlparse(value)
    if parsed.hostname not in PROFILE_HOSTS:
        return value

    parts = [unquote(part) for part in parsed.path.split("/") if part]
    if len(parts) >= 2 and parts[0] == "profile":
        return normalize_account_id(parts[1])
    return value
