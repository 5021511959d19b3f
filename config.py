# config.py: where things live and which bank items are linked
# -------------------------------------------------------
# Paths come from the environment (.env honoured); linked items and Plaid
# credentials live in a JSON file with every secret Fernet-encrypted.

from __future__ import annotations

import json
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from errors import ConfigurationError
from fernet_util import encrypt, decrypt

load_dotenv()

PLAID_HOSTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")


# -------------------------------------------------------------------
# Paths
# -------------------------------------------------------------------

def data_dir() -> Path:
    base = os.getenv("XDG_DATA_HOME") or os.path.join(Path.home(), ".local", "share")
    return Path(base) / "cashflow"


def config_dir() -> Path:
    base = os.getenv("XDG_CONFIG_HOME") or os.path.join(Path.home(), ".config")
    return Path(base) / "cashflow"


def db_path() -> Path:
    override = (os.getenv("CASHFLOW_DB_PATH") or "").strip()
    return Path(override) if override else data_dir() / "cashflow.db"


def config_path() -> Path:
    override = (os.getenv("CASHFLOW_CONFIG_PATH") or "").strip()
    return Path(override) if override else config_dir() / "config.json"


def plaid_env() -> str:
    env = (os.getenv("PLAID_ENV") or "sandbox").strip().lower()
    if env not in PLAID_HOSTS:
        raise ConfigurationError(f"Unknown PLAID_ENV {env!r}; expected one of {sorted(PLAID_HOSTS)}")
    return env


# -------------------------------------------------------------------
# Input validation shared by the engines
# -------------------------------------------------------------------

def validate_date(value: Optional[str], field: str = "date") -> Optional[str]:
    """YYYY-MM-DD or None; anything else is a ConfigurationError."""
    if value is None:
        return None
    s = str(value).strip()
    if not _DATE_RE.match(s):
        raise ConfigurationError(f"Invalid {field} {value!r}: expected YYYY-MM-DD")
    try:
        datetime.strptime(s, "%Y-%m-%d")
    except ValueError as e:
        raise ConfigurationError(f"Invalid {field} {value!r}: {e}") from e
    return s


def validate_month(value: str) -> str:
    s = str(value).strip()
    if not _MONTH_RE.match(s) or not 1 <= int(s[5:7]) <= 12:
        raise ConfigurationError(f"Invalid month {value!r}: expected YYYY-MM")
    return s


def compile_pattern(pattern: str) -> "re.Pattern[str]":
    """Case-insensitive regex; a bad pattern is the caller's mistake, not a crash."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except (re.error, TypeError) as e:
        raise ConfigurationError(f'Invalid regex pattern: "{pattern}" ({e})') from e


# -------------------------------------------------------------------
# Config file
# -------------------------------------------------------------------

def load_config() -> Optional[Dict]:
    path = config_path()
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {e}") from e


def save_config(cfg: Dict) -> None:
    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg, indent=2), encoding="utf-8")


def is_configured() -> bool:
    return load_config() is not None


def require_configured() -> Dict:
    cfg = load_config()
    if cfg is None:
        raise ConfigurationError("Not configured. Run `cashflow link` first.")
    return cfg


def init_config(client_id: str, secret: str, env: str = "sandbox") -> Dict:
    if env not in PLAID_HOSTS:
        raise ConfigurationError(f"Unknown Plaid environment {env!r}")
    cfg = load_config() or {"items": []}
    cfg.update({
        "plaid_client_id": encrypt(client_id),
        "plaid_secret": encrypt(secret),
        "plaid_env": env,
    })
    cfg.setdefault("items", [])
    save_config(cfg)
    return cfg


def get_plaid_credentials() -> Dict[str, str]:
    cfg = require_configured()
    if not cfg.get("plaid_client_id") or not cfg.get("plaid_secret"):
        raise ConfigurationError("Plaid credentials missing from config")
    return {
        "client_id": decrypt(cfg["plaid_client_id"]),
        "secret": decrypt(cfg["plaid_secret"]),
        "env": cfg.get("plaid_env") or plaid_env(),
    }


# -------------------------------------------------------------------
# Linked items
# -------------------------------------------------------------------

def add_item(item_id: str, access_token: str, institution_name: Optional[str] = None) -> None:
    """Register (or re-register) a linked item; the access token is stored encrypted."""
    cfg = require_configured()
    items = [i for i in cfg.get("items", []) if i.get("item_id") != item_id]
    items.append({
        "item_id": item_id,
        "access_token": encrypt(access_token),
        "institution_name": institution_name,
        "added_at": datetime.now(timezone.utc).isoformat(),
    })
    cfg["items"] = items
    save_config(cfg)


def remove_item(item_id: str) -> bool:
    cfg = load_config()
    if cfg is None:
        return False
    before = len(cfg.get("items", []))
    cfg["items"] = [i for i in cfg.get("items", []) if i.get("item_id") != item_id]
    save_config(cfg)
    return len(cfg["items"]) < before


def get_decrypted_access_tokens() -> List[Dict[str, str]]:
    cfg = require_configured()
    return [
        {"item_id": i["item_id"], "access_token": decrypt(i["access_token"])}
        for i in cfg.get("items", [])
    ]
