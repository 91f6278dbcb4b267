"""Configuration and account loading."""

__version__ = "0.1.0"

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

_stderr_print = lambda *a, **kw: print(*a, **kw, file=sys.stderr)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        _stderr_print(f"Invalid {name}={raw!r}, falling back to {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        _stderr_print(f"Invalid {name}={raw!r}, falling back to {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


CONFIG = {
    "port": _env_int("PORT", 3000),
    "serve_status": _env_bool("FLEET_SERVE_STATUS", False),
    "storage_dir": os.getenv("FLEET_STORAGE_DIR", "memory"),
    "accounts_file": os.getenv("FLEET_ACCOUNTS_FILE", "config/accounts.json"),
    # Scheduling
    "max_concurrent_sessions": _env_int("FLEET_MAX_CONCURRENT_SESSIONS", 2),
    "cycle_interval_seconds": _env_float("FLEET_CYCLE_INTERVAL_SECONDS", 30.0),
    "jitter_max_seconds": _env_float("FLEET_JITTER_MAX_SECONDS", 5.0),
    "quota_window_seconds": _env_float("FLEET_QUOTA_WINDOW_SECONDS", 3600.0),
    # Profile locks
    "lock_max_attempts": _env_int("FLEET_LOCK_MAX_ATTEMPTS", 5),
    "lock_backoff_base_seconds": _env_float("FLEET_LOCK_BACKOFF_BASE_SECONDS", 8.0),
    "lock_backoff_step_seconds": _env_float("FLEET_LOCK_BACKOFF_STEP_SECONDS", 2.0),
    "lock_stale_after_seconds": _env_float("FLEET_LOCK_STALE_AFTER_SECONDS", 600.0),
    "lock_graceful_attempts": _env_int("FLEET_LOCK_GRACEFUL_ATTEMPTS", 2),
    # Collaborators
    "action_session_factory": os.getenv("FLEET_ACTION_SESSION_FACTORY", "").strip(),
    "discord_webhook_url": os.getenv("FLEET_DISCORD_WEBHOOK_URL", "").strip(),
}

# Hourly limits used when neither the account nor its defaults name one
DEFAULT_LIMITS = {"likes": 10, "comments": 5}
DEFAULT_BEHAVIOR = {"likes": True, "comments": True}

# Legacy accounts.json keys -> action type
_LEGACY_BEHAVIOR_KEYS = {"enableLikes": "likes", "enableComments": "comments", "enableDms": "dms"}
_LEGACY_LIMIT_KEYS = {"likesPerHour": "likes", "commentsPerHour": "comments", "dmsPerHour": "dms"}


# ── Typed config ─────────────────────────────────────────────


@dataclass
class SchedulerConfig:
    max_concurrent_sessions: int = 2
    cycle_interval_seconds: float = 30.0
    jitter_max_seconds: float = 5.0
    quota_window_seconds: float = 3600.0


@dataclass
class LockConfig:
    max_attempts: int = 5
    backoff_base_seconds: float = 8.0
    backoff_step_seconds: float = 2.0
    stale_after_seconds: float = 600.0
    graceful_attempts: int = 2


@dataclass
class NotifyConfig:
    discord_webhook_url: str = ""


@dataclass
class AccountConfig:
    """One managed account and the behavior it is allowed to perform."""

    account_id: str
    username: str = ""
    enabled: bool = True
    profile_dir: str = ""
    proxy: Optional[str] = None
    behavior: Dict[str, bool] = field(default_factory=lambda: dict(DEFAULT_BEHAVIOR))
    limits: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_LIMITS))
    hashtags: List[str] = field(default_factory=list)
    hashtag_mix: float = 0.5
    sleep_start_hour: Optional[int] = None
    sleep_end_hour: Optional[int] = None

    @property
    def tracker_id(self) -> str:
        """Key used for the persisted activity history."""
        if self.profile_dir:
            return Path(self.profile_dir).name
        return self.username or self.account_id

    def enabled_action_types(self) -> List[str]:
        return [t for t, on in self.behavior.items() if on]

    def limit_for(self, action_type: str) -> int:
        return int(self.limits.get(action_type, DEFAULT_LIMITS.get(action_type, 0)))


@dataclass
class AppConfig:
    """Typed configuration assembled from the environment."""

    port: int = 3000
    serve_status: bool = False
    storage_dir: str = "memory"
    accounts_file: str = "config/accounts.json"
    action_session_factory: str = ""
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create AppConfig from environment variables."""
        return cls(
            port=CONFIG["port"],
            serve_status=CONFIG["serve_status"],
            storage_dir=CONFIG["storage_dir"],
            accounts_file=CONFIG["accounts_file"],
            action_session_factory=CONFIG["action_session_factory"],
            scheduler=SchedulerConfig(
                max_concurrent_sessions=CONFIG["max_concurrent_sessions"],
                cycle_interval_seconds=CONFIG["cycle_interval_seconds"],
                jitter_max_seconds=CONFIG["jitter_max_seconds"],
                quota_window_seconds=CONFIG["quota_window_seconds"],
            ),
            lock=LockConfig(
                max_attempts=CONFIG["lock_max_attempts"],
                backoff_base_seconds=CONFIG["lock_backoff_base_seconds"],
                backoff_step_seconds=CONFIG["lock_backoff_step_seconds"],
                stale_after_seconds=CONFIG["lock_stale_after_seconds"],
                graceful_attempts=CONFIG["lock_graceful_attempts"],
            ),
            notify=NotifyConfig(discord_webhook_url=CONFIG["discord_webhook_url"]),
        )


# ── Account loading ──────────────────────────────────────────


def _merge_flags(raw: Dict[str, Any], legacy: Dict[str, str], cast) -> Dict[str, Any]:
    merged = {}
    for key, value in raw.items():
        merged[legacy.get(key, key)] = cast(value)
    return merged


def account_from_dict(item: Dict[str, Any]) -> AccountConfig:
    """Build an AccountConfig from one accounts.json entry."""
    if not isinstance(item, dict) or not item.get("id") and not item.get("account_id"):
        raise ValueError(f"account entry without id: {item!r}")

    settings = item.get("settings") or {}
    behavior = dict(DEFAULT_BEHAVIOR)
    behavior.update(_merge_flags(settings.get("behavior") or item.get("behavior") or {},
                                 _LEGACY_BEHAVIOR_KEYS, bool))
    limits = dict(DEFAULT_LIMITS)
    limits.update(_merge_flags(settings.get("limits") or item.get("limits") or {},
                               _LEGACY_LIMIT_KEYS, int))

    sleep = settings.get("sleep") or {}
    return AccountConfig(
        account_id=str(item.get("account_id") or item.get("id")),
        username=str(item.get("username", "")),
        enabled=bool(item.get("enabled", True)),
        profile_dir=str(item.get("profile_dir") or item.get("userDataDir") or ""),
        proxy=item.get("proxy") or None,
        behavior=behavior,
        limits=limits,
        hashtags=list(settings.get("hashtags") or []),
        hashtag_mix=float(settings.get("hashtagMix", settings.get("hashtag_mix", 0.5))),
        sleep_start_hour=sleep.get("start"),
        sleep_end_hour=sleep.get("end"),
    )


def load_accounts(path: str) -> List[AccountConfig]:
    """Load accounts from a JSON list. Malformed entries are skipped."""
    file_path = Path(path)
    if not file_path.exists():
        _stderr_print(f"Accounts file not found: {file_path}")
        return []
    raw = json.loads(file_path.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"{file_path} must contain a JSON list of accounts")

    accounts = []
    seen = set()
    for item in raw:
        try:
            account = account_from_dict(item)
        except (ValueError, TypeError) as e:
            _stderr_print(f"Skipping account entry: {e}")
            continue
        if account.account_id in seen:
            _stderr_print(f"Skipping duplicate account id {account.account_id!r}")
            continue
        seen.add(account.account_id)
        accounts.append(account)
    return accounts
