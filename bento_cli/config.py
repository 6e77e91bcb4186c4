"""
Credential profile store.

The whole file is read once (lazily, then cached) and rewritten as a whole
on every change, with 0600 permissions:

    {"version": 1, "current": "prod",
     "profiles": {"prod": {"publishableKey": ..., "secretKey": ...,
                           "siteUuid": ..., "createdAt": ..., "updatedAt": ...}}}
"""

import json
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)

CONFIG_VERSION = 1
PROFILE_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class ConfigError(Exception):
    pass


@dataclass
class Profile:
    publishable_key: str
    secret_key: str
    site_uuid: str
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "publishableKey": self.publishable_key,
            "secretKey": self.secret_key,
            "siteUuid": self.site_uuid,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


def default_config_path() -> str:
    explicit = os.environ.get("BENTO_CONFIG_PATH")
    if explicit:
        return explicit
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, "bento", "config.json")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _valid_timestamp(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def _normalize_profile(name: str, raw: Any) -> Profile:
    if not isinstance(raw, dict):
        raise ConfigError(f'Profile "{name}" is malformed.')

    # Legacy single-key format: {apiKey, siteId}
    if "apiKey" in raw or "siteId" in raw:
        api_key = raw.get("apiKey")
        site_id = raw.get("siteId")
        if not api_key or not site_id:
            raise ConfigError(f'Profile "{name}" has incomplete credentials.')
        raw = {"publishableKey": api_key, "secretKey": api_key, "siteUuid": site_id,
               "createdAt": raw.get("createdAt"), "updatedAt": raw.get("updatedAt")}

    creds = [raw.get(k) for k in ("publishableKey", "secretKey", "siteUuid")]
    if not any(creds):
        raise ConfigError(f'Profile "{name}" is missing credentials.')
    if not all(isinstance(c, str) and c for c in creds):
        raise ConfigError(f'Profile "{name}" has incomplete credentials.')

    now = _now()
    created = raw.get("createdAt") if _valid_timestamp(raw.get("createdAt")) else now
    updated = raw.get("updatedAt") if _valid_timestamp(raw.get("updatedAt")) else created
    return Profile(creds[0], creds[1], creds[2], created, updated)


class ConfigManager:
    def __init__(self, path: Optional[str] = None):
        self.path = path or default_config_path()
        self._current: Optional[str] = None
        self._profiles: Optional[Dict[str, Profile]] = None

    def load(self) -> Dict[str, Any]:
        """Load (or create) the config file. Cached after the first call."""
        if self._profiles is not None:
            return self.snapshot()

        if not os.path.exists(self.path):
            log.debug("No config at %s, creating default", self.path)
            self._current, self._profiles = None, {}
            self.save()
            return self.snapshot()

        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as ex:
            raise ConfigError(f"Config file {self.path} is not valid JSON: {ex}") from ex
        except OSError as ex:
            raise ConfigError(f"Cannot read config file {self.path}: {ex}") from ex

        if not isinstance(raw, dict):
            raise ConfigError(f"Config file {self.path} must contain a JSON object.")
        if raw.get("version", CONFIG_VERSION) != CONFIG_VERSION:
            raise ConfigError(f"Unsupported config version: {raw.get('version')}")

        profiles_raw = raw.get("profiles") or {}
        if not isinstance(profiles_raw, dict):
            raise ConfigError("Config 'profiles' must be an object.")

        profiles = {name: _normalize_profile(name, p) for name, p in profiles_raw.items()}
        current = raw.get("current")
        self._current = current if current in profiles else None
        self._profiles = profiles
        return self.snapshot()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "version": CONFIG_VERSION,
            "current": self._current,
            "profiles": {name: p.to_dict() for name, p in (self._profiles or {}).items()},
        }

    def save(self) -> None:
        if self._profiles is None:
            raise ConfigError("Config must be loaded before it can be saved.")
        directory = os.path.dirname(self.path)
        try:
            if directory:
                os.makedirs(directory, mode=0o700, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.snapshot(), f, indent=2)
                f.write("\n")
            os.chmod(self.path, 0o600)
        except OSError as ex:
            raise ConfigError(f"Cannot write config file {self.path}: {ex}") from ex

    # ---------- Profiles ----------
    def _profiles_loaded(self) -> Dict[str, Profile]:
        self.load()
        return self._profiles

    def list_profiles(self) -> List[str]:
        return list(self._profiles_loaded())

    def has_profile(self, name: str) -> bool:
        return name in self._profiles_loaded()

    def get_profile(self, name: str) -> Optional[Profile]:
        return self._profiles_loaded().get(name)

    def get_current_profile_name(self) -> Optional[str]:
        self.load()
        return self._current

    def get_current_profile(self) -> Optional[Profile]:
        name = self.get_current_profile_name()
        return self._profiles.get(name) if name else None

    def set_profile(self, name: str, publishable_key: str, secret_key: str, site_uuid: str) -> Profile:
        if not name or not name.strip():
            raise ConfigError("Profile name cannot be empty.")
        if not PROFILE_NAME_RE.match(name):
            raise ConfigError(
                f'Invalid profile name "{name}". Use only letters, numbers, hyphens and underscores.'
            )
        profiles = self._profiles_loaded()
        now = _now()
        existing = profiles.get(name)
        profile = Profile(publishable_key, secret_key, site_uuid,
                          existing.created_at if existing else now, now)
        profiles[name] = profile
        self.save()
        return profile

    def use_profile(self, name: str) -> None:
        if not self.has_profile(name):
            raise ConfigError(f'Profile "{name}" not found.')
        self._current = name
        self.save()

    def remove_profile(self, name: str) -> bool:
        profiles = self._profiles_loaded()
        if name not in profiles:
            return False
        del profiles[name]
        if self._current == name:
            self._current = None
        self.save()
        return True
