import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv


DEFAULT_SETTINGS: Dict[str, Any] = {
    "openai": {
        "base_url": "https://api.openai.com/v1",
        "api_key": "",
        "model": "gpt-4o-mini",
        "timeout": 120.0,
    },
    "auth": {
        "jwks_url": "",
        "public_key": "",
        "secret": "",
        "issuer": "",
        "authorized_parties": [],
    },
    "server": {
        "static_dir": "static",
        "data_dir": "data",
        "log_level": "INFO",
        "cors_origins": [],
        "host": "0.0.0.0",
        "port": 8000,
    },
}


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _log_level(value: str) -> str:
    name = value.upper()
    if not isinstance(logging.getLevelName(name), int):
        raise ValueError(f"Unknown log level {value!r}")
    return name


# Environment variable -> (section, key, converter)
ENVIRONMENT_KEYS: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "OPENAI_API_KEY": ("openai", "api_key", str),
    "OPENAI_BASE_URL": ("openai", "base_url", str),
    "OPENAI_MODEL": ("openai", "model", str),
    "OPENAI_TIMEOUT": ("openai", "timeout", float),
    "CLERK_JWKS_URL": ("auth", "jwks_url", str),
    "AUTH_JWT_PUBLIC_KEY": ("auth", "public_key", str),
    "AUTH_JWT_SECRET": ("auth", "secret", str),
    "AUTH_JWT_ISSUER": ("auth", "issuer", str),
    "AUTH_AUTHORIZED_PARTIES": ("auth", "authorized_parties", _split_csv),
    "STATIC_DIR": ("server", "static_dir", str),
    "DATA_DIR": ("server", "data_dir", str),
    "LOG_LEVEL": ("server", "log_level", _log_level),
    "CORS_ORIGINS": ("server", "cors_origins", _split_csv),
    "HOST": ("server", "host", str),
    "PORT": ("server", "port", int),
}


class SettingsManager:
    """
    Builds the runtime configuration from defaults and environment variables.

    Secrets are treated as opaque strings: the manager only reports whether
    they are present, it never parses or validates them.
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[Path] = None,
    ) -> None:
        self.environ = environ
        self.env_file = env_file
        self._settings: Dict[str, Any] | None = None

    @property
    def settings(self) -> Dict[str, Any]:
        if self._settings is None:
            self._settings = self._load()
        return self._settings

    def reload(self) -> Dict[str, Any]:
        self._settings = self._load()
        return self._settings

    def _load(self) -> Dict[str, Any]:
        environ = self.environ
        if environ is None:
            # .env never overrides variables already exported by the platform.
            load_dotenv(self.env_file, override=False)
            environ = os.environ
        merged = json.loads(json.dumps(DEFAULT_SETTINGS))
        _deep_update(merged, overrides_from_environ(environ))
        return merged

    def missing_secrets(self) -> List[str]:
        missing: List[str] = []
        if not self.settings["openai"]["api_key"]:
            missing.append("OPENAI_API_KEY")
        auth = self.settings["auth"]
        if not (auth["jwks_url"] or auth["public_key"] or auth["secret"]):
            missing.append("CLERK_JWKS_URL")
        return missing


def overrides_from_environ(environ: Mapping[str, str]) -> Dict[str, Any]:
    """
    Translate recognised environment variables into a nested settings mapping.

    Blank values are ignored so an empty ``FOO=`` line in ``.env`` keeps the default.
    """
    overrides: Dict[str, Any] = {}
    for name, (section, key, convert) in ENVIRONMENT_KEYS.items():
        raw = environ.get(name)
        if raw is None or not raw.strip():
            continue
        try:
            value = convert(raw.strip())
        except ValueError as exc:
            raise ValueError(f"Invalid value for {name}: {raw!r}") from exc
        overrides.setdefault(section, {})[key] = value
    return overrides


def _deep_update(target: Dict[str, Any], source: Dict[str, Any]) -> None:
    """
    Recursively update a mapping, preserving nested structures.
    """
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_update(target[key], value)
        else:
            target[key] = value
