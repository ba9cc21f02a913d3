import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import toml
from rich.prompt import Prompt

from blimp.src.errors import ConfigError

DEFAULT_KEY_DIR = Path.home() / ".appstoreconnect" / "private_keys"


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    env_path = os.environ.get("BLIMP_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".blimp" / "config.toml"


def load_config() -> Dict[str, Any]:
    """Load configuration from TOML file."""
    config_path = get_config_path()
    if not config_path.exists():
        return {}

    try:
        return toml.load(config_path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigError(f"Failed to load config {config_path}: {e}") from e


def _section(config: Optional[Dict[str, Any]], name: str) -> Dict[str, Any]:
    if config is None:
        config = load_config()
    return config.get(name, {})


@dataclass
class AppStoreSettings:
    key_id: Optional[str]
    issuer_id: Optional[str]
    key_dir: Path


@dataclass
class StorageSettings:
    path: Path
    remote: Optional[str] = None
    push: bool = False


@dataclass
class UploadSettings:
    max_concurrent_chunks: int = 4
    max_retries: int = 3
    retry_base_delay: float = 0.5
    poll_interval: float = 30
    max_poll_attempts: int = 60


@dataclass
class ProcessingSettings:
    poll_interval: float = 30
    max_attempts: int = 120


def get_appstore_settings(config: Optional[Dict[str, Any]] = None) -> AppStoreSettings:
    """App Store Connect API key settings, environment variables take precedence"""
    section = _section(config, "appstore")
    key_dir = os.environ.get("APPSTORE_CONNECT_API_KEY_DIR") or section.get("key_dir")
    return AppStoreSettings(
        key_id=os.environ.get("APPSTORE_CONNECT_API_KEY_ID") or section.get("key_id"),
        issuer_id=os.environ.get("APPSTORE_CONNECT_API_ISSUER_ID") or section.get("issuer_id"),
        key_dir=Path(key_dir).expanduser() if key_dir else DEFAULT_KEY_DIR,
    )


def get_storage_settings(config: Optional[Dict[str, Any]] = None) -> StorageSettings:
    section = _section(config, "storage")
    path = os.environ.get("BLIMP_STORAGE_PATH") or section.get("path")
    return StorageSettings(
        path=Path(path).expanduser() if path else Path.home() / ".blimp" / "storage",
        remote=os.environ.get("BLIMP_STORAGE_REMOTE") or section.get("remote"),
        push=bool(section.get("push", False)),
    )


def get_upload_settings(config: Optional[Dict[str, Any]] = None) -> UploadSettings:
    section = _section(config, "upload")
    defaults = UploadSettings()
    return UploadSettings(
        max_concurrent_chunks=int(section.get("max_concurrent_chunks", defaults.max_concurrent_chunks)),
        max_retries=int(section.get("max_retries", defaults.max_retries)),
        retry_base_delay=float(section.get("retry_base_delay", defaults.retry_base_delay)),
        poll_interval=float(section.get("poll_interval", defaults.poll_interval)),
        max_poll_attempts=int(section.get("max_poll_attempts", defaults.max_poll_attempts)),
    )


def get_processing_settings(config: Optional[Dict[str, Any]] = None) -> ProcessingSettings:
    section = _section(config, "processing")
    defaults = ProcessingSettings()
    return ProcessingSettings(
        poll_interval=float(section.get("poll_interval", defaults.poll_interval)),
        max_attempts=int(section.get("max_attempts", defaults.max_attempts)),
    )


def is_non_interactive() -> bool:
    return os.environ.get("NON_INTERACTIVE", "").lower() in ("1", "true", "yes")


def resolve_passphrase(cli_value: Optional[str] = None) -> str:
    """Storage passphrase from BLIMP_PASSPHRASE, the command line, or a hidden prompt"""
    passphrase = os.environ.get("BLIMP_PASSPHRASE") or cli_value
    if passphrase:
        return passphrase

    if is_non_interactive():
        raise ConfigError(
            "Storage passphrase is required. Set BLIMP_PASSPHRASE or pass --passphrase"
        )

    passphrase = Prompt.ask("Storage passphrase", password=True)
    if not passphrase:
        raise ConfigError("Storage passphrase must not be empty")
    return passphrase
