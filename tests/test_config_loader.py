from pathlib import Path

import pytest

from blimp.src.errors import ConfigError
from blimp.src.utils import config_loader
from blimp.src.utils.config_loader import (
    get_appstore_settings,
    get_processing_settings,
    get_storage_settings,
    get_upload_settings,
    load_config,
    resolve_passphrase,
)


def write_config(tmp_path, monkeypatch, text):
    path = tmp_path / "config.toml"
    path.write_text(text)
    monkeypatch.setenv("BLIMP_CONFIG", str(path))
    return path


def test_missing_config_is_empty():
    assert load_config() == {}


def test_invalid_toml_is_a_config_error(tmp_path, monkeypatch):
    write_config(tmp_path, monkeypatch, "[upload\nmax_retries = ")
    with pytest.raises(ConfigError):
        load_config()


def test_sections_are_read_from_file(tmp_path, monkeypatch):
    write_config(
        tmp_path,
        monkeypatch,
        """
[appstore]
key_id = "KEY"
issuer_id = "ISSUER"
key_dir = "/keys"

[storage]
path = "/srv/storage"
remote = "git@example.com:certs.git"
push = true

[upload]
max_concurrent_chunks = 8
max_retries = 5

[processing]
poll_interval = 10
max_attempts = 6
""",
    )
    config = load_config()

    appstore = get_appstore_settings(config)
    assert (appstore.key_id, appstore.issuer_id, appstore.key_dir) == ("KEY", "ISSUER", Path("/keys"))

    storage = get_storage_settings(config)
    assert storage.path == Path("/srv/storage")
    assert storage.remote == "git@example.com:certs.git"
    assert storage.push is True

    upload = get_upload_settings(config)
    assert upload.max_concurrent_chunks == 8
    assert upload.max_retries == 5
    assert upload.retry_base_delay == 0.5

    processing = get_processing_settings(config)
    assert processing.poll_interval == 10.0
    assert processing.max_attempts == 6


def test_environment_overrides_file(monkeypatch):
    monkeypatch.setenv("APPSTORE_CONNECT_API_KEY_ID", "ENVKEY")
    monkeypatch.setenv("BLIMP_STORAGE_REMOTE", "https://example.com/certs.git")

    config = {"appstore": {"key_id": "FILEKEY"}, "storage": {"remote": "file-remote"}}

    assert get_appstore_settings(config).key_id == "ENVKEY"
    assert get_storage_settings(config).remote == "https://example.com/certs.git"


def test_defaults_without_config():
    assert get_upload_settings({}).max_poll_attempts == 60
    assert get_processing_settings({}).max_attempts == 120
    assert get_storage_settings({}).path == Path.home() / ".blimp" / "storage"


def test_passphrase_prefers_environment(monkeypatch):
    monkeypatch.setenv("BLIMP_PASSPHRASE", "from-env")
    assert resolve_passphrase("from-cli") == "from-env"


def test_passphrase_from_command_line():
    assert resolve_passphrase("from-cli") == "from-cli"


def test_passphrase_required_when_non_interactive(monkeypatch):
    monkeypatch.setenv("NON_INTERACTIVE", "true")
    with pytest.raises(ConfigError):
        resolve_passphrase(None)


def test_passphrase_prompted_otherwise(monkeypatch):
    monkeypatch.setattr(config_loader.Prompt, "ask", lambda *args, **kwargs: "typed")
    assert resolve_passphrase(None) == "typed"
