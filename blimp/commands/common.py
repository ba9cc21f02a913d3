from typing import Any, Dict, Optional

from blimp.src.appstore.client import AppStoreConnectClient
from blimp.src.appstore.token_provider import TokenProvider
from blimp.src.storage.git_store import GitStore
from blimp.src.utils.config_loader import (
    StorageSettings,
    get_appstore_settings,
    get_storage_settings,
)


def build_client(config: Dict[str, Any]) -> AppStoreConnectClient:
    settings = get_appstore_settings(config)
    return AppStoreConnectClient(
        TokenProvider(settings.key_id, settings.issuer_id, settings.key_dir)
    )


def resolve_storage(args, config: Dict[str, Any]) -> StorageSettings:
    """Storage settings with command line overrides applied"""
    settings = get_storage_settings(config)
    if getattr(args, "storage_path", None):
        settings.path = args.storage_path.expanduser()
    if getattr(args, "storage_remote", None):
        settings.remote = args.storage_remote
    push: Optional[bool] = getattr(args, "push", None)
    if push is not None:
        settings.push = push
    return settings


def build_store(settings: StorageSettings) -> GitStore:
    return GitStore(settings.path, remote=settings.remote)
