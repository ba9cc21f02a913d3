from typing import List, Optional

from blimp.logger import get_console
from blimp.src.appstore.models import DeviceStatus, Platform, ProfileType
from blimp.src.appstore.services import ArtifactStore, DeviceService, ProfileService
from blimp.src.errors import BundleIdNotFoundError, MissingDataError

console = get_console()


def profile_directory(profile_type: ProfileType, platform: Platform) -> str:
    return f"profiles/{platform.value}/{profile_type.value}"


def profile_path(bundle_id: str, profile_type: ProfileType, platform: Platform) -> str:
    return f"{profile_directory(profile_type, platform)}/{bundle_id}.mobileprovision"


class ProfileSyncCoordinator:
    """Creates provisioning profiles on App Store Connect and keeps them in the store.

    Profiles are stored unencrypted, they hold no private key material.
    """

    def __init__(
        self,
        profiles: ProfileService,
        devices: DeviceService,
        store: ArtifactStore,
        push: bool = False,
    ):
        self.profiles = profiles
        self.devices = devices
        self.store = store
        self.push = push

    def sync(
        self,
        platform: Platform,
        profile_type: ProfileType,
        bundle_ids: List[str],
        certificate_id: str,
        force: bool = False,
    ) -> None:
        """Ensure a stored profile exists for every bundle id, stopping at the first failure"""
        console.print(
            f"[blue]Starting profile sync for {platform.value} {profile_type.value}"
        )
        console.print(f"[blue]Bundle IDs:[/] {', '.join(bundle_ids)}")
        console.print(f"[blue]Using certificate:[/] {certificate_id}")

        self.store.clone_or_pull()
        for bundle_id in bundle_ids:
            self.sync_profile(bundle_id, profile_type, platform, certificate_id, force)

        console.print("[green]Profile sync completed successfully.")

    def sync_profile(
        self,
        bundle_id: str,
        profile_type: ProfileType,
        platform: Platform,
        certificate_id: str,
        force: bool = False,
    ) -> None:
        path = profile_path(bundle_id, profile_type, platform)
        if not force and self.store.file_exists(path):
            console.print(f"[cyan]Profile {bundle_id} exists in storage, skipping.")
            return

        if force:
            existing = self.profiles.list_profiles(name=bundle_id)
            if existing:
                console.print(f"[yellow]Deleting existing profile {bundle_id} for regeneration")
                self.profiles.delete_profile(existing[0].id)

        device_ids = self._resolve_device_ids(profile_type, platform)

        bundle_resource_id = self.profiles.get_bundle_resource_id(bundle_id)
        if not bundle_resource_id:
            raise BundleIdNotFoundError(bundle_id)

        profile = self.profiles.create_profile(
            name=bundle_id,
            profile_type=profile_type,
            bundle_id=bundle_resource_id,
            certificate_ids=[certificate_id],
            device_ids=device_ids,
        )
        if not profile.content:
            raise MissingDataError("Profile created but no content returned")

        self.store.write_file(path, profile.content)
        self.store.commit_and_push(f"Update profile {bundle_id}", push=self.push)
        console.print(f"[green]Synced profile:[/] {bundle_id}")

    def _resolve_device_ids(
        self, profile_type: ProfileType, platform: Platform
    ) -> Optional[List[str]]:
        if not profile_type.requires_devices:
            return None

        devices = self.devices.list_devices(platform=platform)
        enabled = [device for device in devices if device.status == DeviceStatus.ENABLED]
        if not enabled:
            console.print(
                f"[yellow]No enabled devices found for {platform.value}. "
                "Profile creation may fail."
            )
        else:
            console.print(f"[cyan]Found {len(enabled)} enabled devices")
        return [device.id for device in enabled]
