import plistlib
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from asn1crypto.cms import ContentInfo

from blimp.logger import get_console
from blimp.src.appstore.models import Platform, ProfileType
from blimp.src.appstore.services import ArtifactStore
from blimp.src.errors import InvalidProfileError
from blimp.src.provisioning.profile_sync import profile_directory

console = get_console()

PROFILE_SUFFIX = ".mobileprovision"
DEFAULT_PROFILES_DIRECTORY = Path.home() / "Library/MobileDevice/Provisioning Profiles"


def dump_profile(data: bytes) -> dict:
    """Decode a provisioning profile without the macOS security command"""
    try:
        content_info = ContentInfo.load(data)
        signed_data = content_info["content"]
        # The plist is the encapsulated content of the signed data
        plist_data = signed_data["encap_content_info"]["content"].native
        return plistlib.loads(plist_data)
    except (ValueError, TypeError, KeyError, plistlib.InvalidFileException) as e:
        raise InvalidProfileError(f"Could not decode provisioning profile: {e}") from e


def profile_uuid(data: bytes) -> str:
    uuid = dump_profile(data).get("UUID")
    if not isinstance(uuid, str) or not uuid:
        raise InvalidProfileError("Could not extract UUID from profile")
    return uuid


def matches_pattern(bundle_id: str, pattern: str) -> bool:
    """Exact match, or glob match when the pattern contains '*'"""
    if "*" in pattern:
        regex = "^" + re.escape(pattern).replace(r"\*", ".*") + "$"
        return re.match(regex, bundle_id) is not None
    return bundle_id == pattern


@dataclass
class InstalledProfile:
    bundle_id: str
    uuid: str
    destination_path: Path
    platform: Platform
    profile_type: ProfileType


class ProfileInstaller:
    """Copies stored profiles to the directory Xcode reads them from"""

    def __init__(self, store: ArtifactStore, profiles_directory: Path = DEFAULT_PROFILES_DIRECTORY):
        self.store = store
        self.profiles_directory = Path(profiles_directory)

    def install_profiles(
        self,
        platform: Platform,
        profile_type: ProfileType,
        bundle_id_pattern: Optional[str] = None,
    ) -> List[InstalledProfile]:
        console.print(f"[blue]Installing profiles for {platform.value}/{profile_type.value}")
        self.store.clone_or_pull()

        directory = profile_directory(profile_type, platform)
        files = self.store.list_files(directory, suffix=PROFILE_SUFFIX)
        if not files:
            console.print(f"[yellow]No profiles found in {directory}")
            return []

        console.print(f"[cyan]Found {len(files)} profile(s) in storage")

        installed = []
        for file_path in files:
            bundle_id = Path(file_path).name[: -len(PROFILE_SUFFIX)]
            if bundle_id_pattern and not matches_pattern(bundle_id, bundle_id_pattern):
                continue

            try:
                result = self._install(file_path, bundle_id, platform, profile_type)
            except InvalidProfileError as e:
                console.print(f"[red]Failed to install {bundle_id}:[/] {e}")
                raise
            installed.append(result)
            console.print(f"[green]Installed:[/] {bundle_id} -> {result.uuid}")

        console.print(f"[green]Installed {len(installed)} profile(s)")
        return installed

    def _install(
        self,
        file_path: str,
        bundle_id: str,
        platform: Platform,
        profile_type: ProfileType,
    ) -> InstalledProfile:
        data = self.store.read_file(file_path)
        uuid = profile_uuid(data)

        self.profiles_directory.mkdir(parents=True, exist_ok=True)
        destination = self.profiles_directory / f"{uuid}{PROFILE_SUFFIX}"
        destination.write_bytes(data)

        return InstalledProfile(
            bundle_id=bundle_id,
            uuid=uuid,
            destination_path=destination,
            platform=platform,
            profile_type=profile_type,
        )
