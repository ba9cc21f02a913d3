from typing import List

from blimp.logger import get_console
from blimp.src.appstore.models import Platform, ProfileType
from blimp.src.appstore.services import (
    ArtifactStore,
    CertificateGenerating,
    EncryptionService,
    ProvisioningService,
)
from blimp.src.provisioning.certificate_manager import CertificateManager
from blimp.src.provisioning.profile_sync import ProfileSyncCoordinator

console = get_console()


class ProvisioningCoordinator:
    """Full reconcile: make sure a certificate exists, then the profiles that use it"""

    def __init__(
        self,
        api: ProvisioningService,
        store: ArtifactStore,
        encrypter: EncryptionService,
        generator: CertificateGenerating,
        passphrase: str,
        push: bool = False,
    ):
        self.store = store
        self.certificates = CertificateManager(
            api, store, encrypter, generator, passphrase, push=push
        )
        self.profiles = ProfileSyncCoordinator(api, api, store, push=push)

    def sync(
        self,
        platform: Platform,
        profile_type: ProfileType,
        bundle_ids: List[str],
        force: bool = False,
    ) -> str:
        """Reconcile certificate and profiles, returning the certificate id used"""
        console.print(
            f"[blue]Starting sync for {platform.value} {profile_type.value}:[/] "
            f"{', '.join(bundle_ids)}"
        )
        self.store.clone_or_pull()

        certificate_type = profile_type.certificate_type
        certificate_id = self.certificates.ensure_certificate(
            certificate_type, platform, force=force
        )

        self.profiles.sync(platform, profile_type, bundle_ids, certificate_id, force=force)
        console.print("[green]Sync completed successfully.")
        return certificate_id
