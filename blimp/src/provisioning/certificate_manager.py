from typing import Optional

from blimp.logger import get_console
from blimp.src.appstore.models import Certificate, CertificateType, Platform
from blimp.src.appstore.services import (
    ArtifactStore,
    CertificateGenerating,
    CertificateService,
    EncryptionService,
)
from blimp.src.errors import MissingDataError

console = get_console()


def certificate_directory(certificate_type: CertificateType, platform: Platform) -> str:
    return f"certificates/{platform.value}/{certificate_type.value}"


def certificate_path(
    certificate_id: str, certificate_type: CertificateType, platform: Platform
) -> str:
    return f"{certificate_directory(certificate_type, platform)}/{certificate_id}.p12"


class CertificateManager:
    """Keeps signing certificates in the store, encrypted, and in step with App Store Connect.

    A certificate counts as valid only when App Store Connect still lists it AND the
    store holds its encrypted p12 under the directory for its type and platform.
    """

    def __init__(
        self,
        certificates: CertificateService,
        store: ArtifactStore,
        encrypter: EncryptionService,
        generator: CertificateGenerating,
        passphrase: str,
        push: bool = False,
    ):
        self.certificates = certificates
        self.store = store
        self.encrypter = encrypter
        self.generator = generator
        self.passphrase = passphrase
        self.push = push

    def find_valid_certificate(
        self, certificate_type: CertificateType, platform: Platform
    ) -> Optional[str]:
        """Return the id of a listed certificate whose p12 is in the store, else None"""
        self.store.clone_or_pull()

        listed = self.certificates.list_certificates(certificate_type)
        console.print(
            f"[blue]Found {len(listed)} certificates of type {certificate_type.value} "
            "on Developer Portal"
        )

        for cert in listed:
            if self.store.file_exists(certificate_path(cert.id, certificate_type, platform)):
                console.print(f"[green]Found valid certificate {cert.id} in storage")
                return cert.id
        return None

    def create_and_store_certificate(
        self, certificate_type: CertificateType, platform: Platform
    ) -> Certificate:
        self.store.clone_or_pull()

        csr, private_key = self.generator.generate_csr()
        cert = self.certificates.create_certificate(csr, certificate_type)
        if not cert.content:
            raise MissingDataError("Certificate created but no content returned")

        p12 = self.generator.generate_p12(cert.content, private_key, self.passphrase)
        encrypted = self.encrypter.encrypt(p12, self.passphrase)

        self.store.write_file(certificate_path(cert.id, certificate_type, platform), encrypted)
        self.store.commit_and_push(
            f"Add certificate {cert.id} for {platform.value} {certificate_type.value}",
            push=self.push,
        )
        console.print(f"[green]Created and stored certificate:[/] {cert.id}")
        return cert

    def ensure_certificate(
        self, certificate_type: CertificateType, platform: Platform, force: bool = False
    ) -> str:
        """Id of a reusable certificate, creating one when none is valid or when forced"""
        if force:
            console.print("[yellow]Forced sync, creating a new certificate...")
        else:
            existing = self.find_valid_certificate(certificate_type, platform)
            if existing:
                return existing
            console.print("[yellow]No valid certificate found in storage. Creating new one...")
        return self.create_and_store_certificate(certificate_type, platform).id
