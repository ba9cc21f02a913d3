"""Interfaces the workflows depend on.

AppStoreConnectClient implements every API facing protocol here; tests swap in
in-memory doubles.
"""

from typing import List, Optional, Protocol, Tuple

from blimp.src.appstore.models import (
    BuildSize,
    Certificate,
    CertificateType,
    Device,
    DeviceStatus,
    Platform,
    ProcessingResult,
    Profile,
    ProfileType,
    UploadChecksums,
    UploadFileDescriptor,
    UploadPlan,
    UploadPlatform,
    UploadStatus,
)


class AppQueryService(Protocol):
    def get_app_id(self, bundle_id: str) -> str: ...


class BuildUploadService(Protocol):
    def create_build_upload(
        self,
        app_id: str,
        app_version: str,
        build_number: str,
        platform: UploadPlatform,
        file: UploadFileDescriptor,
    ) -> UploadPlan: ...

    def mark_upload_complete(
        self, upload_file_id: str, checksums: Optional[UploadChecksums] = None
    ) -> None: ...

    def get_upload_status(self, upload_id: str) -> UploadStatus: ...


class BuildQueryService(Protocol):
    def find_build_id(
        self, app_id: str, app_version: str, build_number: str
    ) -> Optional[str]: ...

    def get_build_processing_result(self, build_id: str) -> ProcessingResult: ...

    def get_build_bundle_sizes(
        self, build_bundle_id: str, devices: List[str]
    ) -> List[BuildSize]: ...


class BetaService(Protocol):
    def set_beta_groups(self, app_id: str, build_id: str, beta_groups: List[str]) -> None: ...

    def set_changelog(self, localization_ids: List[str], changelog: str) -> None: ...

    def send_to_review(self, build_id: str) -> None: ...


class CertificateService(Protocol):
    def list_certificates(
        self, certificate_type: Optional[CertificateType] = None
    ) -> List[Certificate]: ...

    def create_certificate(
        self, csr_content: str, certificate_type: CertificateType
    ) -> Certificate: ...

    def delete_certificate(self, certificate_id: str) -> None: ...


class ProfileService(Protocol):
    def list_profiles(self, name: Optional[str] = None) -> List[Profile]: ...

    def create_profile(
        self,
        name: str,
        profile_type: ProfileType,
        bundle_id: str,
        certificate_ids: List[str],
        device_ids: Optional[List[str]] = None,
    ) -> Profile: ...

    def delete_profile(self, profile_id: str) -> None: ...

    def get_bundle_resource_id(self, identifier: str) -> Optional[str]: ...


class DeviceService(Protocol):
    def list_devices(
        self,
        platform: Optional[Platform] = None,
        status: Optional[DeviceStatus] = None,
    ) -> List[Device]: ...

    def register_device(self, name: str, udid: str, platform: Platform) -> Device: ...


class ProvisioningService(CertificateService, ProfileService, DeviceService, Protocol):
    pass


class EncryptionService(Protocol):
    def encrypt(self, data: bytes, password: str) -> bytes: ...

    def decrypt(self, data: bytes, password: str) -> bytes: ...


class CertificateGenerating(Protocol):
    def generate_csr(self) -> Tuple[str, bytes]:
        """Return (CSR as PEM text, private key as PEM bytes)"""
        ...

    def generate_p12(self, cert_content: bytes, private_key: bytes, passphrase: str) -> bytes: ...


class ArtifactStore(Protocol):
    def clone_or_pull(self) -> None: ...

    def file_exists(self, path: str) -> bool: ...

    def read_file(self, path: str) -> bytes: ...

    def write_file(self, path: str, content: bytes) -> None: ...

    def list_files(self, directory: str, suffix: str = "") -> List[str]: ...

    def commit_and_push(self, message: str, push: bool = False) -> None: ...

    def set_remote(self, url: str) -> None: ...
