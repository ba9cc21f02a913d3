from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


class Platform(Enum):
    """Provisioning platform, the value is used in storage paths"""

    IOS = "ios"
    MACOS = "macos"
    TVOS = "tvos"
    CATALYST = "catalyst"

    @property
    def display_name(self) -> str:
        return {
            Platform.IOS: "iOS",
            Platform.MACOS: "macOS",
            Platform.TVOS: "tvOS",
            Platform.CATALYST: "Mac Catalyst",
        }[self]

    @property
    def api_value(self) -> str:
        """Value used by bundleIds/devices filters"""
        return {
            Platform.IOS: "IOS",
            Platform.MACOS: "MAC_OS",
            Platform.TVOS: "UNIVERSAL",
            Platform.CATALYST: "UNIVERSAL",
        }[self]

    @classmethod
    def from_api(cls, value: Optional[str]) -> Optional["Platform"]:
        return {"IOS": cls.IOS, "MAC_OS": cls.MACOS}.get(value or "")

    @classmethod
    def parse(cls, value: str) -> "Platform":
        normalized = value.strip().lower().replace(" ", "")
        aliases = {"maccatalyst": "catalyst", "osx": "macos"}
        return cls(aliases.get(normalized, normalized))


class UploadPlatform(Enum):
    """Platform of a build upload"""

    IOS = "IOS"
    MAC_OS = "MAC_OS"
    TV_OS = "TV_OS"
    VISION_OS = "VISION_OS"

    @classmethod
    def parse(cls, value: str) -> "UploadPlatform":
        normalized = value.strip().lower()
        mapping = {
            "ios": cls.IOS,
            "macos": cls.MAC_OS,
            "tvos": cls.TV_OS,
            "visionos": cls.VISION_OS,
        }
        if normalized not in mapping:
            raise ValueError(f"Unsupported upload platform: {value}")
        return mapping[normalized]


class CertificateType(Enum):
    IOS_DEVELOPMENT = "IOS_DEVELOPMENT"
    IOS_DISTRIBUTION = "IOS_DISTRIBUTION"
    MAC_APP_DEVELOPMENT = "MAC_APP_DEVELOPMENT"
    MAC_APP_DISTRIBUTION = "MAC_APP_DISTRIBUTION"
    DISTRIBUTION = "DISTRIBUTION"
    DEVELOPMENT = "DEVELOPMENT"

    @classmethod
    def parse(cls, value: str) -> "CertificateType":
        shorthand = {
            "development": cls.DEVELOPMENT,
            "dev": cls.DEVELOPMENT,
            "distribution": cls.DISTRIBUTION,
            "dist": cls.DISTRIBUTION,
        }
        if value.lower() in shorthand:
            return shorthand[value.lower()]
        return cls(value.upper())


class ProfileType(Enum):
    IOS_APP_DEVELOPMENT = "IOS_APP_DEVELOPMENT"
    IOS_APP_STORE = "IOS_APP_STORE"
    IOS_APP_ADHOC = "IOS_APP_ADHOC"
    IOS_APP_INHOUSE = "IOS_APP_INHOUSE"
    MAC_APP_DEVELOPMENT = "MAC_APP_DEVELOPMENT"
    MAC_APP_STORE = "MAC_APP_STORE"
    MAC_APP_DIRECT = "MAC_APP_DIRECT"
    TVOS_APP_DEVELOPMENT = "TVOS_APP_DEVELOPMENT"
    TVOS_APP_STORE = "TVOS_APP_STORE"
    TVOS_APP_ADHOC = "TVOS_APP_ADHOC"
    TVOS_APP_INHOUSE = "TVOS_APP_INHOUSE"
    MAC_CATALYST_APP_DEVELOPMENT = "MAC_CATALYST_APP_DEVELOPMENT"
    MAC_CATALYST_APP_STORE = "MAC_CATALYST_APP_STORE"
    MAC_CATALYST_APP_DIRECT = "MAC_CATALYST_APP_DIRECT"

    @property
    def is_development(self) -> bool:
        return self in DEVELOPMENT_PROFILE_TYPES

    @property
    def is_adhoc(self) -> bool:
        return self in (ProfileType.IOS_APP_ADHOC, ProfileType.TVOS_APP_ADHOC)

    @property
    def requires_devices(self) -> bool:
        """Development and ad-hoc profiles embed a fixed device list"""
        return self.is_development or self.is_adhoc

    @property
    def certificate_type(self) -> CertificateType:
        if self.is_development:
            return CertificateType.DEVELOPMENT
        return CertificateType.DISTRIBUTION


DEVELOPMENT_PROFILE_TYPES = (
    ProfileType.IOS_APP_DEVELOPMENT,
    ProfileType.TVOS_APP_DEVELOPMENT,
    ProfileType.MAC_APP_DEVELOPMENT,
    ProfileType.MAC_CATALYST_APP_DEVELOPMENT,
)


class ProfileKind(Enum):
    """Platform independent profile flavour accepted by the CLI"""

    DEVELOPMENT = "development"
    APPSTORE = "appstore"
    ADHOC = "adhoc"
    INHOUSE = "inhouse"
    DIRECT = "direct"

    def profile_type(self, platform: Platform) -> ProfileType:
        return _PROFILE_KIND_MAPPING[(platform, self)]


_PROFILE_KIND_MAPPING = {
    (Platform.IOS, ProfileKind.DEVELOPMENT): ProfileType.IOS_APP_DEVELOPMENT,
    (Platform.IOS, ProfileKind.APPSTORE): ProfileType.IOS_APP_STORE,
    (Platform.IOS, ProfileKind.ADHOC): ProfileType.IOS_APP_ADHOC,
    (Platform.IOS, ProfileKind.INHOUSE): ProfileType.IOS_APP_INHOUSE,
    (Platform.IOS, ProfileKind.DIRECT): ProfileType.IOS_APP_ADHOC,
    (Platform.MACOS, ProfileKind.DEVELOPMENT): ProfileType.MAC_APP_DEVELOPMENT,
    (Platform.MACOS, ProfileKind.APPSTORE): ProfileType.MAC_APP_STORE,
    (Platform.MACOS, ProfileKind.ADHOC): ProfileType.MAC_APP_DIRECT,
    (Platform.MACOS, ProfileKind.INHOUSE): ProfileType.MAC_APP_DIRECT,
    (Platform.MACOS, ProfileKind.DIRECT): ProfileType.MAC_APP_DIRECT,
    (Platform.TVOS, ProfileKind.DEVELOPMENT): ProfileType.TVOS_APP_DEVELOPMENT,
    (Platform.TVOS, ProfileKind.APPSTORE): ProfileType.TVOS_APP_STORE,
    (Platform.TVOS, ProfileKind.ADHOC): ProfileType.TVOS_APP_ADHOC,
    (Platform.TVOS, ProfileKind.INHOUSE): ProfileType.TVOS_APP_INHOUSE,
    (Platform.TVOS, ProfileKind.DIRECT): ProfileType.TVOS_APP_ADHOC,
    (Platform.CATALYST, ProfileKind.DEVELOPMENT): ProfileType.MAC_CATALYST_APP_DEVELOPMENT,
    (Platform.CATALYST, ProfileKind.APPSTORE): ProfileType.MAC_CATALYST_APP_STORE,
    (Platform.CATALYST, ProfileKind.ADHOC): ProfileType.MAC_CATALYST_APP_DIRECT,
    (Platform.CATALYST, ProfileKind.INHOUSE): ProfileType.MAC_CATALYST_APP_DIRECT,
    (Platform.CATALYST, ProfileKind.DIRECT): ProfileType.MAC_CATALYST_APP_DIRECT,
}


class DeviceStatus(Enum):
    ENABLED = "ENABLED"
    DISABLED = "DISABLED"


class UploadPhase(Enum):
    AWAITING_UPLOAD = "AWAITING_UPLOAD"
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadPhase.COMPLETE, UploadPhase.FAILED)


class ProcessingState(Enum):
    PROCESSING = "PROCESSING"
    FAILED = "FAILED"
    INVALID = "INVALID"
    VALID = "VALID"
    # Beta detail states reported on top of a processed build
    PROCESSING_EXCEPTION = "PROCESSING_EXCEPTION"
    MISSING_EXPORT_COMPLIANCE = "MISSING_EXPORT_COMPLIANCE"
    BETA_REJECTED = "BETA_REJECTED"

    @classmethod
    def basic_states(cls) -> List["ProcessingState"]:
        return [cls.PROCESSING, cls.FAILED, cls.INVALID, cls.VALID]


@dataclass
class UploadOperation:
    method: str
    url: str
    length: int
    offset: int
    headers: Dict[str, str] = field(default_factory=dict)
    expiration: Optional[datetime] = None
    part_number: Optional[int] = None
    entity_tag: Optional[str] = None


@dataclass
class UploadStatus:
    phase: UploadPhase
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class UploadPlan:
    upload_id: str
    upload_file_id: str
    operations: List[UploadOperation]
    status: UploadStatus


@dataclass
class UploadFileDescriptor:
    file_name: str
    file_size: int
    asset_type: str = "ASSET"
    uti: str = "com.apple.ipa"

    @classmethod
    def ipa(cls, file_name: str, file_size: int) -> "UploadFileDescriptor":
        return cls(file_name=file_name, file_size=file_size)

    @classmethod
    def pkg(cls, file_name: str, file_size: int) -> "UploadFileDescriptor":
        return cls(file_name=file_name, file_size=file_size, uti="com.apple.pkg")


@dataclass
class UploadChecksums:
    """Base64 encoded digests of the whole file"""

    sha256: Optional[str] = None
    md5: Optional[str] = None


@dataclass
class UploadConfig:
    bundle_id: str
    file_path: Path
    app_version: str
    build_number: str
    platform: UploadPlatform = UploadPlatform.IOS


@dataclass
class ProcessingResult:
    processing_state: ProcessingState
    build_bundle_id: str
    build_localization_ids: List[str] = field(default_factory=list)


@dataclass
class BuildSize:
    device_model: str
    download_bytes: int
    install_bytes: int


@dataclass
class Certificate:
    id: str
    name: str
    certificate_type: Optional[CertificateType] = None
    content: Optional[bytes] = None
    serial_number: Optional[str] = None
    expiration_date: Optional[datetime] = None


@dataclass
class Profile:
    id: str
    name: str
    profile_type: Optional[ProfileType] = None
    content: Optional[bytes] = None
    expiration_date: Optional[datetime] = None
    state: Optional[str] = None


@dataclass
class BundleId:
    id: str
    identifier: str
    name: str
    platform: Optional[str] = None


@dataclass
class Device:
    id: str
    name: str
    udid: str
    platform: Optional[Platform] = None
    status: DeviceStatus = DeviceStatus.ENABLED
    device_class: Optional[str] = None
    model: Optional[str] = None
