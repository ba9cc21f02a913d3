import threading
import time
from typing import Dict, List, Optional

import pytest

from blimp.src.appstore.models import (
    Certificate,
    CertificateType,
    Device,
    DeviceStatus,
    Platform,
    ProcessingResult,
    Profile,
    UploadOperation,
    UploadPhase,
    UploadPlan,
    UploadStatus,
)


class RecordingSleeper:
    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class MemoryStore:
    """ArtifactStore kept in a dict, recording commits"""

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.commits: List[tuple] = []
        self.pulls = 0
        self.remote: Optional[str] = None

    def clone_or_pull(self) -> None:
        self.pulls += 1

    def file_exists(self, path: str) -> bool:
        return path in self.files

    def read_file(self, path: str) -> bytes:
        return self.files[path]

    def write_file(self, path: str, content: bytes) -> None:
        self.files[path] = content

    def list_files(self, directory: str, suffix: str = "") -> List[str]:
        prefix = directory.rstrip("/") + "/"
        return sorted(
            path
            for path in self.files
            if path.startswith(prefix) and "/" not in path[len(prefix):] and path.endswith(suffix)
        )

    def commit_and_push(self, message: str, push: bool = False) -> None:
        self.commits.append((message, push))

    def set_remote(self, url: str) -> None:
        self.remote = url


class FakeEncrypter:
    def encrypt(self, data: bytes, password: str) -> bytes:
        return b"enc:" + password.encode() + b":" + data

    def decrypt(self, data: bytes, password: str) -> bytes:
        prefix = b"enc:" + password.encode() + b":"
        assert data.startswith(prefix)
        return data[len(prefix):]


class FakeGenerator:
    def __init__(self):
        self.csr_calls = 0

    def generate_csr(self):
        self.csr_calls += 1
        return "-----BEGIN CERTIFICATE REQUEST-----", b"private-key"

    def generate_p12(self, cert_content: bytes, private_key: bytes, passphrase: str) -> bytes:
        return b"p12:" + cert_content + b":" + private_key


class FakeProvisioningAPI:
    """In-memory certificates, profiles, devices and bundle ids"""

    def __init__(self):
        self.certificates: List[Certificate] = []
        self.profiles: List[Profile] = []
        self.devices: List[Device] = []
        self.bundle_ids: Dict[str, str] = {}
        self.created_profiles: List[dict] = []
        self.deleted_profiles: List[str] = []
        self.deleted_certificates: List[str] = []
        self._next_id = 0

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}{self._next_id}"

    def list_certificates(self, certificate_type: Optional[CertificateType] = None):
        return [
            cert
            for cert in self.certificates
            if certificate_type is None or cert.certificate_type == certificate_type
        ]

    def create_certificate(self, csr_content: str, certificate_type: CertificateType):
        cert = Certificate(
            id=self._new_id("CERT"),
            name="Created",
            certificate_type=certificate_type,
            content=b"der-bytes",
        )
        self.certificates.append(cert)
        return cert

    def delete_certificate(self, certificate_id: str) -> None:
        self.deleted_certificates.append(certificate_id)
        self.certificates = [c for c in self.certificates if c.id != certificate_id]

    def list_profiles(self, name: Optional[str] = None):
        return [p for p in self.profiles if name is None or p.name == name]

    def create_profile(self, name, profile_type, bundle_id, certificate_ids, device_ids=None):
        self.created_profiles.append(
            {
                "name": name,
                "profile_type": profile_type,
                "bundle_id": bundle_id,
                "certificate_ids": list(certificate_ids),
                "device_ids": device_ids,
            }
        )
        profile = Profile(
            id=self._new_id("PROF"),
            name=name,
            profile_type=profile_type,
            content=f"profile:{name}".encode(),
        )
        self.profiles.append(profile)
        return profile

    def delete_profile(self, profile_id: str) -> None:
        self.deleted_profiles.append(profile_id)
        self.profiles = [p for p in self.profiles if p.id != profile_id]

    def get_bundle_resource_id(self, identifier: str):
        return self.bundle_ids.get(identifier)

    def list_devices(self, platform: Optional[Platform] = None, status: Optional[DeviceStatus] = None):
        return [
            device
            for device in self.devices
            if (platform is None or device.platform == platform)
            and (status is None or device.status == status)
        ]

    def register_device(self, name: str, udid: str, platform: Platform):
        device = Device(id=self._new_id("DEV"), name=name, udid=udid, platform=platform)
        self.devices.append(device)
        return device


class FakeBuildAPI:
    """App and build queries answering from scripted sequences"""

    def __init__(self, build_ids=None, states=None):
        self.build_ids = list(build_ids or [])
        self.states = list(states or [])
        self.find_calls = 0
        self.result_calls = 0
        self.sizes = []
        self.sizes_error: Optional[Exception] = None

    def get_app_id(self, bundle_id: str) -> str:
        return "APP1"

    def find_build_id(self, app_id, app_version, build_number):
        self.find_calls += 1
        if len(self.build_ids) > 1:
            return self.build_ids.pop(0)
        return self.build_ids[0] if self.build_ids else None

    def get_build_processing_result(self, build_id):
        self.result_calls += 1
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        return ProcessingResult(
            processing_state=state,
            build_bundle_id="BUNDLE1",
            build_localization_ids=["LOC1", "LOC2"],
        )

    def get_build_bundle_sizes(self, build_bundle_id, devices):
        if self.sizes_error:
            raise self.sizes_error
        return [size for size in self.sizes if size.device_model in devices]


class FakeUploadService:
    def __init__(self, operations, plan_phase=UploadPhase.AWAITING_UPLOAD, statuses=None):
        self.plan = UploadPlan(
            upload_id="UPLOAD1",
            upload_file_id="FILE1",
            operations=operations,
            status=UploadStatus(phase=plan_phase, errors=["rejected"] if plan_phase == UploadPhase.FAILED else []),
        )
        self.statuses = list(statuses or [UploadStatus(UploadPhase.COMPLETE)])
        self.completed: List[tuple] = []
        self.status_calls = 0

    def create_build_upload(self, app_id, app_version, build_number, platform, file):
        self.file = file
        return self.plan

    def mark_upload_complete(self, upload_file_id, checksums=None):
        self.completed.append((upload_file_id, checksums))

    def get_upload_status(self, upload_id):
        self.status_calls += 1
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


class FakeResponse:
    def __init__(self, status_code: int):
        self.status_code = status_code


class FakeChunkSession:
    """Records chunk requests and tracks how many run at once.

    `script` maps a chunk offset to a list of outcomes consumed one per attempt:
    an int status code or an exception instance. Unscripted attempts return 200.
    """

    def __init__(self, script=None, delay: float = 0.0):
        self.script = {offset: list(outcomes) for offset, outcomes in (script or {}).items()}
        self.delay = delay
        self.requests: List[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def request(self, method, url, data=None, headers=None, timeout=None):
        offset = int(url.rsplit("/", 1)[-1])
        with self._lock:
            self.requests.append(
                {"method": method, "url": url, "data": data, "headers": headers, "offset": offset}
            )
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            outcomes = self.script.get(offset)
            outcome = outcomes.pop(0) if outcomes else 200
        try:
            if self.delay:
                time.sleep(self.delay)
            if isinstance(outcome, Exception):
                raise outcome
            return FakeResponse(outcome)
        finally:
            with self._lock:
                self.in_flight -= 1

    def attempts_for(self, offset: int) -> int:
        return sum(1 for r in self.requests if r["offset"] == offset)


def make_operations(file_size: int, chunk_size: int) -> List[UploadOperation]:
    return [
        UploadOperation(
            method="PUT",
            url=f"https://upload.example.com/part/{offset}",
            length=min(chunk_size, file_size - offset),
            offset=offset,
            headers={"Content-Type": "application/octet-stream"},
        )
        for offset in range(0, file_size, chunk_size)
    ]


@pytest.fixture
def sleeper():
    return RecordingSleeper()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def provisioning_api():
    return FakeProvisioningAPI()


@pytest.fixture
def ipa_file(tmp_path):
    path = tmp_path / "App.ipa"
    path.write_bytes(bytes(range(256)) * 40)
    return path


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    for name in (
        "BLIMP_CONFIG",
        "BLIMP_PASSPHRASE",
        "BLIMP_STORAGE_PATH",
        "BLIMP_STORAGE_REMOTE",
        "APPSTORE_CONNECT_API_KEY_ID",
        "APPSTORE_CONNECT_API_ISSUER_ID",
        "APPSTORE_CONNECT_API_KEY_DIR",
        "NON_INTERACTIVE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BLIMP_CONFIG", str(tmp_path / "missing-config.toml"))

