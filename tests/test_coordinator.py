from blimp.src.appstore.models import Certificate, CertificateType, Platform, ProfileType
from blimp.src.provisioning.certificate_manager import certificate_path
from blimp.src.provisioning.coordinator import ProvisioningCoordinator
from blimp.src.provisioning.profile_sync import profile_path
from conftest import FakeEncrypter, FakeGenerator


def make_coordinator(api, store, generator=None):
    return ProvisioningCoordinator(
        api=api,
        store=store,
        encrypter=FakeEncrypter(),
        generator=generator or FakeGenerator(),
        passphrase="secret",
        push=True,
    )


def test_sync_creates_certificate_then_profiles(provisioning_api, store):
    provisioning_api.bundle_ids = {"com.example.app": "B1"}

    certificate_id = make_coordinator(provisioning_api, store).sync(
        Platform.IOS, ProfileType.IOS_APP_STORE, ["com.example.app"]
    )

    assert certificate_path(certificate_id, CertificateType.DISTRIBUTION, Platform.IOS) in store.files
    assert profile_path("com.example.app", ProfileType.IOS_APP_STORE, Platform.IOS) in store.files
    assert provisioning_api.created_profiles[0]["certificate_ids"] == [certificate_id]
    assert all(push for _, push in store.commits)


def test_sync_reuses_stored_development_certificate(provisioning_api, store):
    provisioning_api.bundle_ids = {"com.example.app": "B1"}
    provisioning_api.certificates.append(
        Certificate(id="DEV1", name="Dev", certificate_type=CertificateType.DEVELOPMENT)
    )
    store.files[certificate_path("DEV1", CertificateType.DEVELOPMENT, Platform.MACOS)] = b"x"
    generator = FakeGenerator()

    certificate_id = make_coordinator(provisioning_api, store, generator).sync(
        Platform.MACOS, ProfileType.MAC_APP_DEVELOPMENT, ["com.example.app"]
    )

    assert certificate_id == "DEV1"
    assert generator.csr_calls == 0
    assert provisioning_api.created_profiles[0]["profile_type"] == ProfileType.MAC_APP_DEVELOPMENT


def test_forced_sync_replaces_certificate_and_profiles(provisioning_api, store):
    provisioning_api.bundle_ids = {"com.example.app": "B1"}
    generator = FakeGenerator()
    coordinator = make_coordinator(provisioning_api, store, generator)

    first = coordinator.sync(Platform.IOS, ProfileType.IOS_APP_STORE, ["com.example.app"])
    second = coordinator.sync(Platform.IOS, ProfileType.IOS_APP_STORE, ["com.example.app"], force=True)

    assert second != first
    assert generator.csr_calls == 2
    assert len(provisioning_api.deleted_profiles) == 1
    assert provisioning_api.created_profiles[-1]["certificate_ids"] == [second]
