import pytest

from blimp.src.appstore.models import Device, DeviceStatus, Platform, Profile, ProfileType
from blimp.src.errors import BundleIdNotFoundError, MissingDataError
from blimp.src.provisioning.profile_sync import ProfileSyncCoordinator, profile_path


@pytest.fixture
def api(provisioning_api):
    provisioning_api.bundle_ids = {"com.example.app": "B1", "com.example.widget": "B2"}
    provisioning_api.devices = [
        Device(id="D1", name="Phone", udid="u1", platform=Platform.IOS),
        Device(id="D2", name="Old", udid="u2", platform=Platform.IOS, status=DeviceStatus.DISABLED),
        Device(id="D3", name="Mac", udid="u3", platform=Platform.MACOS),
    ]
    return provisioning_api


def make_sync(api, store, push=False):
    return ProfileSyncCoordinator(profiles=api, devices=api, store=store, push=push)


def test_profile_path_layout():
    assert (
        profile_path("com.example.app", ProfileType.IOS_APP_STORE, Platform.IOS)
        == "profiles/ios/IOS_APP_STORE/com.example.app.mobileprovision"
    )


def test_sync_creates_and_stores_profiles(api, store):
    make_sync(api, store).sync(
        Platform.IOS, ProfileType.IOS_APP_DEVELOPMENT, ["com.example.app", "com.example.widget"], "C1"
    )

    assert [p["bundle_id"] for p in api.created_profiles] == ["B1", "B2"]
    assert api.created_profiles[0]["certificate_ids"] == ["C1"]
    assert api.created_profiles[0]["device_ids"] == ["D1"]
    path = profile_path("com.example.app", ProfileType.IOS_APP_DEVELOPMENT, Platform.IOS)
    assert store.files[path] == b"profile:com.example.app"
    assert store.commits == [
        ("Update profile com.example.app", False),
        ("Update profile com.example.widget", False),
    ]


def test_store_profiles_carry_no_devices(api, store):
    make_sync(api, store).sync(Platform.IOS, ProfileType.IOS_APP_STORE, ["com.example.app"], "C1")
    assert api.created_profiles[0]["device_ids"] is None


@pytest.mark.parametrize(
    "platform, profile_type, expected",
    [
        (Platform.IOS, ProfileType.IOS_APP_ADHOC, ["D1"]),
        (Platform.TVOS, ProfileType.TVOS_APP_ADHOC, ["D4"]),
    ],
)
def test_adhoc_profiles_carry_enabled_devices(api, store, platform, profile_type, expected):
    api.devices.append(Device(id="D4", name="Living Room", udid="u4", platform=Platform.TVOS))

    make_sync(api, store).sync(platform, profile_type, ["com.example.app"], "C1")

    assert profile_type.is_adhoc
    assert api.created_profiles[0]["device_ids"] == expected


def test_direct_distribution_profiles_carry_no_devices(api, store):
    make_sync(api, store).sync(Platform.MACOS, ProfileType.MAC_APP_DIRECT, ["com.example.app"], "C1")
    assert api.created_profiles[0]["device_ids"] is None


def test_sync_is_idempotent(api, store):
    sync = make_sync(api, store)
    sync.sync(Platform.IOS, ProfileType.IOS_APP_STORE, ["com.example.app"], "C1")
    sync.sync(Platform.IOS, ProfileType.IOS_APP_STORE, ["com.example.app"], "C1")

    assert len(api.created_profiles) == 1
    assert api.deleted_profiles == []
    assert len(store.commits) == 1


def test_force_regenerates_existing_profile(api, store):
    sync = make_sync(api, store)
    sync.sync(Platform.IOS, ProfileType.IOS_APP_STORE, ["com.example.app"], "C1")
    first_id = api.profiles[0].id

    sync.sync(Platform.IOS, ProfileType.IOS_APP_STORE, ["com.example.app"], "C2", force=True)

    assert api.deleted_profiles == [first_id]
    assert len(api.created_profiles) == 2
    assert api.created_profiles[1]["certificate_ids"] == ["C2"]


def test_remote_profiles_are_only_deleted_when_forced(api, store):
    api.profiles.append(Profile(id="OLD", name="com.example.app"))
    sync = make_sync(api, store)

    sync.sync(Platform.IOS, ProfileType.IOS_APP_STORE, ["com.example.app"], "C1")
    assert api.deleted_profiles == []

    sync.sync(Platform.IOS, ProfileType.IOS_APP_STORE, ["com.example.app"], "C1", force=True)
    assert api.deleted_profiles == ["OLD"]


def test_unknown_bundle_id_stops_the_sync(api, store):
    with pytest.raises(BundleIdNotFoundError) as excinfo:
        make_sync(api, store).sync(
            Platform.IOS, ProfileType.IOS_APP_STORE, ["com.example.missing", "com.example.app"], "C1"
        )

    assert excinfo.value.identifier == "com.example.missing"
    assert api.created_profiles == []
    assert store.files == {}


def test_profile_without_content_is_rejected(api, store):
    api.create_profile = lambda **kwargs: Profile(id="P1", name=kwargs["name"])

    with pytest.raises(MissingDataError):
        make_sync(api, store).sync(Platform.IOS, ProfileType.IOS_APP_STORE, ["com.example.app"], "C1")

    assert store.commits == []
