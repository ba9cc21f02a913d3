import plistlib

import pytest
from asn1crypto import cms

from blimp.src.appstore.models import Platform, ProfileType
from blimp.src.errors import InvalidProfileError
from blimp.src.provisioning.profile_installer import (
    ProfileInstaller,
    dump_profile,
    matches_pattern,
    profile_uuid,
)
from blimp.src.provisioning.profile_sync import profile_path


def make_profile(uuid: str, name: str = "Test") -> bytes:
    plist = plistlib.dumps({"UUID": uuid, "Name": name})
    return cms.ContentInfo(
        {
            "content_type": "signed_data",
            "content": cms.SignedData(
                {
                    "version": "v1",
                    "digest_algorithms": [],
                    "encap_content_info": {"content_type": "data", "content": plist},
                    "signer_infos": [],
                }
            ),
        }
    ).dump()


def test_dump_profile_reads_embedded_plist():
    assert dump_profile(make_profile("1111-2222", "Dev"))["Name"] == "Dev"
    assert profile_uuid(make_profile("1111-2222")) == "1111-2222"


def test_garbage_is_not_a_profile():
    with pytest.raises(InvalidProfileError):
        dump_profile(b"definitely not der")


@pytest.mark.parametrize(
    "bundle_id, pattern, expected",
    [
        ("com.example.app", "com.example.app", True),
        ("com.example.app", "com.example.*", True),
        ("com.example.app.widget", "com.example.*.widget", True),
        ("com.other.app", "com.example.*", False),
        ("com.example.app2", "com.example.app", False),
    ],
)
def test_matches_pattern(bundle_id, pattern, expected):
    assert matches_pattern(bundle_id, pattern) is expected


def test_install_copies_profiles_named_by_uuid(store, tmp_path):
    store.files[profile_path("com.example.app", ProfileType.IOS_APP_STORE, Platform.IOS)] = make_profile("AAA")
    store.files[profile_path("com.example.widget", ProfileType.IOS_APP_STORE, Platform.IOS)] = make_profile("BBB")
    store.files[profile_path("com.other.app", ProfileType.IOS_APP_STORE, Platform.IOS)] = make_profile("CCC")
    destination = tmp_path / "Provisioning Profiles"

    installed = ProfileInstaller(store, destination).install_profiles(
        Platform.IOS, ProfileType.IOS_APP_STORE, "com.example.*"
    )

    assert [p.bundle_id for p in installed] == ["com.example.app", "com.example.widget"]
    assert sorted(path.name for path in destination.iterdir()) == [
        "AAA.mobileprovision",
        "BBB.mobileprovision",
    ]
    assert store.pulls == 1


def test_install_with_nothing_stored(store, tmp_path):
    assert ProfileInstaller(store, tmp_path).install_profiles(Platform.MACOS, ProfileType.MAC_APP_STORE) == []
