import shutil
import subprocess

import pytest

from blimp.src.errors import StorageError
from blimp.src.storage.git_store import GitStore

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(path, *args):
    return subprocess.run(["git", *args], cwd=path, capture_output=True, text=True, check=True).stdout


@pytest.fixture
def remote(tmp_path):
    path = tmp_path / "remote.git"
    path.mkdir()
    git(path, "init", "--bare")
    return path


def test_init_write_and_commit(tmp_path):
    store = GitStore(tmp_path / "storage")
    store.clone_or_pull()

    store.write_file("certificates/ios/DEVELOPMENT/C1.p12", b"sealed")
    store.commit_and_push("Add certificate C1")

    assert store.file_exists("certificates/ios/DEVELOPMENT/C1.p12")
    assert store.read_file("certificates/ios/DEVELOPMENT/C1.p12") == b"sealed"
    assert "Add certificate C1" in git(store.path, "log", "--format=%s")


def test_commit_without_changes_is_skipped(tmp_path):
    store = GitStore(tmp_path / "storage")
    store.clone_or_pull()
    store.write_file("a.txt", b"a")
    store.commit_and_push("first")
    store.commit_and_push("second")

    assert git(store.path, "log", "--format=%s").split() == ["first"]


def test_list_files_returns_direct_children_with_suffix(tmp_path):
    store = GitStore(tmp_path / "storage")
    store.clone_or_pull()
    store.write_file("profiles/ios/IOS_APP_STORE/b.mobileprovision", b"b")
    store.write_file("profiles/ios/IOS_APP_STORE/a.mobileprovision", b"a")
    store.write_file("profiles/ios/IOS_APP_STORE/notes.txt", b"n")
    store.write_file("profiles/ios/IOS_APP_STORE/nested/c.mobileprovision", b"c")

    assert store.list_files("profiles/ios/IOS_APP_STORE", ".mobileprovision") == [
        "profiles/ios/IOS_APP_STORE/a.mobileprovision",
        "profiles/ios/IOS_APP_STORE/b.mobileprovision",
    ]
    assert store.list_files("profiles/macos") == []


def test_paths_cannot_escape_the_store(tmp_path):
    store = GitStore(tmp_path / "storage")
    store.clone_or_pull()
    with pytest.raises(StorageError):
        store.write_file("../outside.txt", b"x")
    with pytest.raises(StorageError):
        store.read_file("missing.p12")


def test_push_and_clone_round_trip(tmp_path, remote):
    writer = GitStore(tmp_path / "writer", remote=str(remote))
    writer.clone_or_pull()
    writer.write_file("profiles/ios/IOS_APP_STORE/com.example.app.mobileprovision", b"profile")
    writer.commit_and_push("Update profile com.example.app", push=True)

    reader = GitStore(tmp_path / "reader", remote=str(remote))
    reader.clone_or_pull()
    assert reader.read_file("profiles/ios/IOS_APP_STORE/com.example.app.mobileprovision") == b"profile"

    writer.write_file("certificates/ios/DISTRIBUTION/C1.p12", b"sealed")
    writer.commit_and_push("Add certificate C1", push=True)
    reader.clone_or_pull()
    assert reader.file_exists("certificates/ios/DISTRIBUTION/C1.p12")


def test_push_without_remote_fails(tmp_path):
    store = GitStore(tmp_path / "storage")
    store.clone_or_pull()
    store.write_file("a.txt", b"a")
    with pytest.raises(StorageError, match="no remote"):
        store.commit_and_push("first", push=True)


def test_set_remote_requires_initialized_store(tmp_path, remote):
    store = GitStore(tmp_path / "storage")
    with pytest.raises(StorageError):
        store.set_remote(str(remote))

    store.clone_or_pull()
    store.set_remote(str(remote))
    assert git(store.path, "remote", "get-url", "origin").strip() == str(remote)
