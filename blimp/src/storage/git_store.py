import subprocess
from pathlib import Path
from typing import List, Optional

from blimp.logger import get_console
from blimp.src.errors import StorageError

console = get_console()

DEFAULT_AUTHOR_NAME = "blimp"
DEFAULT_AUTHOR_EMAIL = "blimp@localhost"


class GitStore:
    """Artifact store backed by a local git working tree.

    All paths are relative to the working tree root. The store assumes a single
    writer: concurrent runs against the same remote must be serialized by the caller.
    """

    def __init__(self, path: Path, remote: Optional[str] = None):
        self.path = Path(path).expanduser().resolve()
        self.remote = remote

    def _git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            raise StorageError("git executable not found") from e

        if check and result.returncode != 0:
            raise StorageError(
                f"git {args[0]} failed: {result.stderr.strip() or result.stdout.strip()}"
            )
        return result

    def _resolve(self, relative: str) -> Path:
        target = (self.path / relative).resolve()
        if target != self.path and self.path not in target.parents:
            raise StorageError(f"Path escapes the store: {relative}")
        return target

    def _has_origin(self) -> bool:
        return "origin" in self._git("remote").stdout.split()

    def _current_branch(self) -> str:
        return self._git("symbolic-ref", "--short", "HEAD").stdout.strip()

    def clone_or_pull(self) -> None:
        """Make the working tree current: clone, init, or pull from origin"""
        self.path.mkdir(parents=True, exist_ok=True)

        if not (self.path / ".git").exists():
            if self.remote and not any(self.path.iterdir()):
                console.print(f"[blue]Cloning storage from {self.remote}...")
                self._git("clone", self.remote, ".")
                return
            console.print(f"[blue]Initializing storage at {self.path}")
            self._git("init")
            if self.remote:
                self._git("remote", "add", "origin", self.remote)
            return

        if self.remote and not self._has_origin():
            self._git("remote", "add", "origin", self.remote)

        if not self._has_origin():
            return

        branch = self._current_branch()
        heads = self._git("ls-remote", "--heads", "origin", branch).stdout
        if not heads.strip():
            # Remote has no such branch yet, nothing to pull
            return
        self._git("pull", "--rebase", "origin", branch)

    def file_exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def read_file(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise StorageError(f"File not found in storage: {path}")
        return target.read_bytes()

    def write_file(self, path: str, content: bytes) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    def list_files(self, directory: str, suffix: str = "") -> List[str]:
        """Relative paths of the files directly inside directory"""
        target = self._resolve(directory)
        if not target.is_dir():
            return []
        return sorted(
            entry.relative_to(self.path).as_posix()
            for entry in target.iterdir()
            if entry.is_file() and entry.name.endswith(suffix)
        )

    def commit_and_push(self, message: str, push: bool = False) -> None:
        self._git("add", "-A")
        if not self._git("status", "--porcelain").stdout.strip():
            console.print("[yellow]Storage has no changes, skipping commit")
            return

        identity = []
        if not self._git("config", "user.email", check=False).stdout.strip():
            identity = [
                "-c",
                f"user.name={DEFAULT_AUTHOR_NAME}",
                "-c",
                f"user.email={DEFAULT_AUTHOR_EMAIL}",
            ]
        self._git(*identity, "commit", "-m", message)
        console.print(f"[green]Committed:[/] {message}")

        if push:
            if not self._has_origin():
                raise StorageError("Cannot push: storage has no remote configured")
            self._git("push", "-u", "origin", "HEAD")
            console.print("[green]Pushed storage changes")

    def set_remote(self, url: str) -> None:
        if not (self.path / ".git").exists():
            raise StorageError(f"Storage at {self.path} is not initialized")
        if self._has_origin():
            self._git("remote", "set-url", "origin", url)
        else:
            self._git("remote", "add", "origin", url)
        self.remote = url
        console.print(f"[green]Storage remote set to {url}")
