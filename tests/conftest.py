import logging
import shutil
import subprocess
from pathlib import Path

import pytest

from pkgrelease.config import Config
from pkgrelease.executors import CommandResult, Executor, ExecutorError
from pkgrelease.log import ReleaseRootLogger

PKGBUILD = """\
pkgname=foo
pkgver=1.0
pkgrel=1
arch=('x86_64')
source=("foo.patch" "https://example.org/$pkgname-$pkgver.tar.gz")
sha256sums=('SKIP' 'SKIP')

package() {
  install -Dm644 foo.patch "$pkgdir/usr/share/foo/foo.patch"
}
"""

FAKE_GPG = r"""#!/bin/sh
echo "gpg $*" >> "$FAKE_TOOLS_LOG"
mode=""
out=""
first=""
last=""
while [ $# -gt 0 ]; do
    case "$1" in
        --output) out="$2"; shift ;;
        --local-user|--export-options) shift ;;
        --detach-sign) mode=sign ;;
        --verify) mode=verify ;;
        --export) mode=export ;;
        --list-keys) mode=list ;;
        --*) ;;
        *) [ -z "$first" ] && first="$1"; last="$1" ;;
    esac
    shift
done
case "$mode" in
    sign)
        if [ -n "$FAKE_GPG_SIGN_FAIL" ]; then
            echo partial > "$out"
            echo "gpg: signing failed: No secret key" >&2
            exit 2
        fi
        cksum < "$last" > "$out"
        ;;
    verify)
        cksum < "$last" | cmp -s - "$first" || {
            echo "gpg: BAD signature" >&2
            exit 1
        }
        ;;
    export)
        [ "$last" = "$FAKE_GPG_UNKNOWN_KEY" ] && exit 0
        echo "-----BEGIN PGP PUBLIC KEY BLOCK-----"
        echo "$last"
        echo "-----END PGP PUBLIC KEY BLOCK-----"
        ;;
    list)
        [ "$last" = "$FAKE_GPG_UNKNOWN_KEY" ] && exit 2
        echo "pub   $last"
        ;;
esac
exit 0
"""

FAKE_RSYNC = """#!/bin/sh
echo "rsync $*" >> "$FAKE_TOOLS_LOG"
exit ${FAKE_RSYNC_RC:-0}
"""

FAKE_SSH = """#!/bin/sh
echo "ssh $*" >> "$FAKE_TOOLS_LOG"
exit ${FAKE_SSH_RC:-0}
"""

# .PKGINFO is read from a "<package file>.PKGINFO" file next to the package
FAKE_BSDTAR = """#!/bin/sh
echo "bsdtar $*" >> "$FAKE_TOOLS_LOG"
[ -f "$2.PKGINFO" ] || exit 1
cat "$2.PKGINFO"
"""

FAKE_MAKEPKG = """#!/bin/sh
echo "makepkg $*" >> "$FAKE_TOOLS_LOG"
echo "pkgbase = generated"
grep -E '^(pkgname|pkgver|pkgrel|epoch)=' PKGBUILD || true
"""

requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git is not available"
)


def git(directory, *args) -> str:
    return subprocess.run(
        ["git", "-C", str(directory), *args],
        check=True,
        capture_output=True,
        text=True,
    ).stdout


def write_script(path: Path, content: str) -> Path:
    path.write_text(content)
    path.chmod(0o755)
    return path


class FakeTools:
    def __init__(self, directory: Path):
        self.bin = directory / "bin"
        self.bin.mkdir(parents=True, exist_ok=True)
        self.log_file = directory / "tools.log"
        self.log_file.touch()
        self.gpg = write_script(self.bin / "gpg", FAKE_GPG)
        self.rsync = write_script(self.bin / "rsync", FAKE_RSYNC)
        self.ssh = write_script(self.bin / "ssh", FAKE_SSH)
        self.bsdtar = write_script(self.bin / "bsdtar", FAKE_BSDTAR)
        self.makepkg = write_script(self.bin / "makepkg", FAKE_MAKEPKG)

    def calls(self, tool=None):
        lines = self.log_file.read_text().splitlines()
        if tool:
            lines = [line for line in lines if line.split(" ", 1)[0] == tool]
        return lines

    def config(self, package_dir, **kwargs):
        conf = {
            "package-dir": str(package_dir),
            "srcinfo-command": [str(self.makepkg), "--printsrcinfo"],
            "gpg-client": str(self.gpg),
            "rsync-client": str(self.rsync),
            "ssh-client": str(self.ssh),
            "bsdtar-client": str(self.bsdtar),
            "upload": {"remote-host": "repo.example.org", "remote-path": "staging"},
        }
        conf.update(kwargs)
        return Config(conf)


class RecordingExecutor(Executor):
    """
    Record commands instead of running them. Return codes are looked up by
    program name in `returncodes`.
    """

    def __init__(self, returncodes=None, outputs=None):
        super().__init__()
        self.commands = []
        self.returncodes = returncodes or {}
        self.outputs = outputs or {}

    def run(self, cmd, check=True, **kwargs):
        cmd = [str(c) for c in cmd]
        self.commands.append(cmd)
        name = Path(cmd[0]).name
        result = CommandResult(
            cmd,
            self.returncodes.get(name, 0),
            self.outputs.get(name, b""),
            b"error" if self.returncodes.get(name, 0) else b"",
        )
        if check and not result.ok:
            raise ExecutorError(f"Failed to run '{name}'.", result=result)
        return result


@pytest.fixture
def release_env(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Packager")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "packager@example.org")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Packager")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "packager@example.org")
    for name in (
        "PKGRELEASE_EDITOR",
        "GIT_EDITOR",
        "VISUAL",
        "EDITOR",
        "GPGKEY",
        "PKGDEST",
        "PKGRELEASE_RSYNC_OPTIONS",
        "GIT_CONFIG_GLOBAL",
        "FAKE_GPG_SIGN_FAIL",
        "FAKE_GPG_UNKNOWN_KEY",
        "FAKE_RSYNC_RC",
        "FAKE_SSH_RC",
    ):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def tools(tmp_path, release_env, monkeypatch):
    fake_tools = FakeTools(tmp_path)
    monkeypatch.setenv("FAKE_TOOLS_LOG", str(fake_tools.log_file))
    return fake_tools


@pytest.fixture
def package_repo(tmp_path, release_env):
    """
    A git repository on branch main with a committed PKGBUILD.
    """
    repo = tmp_path / "foo"
    repo.mkdir()
    git(repo, "init", "-q", "-b", "main")
    git(repo, "config", "commit.gpgsign", "false")
    (repo / "PKGBUILD").write_text(PKGBUILD)
    (repo / "foo.patch").write_text("--- a\n+++ b\n")
    git(repo, "add", "PKGBUILD", "foo.patch")
    git(repo, "commit", "-q", "-m", "initial")
    return repo


@pytest.fixture
def remote_repo(tmp_path, package_repo):
    """
    A bare repository set as upstream of package_repo main branch.
    """
    remote = tmp_path / "remote.git"
    subprocess.run(
        ["git", "init", "-q", "--bare", str(remote)], check=True, capture_output=True
    )
    git(package_repo, "remote", "add", "origin", str(remote))
    git(package_repo, "push", "-q", "--set-upstream", "origin", "main")
    return remote


@pytest.fixture(autouse=True)
def restore_logger():
    # init_logger() replaces handlers of the shared root logger
    handlers = list(ReleaseRootLogger.handlers)
    level = ReleaseRootLogger.level
    propagate = ReleaseRootLogger.propagate
    yield
    ReleaseRootLogger.handlers = handlers
    ReleaseRootLogger.setLevel(level)
    ReleaseRootLogger.propagate = propagate


@pytest.fixture
def release_log(caplog):
    ReleaseRootLogger.handlers = [caplog.handler]
    ReleaseRootLogger.setLevel(logging.DEBUG)
    ReleaseRootLogger.propagate = False
    return caplog


def make_package_file(directory: Path, name: str, version="1.0-1", arch="x86_64"):
    path = directory / f"{name}-{version}-{arch}.pkg.tar.zst"
    path.write_bytes(f"{name} {version} {arch}".encode())
    return path


def warnings(caplog):
    return [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
