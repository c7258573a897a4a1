import pytest
import yaml
from click.testing import CliRunner

from conftest import git, make_package_file, requires_git
from pkgrelease.cli.cli_main import main

pytestmark = requires_git


@pytest.fixture
def config_file(tmp_path, tools, package_repo):
    pkgdest = tmp_path / "pkgdest"
    pkgdest.mkdir()
    conf = {
        "package-dir": str(package_repo),
        "pkgdest": str(pkgdest),
        "srcinfo-command": [str(tools.makepkg), "--printsrcinfo"],
        "gpg-client": str(tools.gpg),
        "rsync-client": str(tools.rsync),
        "ssh-client": str(tools.ssh),
        "bsdtar-client": str(tools.bsdtar),
        "upload": {"remote-host": "repo.example.org", "remote-path": "/srv/repo"},
    }
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump(conf))
    return path


def invoke(*args):
    return CliRunner().invoke(main, [str(a) for a in args])


def test_help():
    result = invoke("--help")
    assert result.exit_code == 0
    for option in ("--no-commit", "--push", "--upload", "--option", "--config"):
        assert option in result.output
    assert "key+value" in result.output


def test_release(tmp_path, package_repo, tools, config_file):
    make_package_file(tmp_path / "pkgdest", "foo")

    result = invoke("--config", config_file, "--upload", "rebuild", "for", "libfoo")

    assert result.exit_code == 0, result.output
    assert git(package_repo, "log", "-1", "--format=%s").strip() == (
        "upgpkg: 1.0-1: rebuild for libfoo"
    )
    assert len(tools.calls("rsync")) == 1
    assert tools.calls("ssh")[0].endswith("/srv/repo/foo-1.0-1-x86_64.pkg.tar.zst")


def test_release_no_commit(package_repo, tools, config_file):
    result = invoke("--config", config_file, "--no-commit")
    assert result.exit_code == 0, result.output
    assert git(package_repo, "rev-list", "--count", "HEAD").strip() == "1"
    assert tools.calls("makepkg") == []


def test_release_options_override_config(package_repo, tools, config_file):
    result = invoke(
        "--config", config_file, "-o", "commit-prefix=bump", "--verbose", "a note"
    )
    assert result.exit_code == 0, result.output
    assert git(package_repo, "log", "-1", "--format=%s").strip() == (
        "bump: 1.0-1: a note"
    )


def test_release_fatal_error(package_repo, tools, config_file):
    git(package_repo, "checkout", "-q", "-b", "feature")

    result = invoke("--config", config_file, "note")
    assert result.exit_code == 1
    assert "An error occurred" in result.output
    assert "main" in result.output
    assert "Traceback" not in result.output


def test_release_fatal_error_debug(package_repo, tools, config_file):
    git(package_repo, "checkout", "-q", "-b", "feature")

    result = invoke("--config", config_file, "--debug", "note")
    assert result.exit_code == 1
    assert "Traceback" in result.output
    assert "WrongBranch" in result.output


def test_release_invalid_option(config_file):
    result = invoke("--config", config_file, "-o", "_=value")
    assert result.exit_code == 1
    assert "Failed to parse CLI options" in result.output


def test_release_missing_config(tmp_path, release_env):
    result = invoke("--config", tmp_path / "missing.yml")
    assert result.exit_code == 1
    assert "Cannot find configuration" in result.output


def test_release_log_file(tmp_path, package_repo, tools, config_file):
    log_file = tmp_path / "release.log"
    result = invoke("--config", config_file, "--log-file", log_file, "note")
    assert result.exit_code == 0, result.output
    assert "Committed 'upgpkg: 1.0-1: note'" in log_file.read_text()
