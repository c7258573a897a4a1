import pytest

from conftest import RecordingExecutor, make_package_file
from pkgrelease.artifacts import Artifact
from pkgrelease.config import Config
from pkgrelease.descriptor import read_descriptor
from pkgrelease.exc import InvalidSignature, SigningFailed
from pkgrelease.executors.local import LocalExecutor
from pkgrelease.signing import Signer


def make_artifact(directory, name="foo"):
    return Artifact(name, "1.0-1", "x86_64", make_package_file(directory, name))


def make_signer(tools, directory, **kwargs):
    return Signer(tools.config(directory, **kwargs), LocalExecutor(directory=directory))


def test_sign(tools, tmp_path):
    artifact = make_artifact(tmp_path)
    signer = make_signer(tools, tmp_path, **{"sign-key": "0123456789ABCDEF"})

    assert signer.sign(artifact) == artifact.signature
    assert artifact.signature.exists()

    sign, verify = tools.calls("gpg")
    assert sign == (
        "gpg --detach-sign --use-agent --no-armor --local-user 0123456789ABCDEF"
        f" --output {artifact.signature} {artifact.path}"
    )
    assert verify == f"gpg --verify {artifact.signature} {artifact.path}"


def test_sign_without_key(tools, tmp_path):
    artifact = make_artifact(tmp_path)
    make_signer(tools, tmp_path).sign(artifact)
    assert "--local-user" not in tools.calls("gpg")[0]


def test_sign_existing_signature_is_verified(tools, tmp_path):
    artifact = make_artifact(tmp_path)
    signer = make_signer(tools, tmp_path)
    signer.sign(artifact)

    signer.sign(artifact)
    calls = tools.calls("gpg")
    assert len(calls) == 3
    assert calls[-1].startswith("gpg --verify")


def test_sign_invalid_existing_signature(tools, tmp_path):
    artifact = make_artifact(tmp_path)
    artifact.signature.write_bytes(b"not a signature")

    with pytest.raises(InvalidSignature):
        make_signer(tools, tmp_path).sign(artifact)
    # signing is skipped, the bad signature is kept
    assert [c.split()[1] for c in tools.calls("gpg")] == ["--verify"]
    assert artifact.signature.read_bytes() == b"not a signature"


def test_sign_failure_removes_partial_signature(tools, tmp_path, monkeypatch):
    monkeypatch.setenv("FAKE_GPG_SIGN_FAIL", "1")
    artifact = make_artifact(tmp_path)

    with pytest.raises(SigningFailed):
        make_signer(tools, tmp_path).sign(artifact)
    assert not artifact.signature.exists()
    assert len(tools.calls("gpg")) == 1


def test_sign_all_order(tools, tmp_path):
    foo = make_artifact(tmp_path, "foo")
    bar = make_artifact(tmp_path, "bar")

    upload_set = make_signer(tools, tmp_path).sign_all([foo, bar])
    assert upload_set == [foo.path, foo.signature, bar.path, bar.signature]


def test_check_keys(tmp_path):
    (tmp_path / "PKGBUILD").write_text(
        "pkgname=foo\npkgver=1\npkgrel=1\narch=(any)\nvalidpgpkeys=(AAAA BBBB)\n"
    )
    descriptor = read_descriptor(tmp_path)
    executor = RecordingExecutor(returncodes={"gpg": 2})
    signer = Signer(Config({"package-dir": str(tmp_path)}), executor)
    assert signer.check_keys(descriptor) == ["AAAA", "BBBB"]
    assert executor.commands == [
        ["gpg", "--batch", "--list-keys", "AAAA"],
        ["gpg", "--batch", "--list-keys", "BBBB"],
    ]


def test_check_keys_present(tools, tmp_path, monkeypatch):
    monkeypatch.setenv("FAKE_GPG_UNKNOWN_KEY", "BBBB")
    (tmp_path / "PKGBUILD").write_text(
        "pkgname=foo\npkgver=1\npkgrel=1\narch=(any)\nvalidpgpkeys=(AAAA BBBB)\n"
    )
    signer = make_signer(tools, tmp_path)
    assert signer.check_keys(read_descriptor(tmp_path)) == ["BBBB"]
