import pytest

from pkgrelease.cli.cli_main import parse_config_from_cli
from pkgrelease.common import (
    get_source_location,
    is_filename_valid,
    is_remote_source,
    sanitize_line,
    str_to_bool,
)


def test_filename():
    assert is_filename_valid("foo-bar_1.2+git@3")
    assert not is_filename_valid("foo$bar")
    assert not is_filename_valid("-foo")
    assert not is_filename_valid(".foo")
    assert not is_filename_valid("")


def test_source_location():
    assert get_source_location("foo.patch") == "foo.patch"
    assert (
        get_source_location("foo-1.0.tar.gz::https://example.org/v1.0.tar.gz")
        == "https://example.org/v1.0.tar.gz"
    )
    assert get_source_location("renamed::local.patch") == "local.patch"


def test_remote_source():
    assert is_remote_source("https://example.org/foo.tar.gz")
    assert is_remote_source("foo::git+https://example.org/foo.git#tag=v1")
    assert not is_remote_source("foo.patch")
    assert not is_remote_source("foo.tar.gz::foo.patch")


def test_sanitize_line():
    assert sanitize_line(b"hello\x1b[0m\tworld") == "hello.[0m.world"


def test_str_to_bool():
    assert str_to_bool("True")
    assert str_to_bool("yes")
    assert str_to_bool("1")
    assert not str_to_bool("false")
    assert not str_to_bool("whatever")


def test_parse_config_entry_from_array_01():
    array = [
        "upload:remote-host=repo.example.org",
        "upload:remote-path=/srv/repo/staging",
        "commit-prefix=bump",
        "require-all-artifacts=True",
    ]
    parsed_dict = parse_config_from_cli(array)
    expected_dict = {
        "upload": {
            "remote-host": "repo.example.org",
            "remote-path": "/srv/repo/staging",
        },
        "commit-prefix": "bump",
        "require-all-artifacts": True,
    }

    assert parsed_dict == expected_dict


def test_parse_config_entry_from_array_02():
    array = [" =wrongkey"]
    with pytest.raises(ValueError) as e:
        parse_config_from_cli(array)
    assert " " in e.value.args[0]

    array = ["_=wrongkey"]
    with pytest.raises(ValueError) as e:
        parse_config_from_cli(array)
    assert "_" in e.value.args[0]


def test_parse_config_entry_from_array_03():
    array = ["commit-exclude+*.log", "commit-exclude+notes/"]
    parsed_dict = parse_config_from_cli(array)
    expected_dict = {"commit-exclude": ["*.log", "notes/"]}
    assert parsed_dict == expected_dict


def test_parse_config_entry_from_array_04():
    array = ["upload:db-add-command=repo-add --remove --sign @DATABASE@"]
    parsed_dict = parse_config_from_cli(array)
    expected_dict = {
        "upload": {"db-add-command": "repo-add --remove --sign @DATABASE@"},
    }
    assert parsed_dict == expected_dict


def test_parse_config_entry_from_array_05():
    array = ["tata:titi:toto=many=equals"]
    parsed_dict = parse_config_from_cli(array)
    expected_dict = {
        "tata": {"titi": {"toto": "many=equals"}},
    }
    assert parsed_dict == expected_dict


def test_parse_config_entry_from_array_06():
    array = ["tata:titi+toto:some=thing"]
    parsed_dict = parse_config_from_cli(array)
    expected_dict = {"tata": {"titi": [{"toto": {"some": "thing"}}]}}
    assert parsed_dict == expected_dict


def test_parse_config_entry_from_array_07():
    array = ["upload:remote-host"]
    with pytest.raises(ValueError):
        parse_config_from_cli(array)
