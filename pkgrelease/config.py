# pkgrelease - release pipeline for locally built packages
#
# Copyright (C) 2025 pkgrelease contributors
#
# This program is free software; you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation; either version 2 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License along
# with this program. If not, see <https://www.gnu.org/licenses/>.
#
# SPDX-License-Identifier: GPL-3.0-or-later
import os
import shlex
from copy import deepcopy
from pathlib import Path
from typing import Union, List, Dict, Any, Optional

import yaml

from pkgrelease.descriptor import read_shell_variables
from pkgrelease.exc import ConfigError, DescriptorUnreadable
from pkgrelease.log import get_logger

log = get_logger("config")

DEFAULT_RSYNC_OPTIONS = [
    "-e",
    "@SSH_CLIENT@",
    "-p",
    "--chmod=ug=rw,o=r",
    "-c",
    "-h",
    "-L",
    "--progress",
    "--partial",
    "-y",
]

DEFAULTS: Dict[str, Any] = {
    "verbose": False,
    "debug": False,
    "commit-prefix": "upgpkg",
    "commit-exclude": [],
    "srcinfo-command": ["makepkg", "--printsrcinfo"],
    "gpg-client": "gpg",
    "rsync-client": "rsync",
    "rsync-options": DEFAULT_RSYNC_OPTIONS,
    "ssh-client": "ssh",
    "bsdtar-client": "bsdtar",
    "validate-signing-keys": False,
    "require-all-artifacts": False,
    "upload": {
        "remote-host": "",
        "remote-path": "staging",
        "database": "@REMOTE_PATH@/repo.db.tar.zst",
        "db-add-command": "repo-add --remove @DATABASE@",
        "db-update-command": "",
    },
}

# Build tool configuration, later files override earlier ones.
MAKEPKG_CONF_FILES = [
    Path("/etc/makepkg.conf"),
    Path("~/.makepkg.conf"),
    Path("@XDG_CONFIG_HOME@/pacman/makepkg.conf"),
]
MAKEPKG_CONF_KEYS = {"GPGKEY": "sign-key", "PKGDEST": "pkgdest"}

# Environment variables recognized, with the configuration key they set.
ENVIRONMENT_KEYS = {
    "PKGRELEASE_EDITOR": "editor",
    "GIT_EDITOR": "git-editor",
    "VISUAL": "visual",
    "EDITOR": "env-editor",
    "GPGKEY": "sign-key",
    "PKGDEST": "pkgdest",
    "PKGRELEASE_RSYNC_OPTIONS": "rsync-options",
}


def deep_merge(a: dict, b: dict, allow_append: bool = False) -> dict:
    result = deepcopy(a)
    for b_key, b_value in b.items():
        a_value = result.get(b_key, None)
        if isinstance(a_value, dict) and isinstance(b_value, dict):
            result[b_key] = deep_merge(a_value, b_value, allow_append)
        else:
            if allow_append and isinstance(result.get(b_key, None), list):
                result[b_key] += deepcopy(b_value)
            else:
                result[b_key] = deepcopy(b_value)
    return result


def as_command(value: Union[str, List[str], None]) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    return [str(v) for v in value]


def get_config_home(environ) -> Path:
    return Path(environ.get("XDG_CONFIG_HOME") or Path("~/.config").expanduser())


class Config:
    def __init__(self, conf: dict = None, conf_file: Optional[Path] = None):  # type: ignore
        # Keep path of configuration file
        self._conf_file = conf_file
        self._conf = deep_merge(DEFAULTS, conf or {})

    # fmt: off
    # Mypy does not support this form yet (see https://github.com/python/mypy/issues/8083).
    verbose: Union[bool, property]               = property(lambda self: self.get("verbose", False))
    debug: Union[bool, property]                 = property(lambda self: self.get("debug", False))
    commit_prefix: Union[str, property]          = property(lambda self: self.get("commit-prefix", "upgpkg"))
    commit_exclude: Union[List, property]        = property(lambda self: self.get("commit-exclude", []))
    srcinfo_command: Union[List, property]       = property(lambda self: as_command(self.get("srcinfo-command")))
    gpg_client: Union[str, property]             = property(lambda self: self.get("gpg-client", "gpg"))
    sign_key: Union[str, property]               = property(lambda self: self.get("sign-key", ""))
    bsdtar_client: Union[str, property]          = property(lambda self: self.get("bsdtar-client", "bsdtar"))
    rsync_client: Union[str, property]           = property(lambda self: self.get("rsync-client", "rsync"))
    rsync_options: Union[List, property]         = property(lambda self: [self.replace_placeholders(o) for o in as_command(self.get("rsync-options"))])
    ssh_client: Union[str, property]             = property(lambda self: self.get("ssh-client", "ssh"))
    validate_signing_keys: Union[bool, property] = property(lambda self: self.get("validate-signing-keys", False))
    require_all_artifacts: Union[bool, property] = property(lambda self: self.get("require-all-artifacts", False))
    editor: Union[str, property]                 = property(lambda self: self.get("editor", ""))
    git_editor: Union[str, property]             = property(lambda self: self.get("git-editor", ""))
    visual: Union[str, property]                 = property(lambda self: self.get("visual", ""))
    env_editor: Union[str, property]             = property(lambda self: self.get("env-editor", ""))
    remote_host: Union[str, property]            = property(lambda self: self.get("upload", {}).get("remote-host", ""))
    remote_path: Union[str, property]            = property(lambda self: self.get("upload", {}).get("remote-path", ""))
    db_update_command: Union[str, property]      = property(lambda self: self.get("upload", {}).get("db-update-command", ""))
    # fmt: on

    def __repr__(self):
        return f"<Config {str(self._conf_file)}>"

    @property
    def package_dir(self) -> Path:
        return Path(self.get("package-dir") or Path.cwd()).expanduser().resolve()

    @property
    def pkgdest(self) -> Optional[Path]:
        pkgdest = self.get("pkgdest", None)
        return Path(pkgdest).expanduser() if pkgdest else None

    def get_placeholders(self):
        # @DATABASE@ comes first as its value may contain @REMOTE_PATH@
        return {
            "@DATABASE@": self.get("upload", {}).get("database", ""),
            "@REMOTE_PATH@": self.remote_path,
            "@SSH_CLIENT@": self.ssh_client,
        }

    def replace_placeholders(self, s: str):
        for key, val in self.get_placeholders().items():
            s = s.replace(key, str(val))
        return s

    @property
    def remote_database(self) -> str:
        return self.replace_placeholders("@DATABASE@")

    @property
    def db_add_command(self) -> str:
        return self.replace_placeholders(
            self.get("upload", {}).get("db-add-command", "")
        )

    @classmethod
    def _load_config(cls, conf_file: Path):
        if not conf_file.exists():
            raise ConfigError(f"Cannot find configuration '{conf_file}'.")
        try:
            conf = yaml.safe_load(conf_file.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config '{conf_file}'.") from e
        if not isinstance(conf, dict):
            raise ConfigError(f"Invalid configuration '{conf_file}'.")

        included_conf = conf.pop("include", [])

        # Included configs first, main config values override them
        combined_conf: Dict[str, Any] = {}
        for inc in included_conf:
            inc_path = Path(inc).expanduser()
            if not inc_path.is_absolute():
                inc_path = conf_file.parent / inc_path
            combined_conf = deep_merge(combined_conf, cls._load_config(inc_path))
        return deep_merge(combined_conf, conf)

    @staticmethod
    def _load_makepkg_config(files: List[Path], environ) -> Dict[str, Any]:
        conf: Dict[str, Any] = {}
        variables: Dict = {}
        for path in files:
            path = Path(
                str(path).replace("@XDG_CONFIG_HOME@", str(get_config_home(environ)))
            ).expanduser()
            if not path.exists():
                continue
            try:
                variables = read_shell_variables(path, variables).variables
            except DescriptorUnreadable as e:
                raise ConfigError(f"Failed to parse build tool configuration '{path}'.") from e
            log.debug(f"Read build tool configuration '{path}'.")
        for name, key in MAKEPKG_CONF_KEYS.items():
            value = variables.get(name)
            if value and isinstance(value, str):
                conf[key] = value
        return conf

    @staticmethod
    def _load_environment(environ) -> Dict[str, Any]:
        conf: Dict[str, Any] = {}
        for name, key in ENVIRONMENT_KEYS.items():
            value = environ.get(name)
            if not value:
                continue
            conf[key] = shlex.split(value) if key == "rsync-options" else value
        return conf

    @classmethod
    def load(
        cls,
        conf_file: Union[Path, str, None] = None,
        options: Optional[Dict] = None,
        environ=None,
        makepkg_conf_files: Optional[List[Path]] = None,
    ) -> "Config":
        """
        Single place where the process environment is read. Lowest priority
        first: defaults, build tool configuration files, configuration file,
        environment and finally command line options.
        """
        environ = os.environ if environ is None else environ
        if makepkg_conf_files is None:
            makepkg_conf_files = MAKEPKG_CONF_FILES

        conf = cls._load_makepkg_config(makepkg_conf_files, environ)

        if conf_file:
            conf_file = Path(conf_file).expanduser().resolve()
            conf = deep_merge(conf, cls._load_config(conf_file))
        else:
            default_conf_file = get_config_home(environ) / "pkgrelease" / "config.yml"
            if default_conf_file.exists():
                conf_file = default_conf_file
                conf = deep_merge(conf, cls._load_config(conf_file))

        conf = deep_merge(conf, cls._load_environment(environ))

        if options and isinstance(options, dict):
            conf = deep_merge(conf, options)

        return cls(conf, conf_file)  # type: ignore

    def get(self, key, default=None):
        return self._conf.get(key, default)

    def set(self, key, value):
        self._conf[key] = value
