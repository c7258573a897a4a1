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
import shlex
from pathlib import Path
from typing import List

from pkgrelease.common import SIGNATURE_SUFFIX
from pkgrelease.config import Config
from pkgrelease.exc import ConfigError, RemoteDatabaseUpdateFailed, UploadFailed
from pkgrelease.executors import Executor, ExecutorError
from pkgrelease.log import get_logger

log = get_logger("upload")


class Uploader:
    """
    Transfer package files and signatures with a single rsync call, then
    register the packages in the remote database with a single ssh call.
    """

    def __init__(self, config: Config, executor: Executor):
        self.config = config
        self.executor = executor

    def get_remote_host(self) -> str:
        if not self.config.remote_host:
            raise ConfigError("No remote host configured for upload (upload:remote-host).")
        return self.config.remote_host

    def get_remote_path(self) -> str:
        remote_path = self.config.remote_path.rstrip("/")
        if not remote_path:
            raise ConfigError(
                "No remote path configured for upload (upload:remote-path)."
            )
        return remote_path

    def get_remote_paths(self, upload_set: List[Path]) -> List[str]:
        remote_path = self.get_remote_path()
        return [
            f"{remote_path}/{path.name}"
            for path in upload_set
            if not path.name.endswith(SIGNATURE_SUFFIX)
        ]

    def get_database_command(self, remote_paths: List[str]) -> str:
        cmd = " ".join(
            [self.config.db_add_command] + [shlex.quote(p) for p in remote_paths]
        )
        if self.config.db_update_command:
            cmd = f"{cmd} && {self.config.replace_placeholders(self.config.db_update_command)}"
        return cmd

    def transfer(self, remote_host: str, files: List[Path]):
        destination = f"{remote_host}:{self.get_remote_path()}/"
        cmd = (
            [self.config.rsync_client]
            + self.config.rsync_options
            + ["--"]
            + [str(f) for f in files]
            + [destination]
        )
        log.info(f"Uploading {len(files)} files to '{destination}'.")
        try:
            self.executor.run(cmd)
        except ExecutorError as e:
            raise UploadFailed(
                f"Failed to upload files to '{destination}'.", result=e.result
            ) from e

    def update_database(self, remote_host: str, remote_paths: List[str]):
        cmd = self.get_database_command(remote_paths)
        log.info(f"Updating remote database '{self.config.remote_database}'.")
        try:
            self.executor.run([self.config.ssh_client, remote_host, cmd])
        except ExecutorError as e:
            raise RemoteDatabaseUpdateFailed(
                f"Failed to update remote database on '{remote_host}'.",
                result=e.result,
            ) from e

    def run(self, upload_set: List[Path]):
        remote_host = self.get_remote_host()
        files = [Path(p).resolve() for p in upload_set]
        self.transfer(remote_host, files)
        self.update_database(remote_host, self.get_remote_paths(files))
