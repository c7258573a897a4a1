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
import tempfile
from pathlib import Path
from typing import List, Optional

import pathspec

from pkgrelease.common import KEYS_DIR, SRCINFO_FILENAME
from pkgrelease.config import Config
from pkgrelease.descriptor import PackageDescriptor
from pkgrelease.exc import (
    CommitFailed,
    EditorFailed,
    EmptyCommitMessage,
    KeyExportFailed,
    NoEditorAvailable,
    SrcinfoFailed,
)
from pkgrelease.executors import Executor, ExecutorError
from pkgrelease.log import get_logger
from pkgrelease.vcs import Git

log = get_logger("commit")


def get_commit_message(prefix: str, version: str, note: Optional[str] = None) -> str:
    message = f"{prefix}: {version}"
    if note:
        message = f"{message}: {note}"
    return message


class CommitEngine:
    """
    Stage release metadata and tracked changes, then create the release
    commit.

    Steps:
        - regenerate .SRCINFO and force-add it,
        - export declared PGP keys into keys/pgp and force-add them,
        - stop here if nothing changed since the last commit,
        - stage modified files, remove deleted files, commit.
    """

    def __init__(self, config: Config, executor: Executor, git: Git):
        self.config = config
        self.executor = executor
        self.git = git
        self.directory = git.directory
        self._exclude = pathspec.PathSpec.from_lines(
            "gitwildmatch", self.config.commit_exclude
        )

    def is_excluded(self, path: str) -> bool:
        return self._exclude.match_file(path)

    def update_srcinfo(self, descriptor: PackageDescriptor):
        cmd = self.config.srcinfo_command
        try:
            result = self.executor.run(cmd, cwd=self.directory, echo=False)
        except ExecutorError as e:
            msg = f"{descriptor}: Failed to generate {SRCINFO_FILENAME}."
            raise SrcinfoFailed(msg, result=e.result) from e
        (self.directory / SRCINFO_FILENAME).write_bytes(result.stdout)

        result = self.git.add(SRCINFO_FILENAME, force=True)
        if not result.ok:
            raise CommitFailed(
                f"{descriptor}: Failed to add {SRCINFO_FILENAME}.", result=result
            )

    def export_keys(self, descriptor: PackageDescriptor):
        if not descriptor.validpgpkeys:
            return
        keys_dir = self.directory / KEYS_DIR
        keys_dir.mkdir(parents=True, exist_ok=True)
        for key in descriptor.validpgpkeys:
            key_file = keys_dir / f"{key}.asc"
            if key_file.exists():
                continue
            log.info(f"{descriptor}: Exporting public key '{key}'.")
            cmd = [
                self.config.gpg_client,
                "--batch",
                "--armor",
                "--export",
                "--export-options",
                "export-minimal",
                key,
            ]
            try:
                result = self.executor.run(cmd, echo=False)
            except ExecutorError as e:
                raise KeyExportFailed(
                    f"{descriptor}: Failed to export public key '{key}'.",
                    result=e.result,
                ) from e
            if not result.stdout.strip():
                raise KeyExportFailed(
                    f"{descriptor}: Public key '{key}' not found in keyring.",
                    result=result,
                )
            key_file.write_bytes(result.stdout)

        result = self.git.add(str(KEYS_DIR), force=True)
        if not result.ok:
            raise CommitFailed(f"{descriptor}: Failed to add keys.", result=result)

    def stage_changes(self, descriptor: PackageDescriptor):
        log.info(f"{descriptor}: Staging files.")
        modified = [f for f in self.git.modified_files() if not self.is_excluded(f)]
        deleted = [f for f in self.git.deleted_files() if not self.is_excluded(f)]
        if modified:
            result = self.git.add(*modified)
            if not result.ok:
                raise CommitFailed(f"{descriptor}: Failed to stage files.", result=result)
        if deleted:
            result = self.git.remove_cached(*deleted)
            if not result.ok:
                raise CommitFailed(
                    f"{descriptor}: Failed to remove deleted files.", result=result
                )

    def get_editor(self) -> List[str]:
        for editor in (
            self.config.editor,
            self.config.git_editor,
            self.git.config_get("core.editor"),
            self.config.visual,
            self.config.env_editor,
        ):
            if editor:
                return shlex.split(editor)
        raise NoEditorAvailable(
            "No usable editor found (tried release editor, $GIT_EDITOR,"
            " git config core.editor, $VISUAL, $EDITOR)."
        )

    def commit_with_editor(self, descriptor: PackageDescriptor, template: str):
        fd, name = tempfile.mkstemp(prefix="pkgrelease.", suffix=".msg")
        msg_file = Path(name)
        try:
            with os.fdopen(fd, "w") as f:
                f.write(f"{template}\n")
            editor = self.get_editor()
            try:
                self.executor.run(
                    editor + [str(msg_file)], interactive=True, cwd=self.directory
                )
            except ExecutorError as e:
                raise EditorFailed(
                    f"{descriptor}: Editor '{shlex.join(editor)}' failed.",
                    result=e.result,
                ) from e
            if not msg_file.read_text().strip():
                raise EmptyCommitMessage(
                    f"{descriptor}: Aborting commit due to empty commit message."
                )
            result = self.git.commit(message_file=msg_file)
            if not result.ok:
                raise CommitFailed(f"{descriptor}: Failed to commit.", result=result)
        finally:
            msg_file.unlink(missing_ok=True)

    def run(self, descriptor: PackageDescriptor, note: Optional[str] = None) -> bool:
        """
        Returns True if a commit has been created.
        """
        self.update_srcinfo(descriptor)
        self.export_keys(descriptor)

        if not self.git.status():
            log.info(f"{descriptor}: No changes to commit.")
            return False

        self.stage_changes(descriptor)
        if not self.git.has_staged_changes():
            log.info(f"{descriptor}: Only excluded files changed, nothing to commit.")
            return False

        template = get_commit_message(
            self.config.commit_prefix, descriptor.full_version()
        )
        if note:
            message = get_commit_message(
                self.config.commit_prefix, descriptor.full_version(), note
            )
            result = self.git.commit(message=message)
            if not result.ok:
                raise CommitFailed(f"{descriptor}: Failed to commit.", result=result)
        else:
            self.commit_with_editor(descriptor, template)

        log.info(f"{descriptor}: Committed '{self.git.last_subject()}'.")
        return True
