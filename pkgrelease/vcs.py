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
from pathlib import Path
from typing import List, Optional

from pkgrelease.common import (
    DESCRIPTOR_FILENAME,
    KEYS_DIR,
    RELEASE_BRANCH,
    get_source_location,
    is_remote_source,
)
from pkgrelease.descriptor import PackageDescriptor
from pkgrelease.exc import DetachedHead, WrongBranch, UntrackedRequiredFile
from pkgrelease.executors import CommandResult, Executor
from pkgrelease.log import get_logger

log = get_logger("vcs")


class Git:
    """
    Thin wrapper over the git command line for a single working tree. Queries
    return values, mutations return the CommandResult so callers decide which
    error kind a failure is.
    """

    def __init__(self, executor: Executor, directory: Path):
        self.executor = executor
        self.directory = Path(directory)

    def run(self, *args, **kwargs) -> CommandResult:
        kwargs.setdefault("check", False)
        return self.executor.run(
            ["git", "-C", str(self.directory), *args], **kwargs
        )

    def _list(self, *args) -> List[str]:
        result = self.run(*args, "-z")
        return [entry for entry in result.output.split("\0") if entry]

    def current_branch(self) -> Optional[str]:
        result = self.run("symbolic-ref", "--quiet", "--short", "HEAD")
        if not result.ok:
            return None
        return result.output.strip() or None

    def is_tracked(self, path: str) -> bool:
        return self.run("ls-files", "--error-unmatch", "--", path).ok

    def status(self) -> List[str]:
        result = self.run("status", "--porcelain", "--untracked-files=no")
        return result.lines()

    def has_staged_changes(self) -> bool:
        # exit status 1 means the index differs from HEAD
        return not self.run("diff", "--cached", "--quiet").ok

    def deleted_files(self) -> List[str]:
        return self._list("ls-files", "--deleted")

    def modified_files(self) -> List[str]:
        # deleted files are reported as modified too
        deleted = self.deleted_files()
        return [f for f in self._list("ls-files", "--modified") if f not in deleted]

    def add(self, *paths: str, force: bool = False) -> CommandResult:
        args = ["add"]
        if force:
            args.append("--force")
        return self.run(*args, "--", *paths)

    def remove_cached(self, *paths: str) -> CommandResult:
        return self.run("rm", "--cached", "--quiet", "--", *paths)

    def commit(self, message: str = None, message_file: Path = None) -> CommandResult:
        if message_file is not None:
            return self.run("commit", "-q", "-F", str(message_file))
        return self.run("commit", "-q", "-m", message)

    def last_subject(self) -> str:
        return self.run("log", "-1", "--format=%s").output.strip()

    def config_get(self, key: str) -> Optional[str]:
        result = self.run("config", "--get", key)
        return result.output.strip() if result.ok and result.output.strip() else None

    def upstream(self) -> Optional[str]:
        result = self.run(
            "rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"
        )
        return result.output.strip() if result.ok and result.output.strip() else None

    def fetch(self, remote: str) -> CommandResult:
        return self.run("fetch", "--prune", remote)

    def ref_exists(self, ref: str) -> bool:
        return self.run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}").ok

    def is_ancestor(self, ancestor: str, descendant: str = "HEAD") -> bool:
        return self.run("merge-base", "--is-ancestor", ancestor, descendant).ok

    def push(self, remote: str, branch: str) -> CommandResult:
        return self.run("push", "--tags", "--set-upstream", remote, branch)

    def __repr__(self):
        return f"<Git {self.directory}>"


class VcsGate:
    """
    Preconditions on the working tree: the release branch is checked out and
    every file needed to rebuild the package is under version control.
    """

    def __init__(self, git: Git, directory: Path):
        self.git = git
        self.directory = Path(directory)

    def check_branch(self) -> str:
        branch = self.git.current_branch()
        if not branch:
            raise DetachedHead(
                f"{self.directory}: Not on a branch (detached HEAD)."
            )
        if branch != RELEASE_BRANCH:
            raise WrongBranch(
                f"{self.directory}: Must be run from the '{RELEASE_BRANCH}' branch, not '{branch}'."
            )
        return branch

    @staticmethod
    def required_files(descriptor: PackageDescriptor) -> List[str]:
        files = [DESCRIPTOR_FILENAME]
        for entry in descriptor.all_sources():
            if not is_remote_source(entry):
                files.append(get_source_location(entry))
        files += descriptor.changelog_files()
        files += descriptor.install_files()
        for key in descriptor.validpgpkeys:
            files.append(str(KEYS_DIR / f"{key}.asc"))

        result: List[str] = []
        for f in files:
            if f and f not in result:
                result.append(f)
        return result

    def check_tracked(self, descriptor: PackageDescriptor):
        for f in self.required_files(descriptor):
            # files not present on disk are the build tool's concern
            if not (self.directory / f).is_file():
                continue
            if not self.git.is_tracked(f):
                raise UntrackedRequiredFile(
                    f"{self.directory}: '{f}' is not under version control.",
                    path=f,
                )
        log.debug(f"{descriptor}: All required files are tracked.")
