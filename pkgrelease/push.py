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
from pkgrelease.exc import DivergedHistory, FetchFailed, NoUpstream, PushFailed
from pkgrelease.log import get_logger
from pkgrelease.vcs import Git

log = get_logger("push")


class PushGate:
    """
    Push the release branch and tags, refusing to do so when the remote
    branch holds commits the local branch does not have.
    """

    def __init__(self, git: Git):
        self.git = git

    def resolve_remote(self, branch: str):
        upstream = self.git.upstream()
        if not upstream:
            raise NoUpstream(f"No upstream branch set for '{branch}'.")
        remote = self.git.config_get(f"branch.{branch}.remote")
        if not remote:
            remote = upstream.split("/", 1)[0]
        return remote, upstream

    def run(self, branch: str):
        remote, upstream = self.resolve_remote(branch)

        log.info(f"Fetching '{remote}'.")
        result = self.git.fetch(remote)
        if not result.ok:
            raise FetchFailed(f"Failed to fetch '{remote}'.", result=result)

        if self.git.ref_exists(upstream) and not self.git.is_ancestor(upstream):
            raise DivergedHistory(
                f"Remote branch '{upstream}' has commits missing from '{branch}',"
                " please rebase first."
            )

        log.info(f"Pushing '{branch}' and tags to '{remote}'.")
        result = self.git.push(remote, branch)
        if not result.ok:
            raise PushFailed(f"Failed to push '{branch}' to '{remote}'.", result=result)
