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

from pkgrelease.artifacts import Artifact, ArtifactLocator
from pkgrelease.commit import CommitEngine
from pkgrelease.config import Config
from pkgrelease.descriptor import PackageDescriptor, read_descriptor
from pkgrelease.exc import AdvisoryError
from pkgrelease.executors import Executor
from pkgrelease.executors.local import LocalExecutor
from pkgrelease.log import get_logger
from pkgrelease.push import PushGate
from pkgrelease.signing import Signer
from pkgrelease.upload import Uploader
from pkgrelease.vcs import Git, VcsGate

log = get_logger("pipeline")


class ReleasePipeline:
    """
    Run the release steps in order. Every step runs to completion before
    the next one starts and the first fatal error stops the run. Advisory
    errors are logged as warnings.

    Steps:
        - read PKGBUILD,
        - check branch and tracked files,
        - commit (optional),
        - push (optional, requires commit),
        - locate built packages,
        - sign and verify,
        - upload and update the remote database (optional).
    """

    def __init__(self, config: Config, executor: Optional[Executor] = None):
        self.config = config
        self.directory = config.package_dir
        self.executor = executor or LocalExecutor(directory=self.directory)
        self.git = Git(self.executor, self.directory)
        self.locator = ArtifactLocator(self.config, self.executor)
        self.signer = Signer(self.config, self.executor)

    def warn(self, error: AdvisoryError):
        log.warning(str(error))

    def check_descriptor(self, descriptor: PackageDescriptor):
        for field, n_sources, n_sums in descriptor.checksum_mismatches():
            log.warning(
                f"{descriptor}: '{field}' has {n_sums} entries for {n_sources} sources."
            )
        if self.config.validate_signing_keys:
            for key in self.signer.check_keys(descriptor):
                log.warning(f"{descriptor}: Public key '{key}' is not in the keyring.")

    def locate_artifacts(self, descriptor: PackageDescriptor) -> List[Artifact]:
        locate = (
            self.locator.require
            if self.config.require_all_artifacts
            else self.locator.find
        )
        artifacts: List[Artifact] = []
        # "any" packages are looked up once whatever the number of arches
        seen: List[tuple] = []

        def add(pkgname, version, arch):
            if (pkgname, arch) in seen:
                return
            seen.append((pkgname, arch))
            try:
                artifacts.append(locate(pkgname, version, arch))
            except AdvisoryError as e:
                self.warn(e)

        for arch in descriptor.arch:
            for pkgname in descriptor.pkgname:
                pkg_arch = descriptor.get_arch(pkgname)
                if "any" in pkg_arch:
                    arch_name = "any"
                elif arch in pkg_arch:
                    arch_name = arch
                else:
                    continue
                add(pkgname, descriptor.full_version(pkgname), arch_name)

            if arch == "any":
                continue
            try:
                artifacts.append(
                    self.locator.find_debug(
                        descriptor.pkgbase, descriptor.full_version(), arch
                    )
                )
            except AdvisoryError as e:
                # most packages do not ship debug symbols
                log.debug(str(e))
        return artifacts

    def run(
        self,
        note: Optional[str] = None,
        commit: bool = True,
        push: bool = False,
        upload: bool = False,
    ) -> List[Path]:
        """
        Returns the upload set: package files and their signatures.
        """
        descriptor = read_descriptor(self.directory)
        log.info(f"{descriptor}: Releasing version {descriptor.full_version()}.")
        self.check_descriptor(descriptor)

        gate = VcsGate(self.git, self.directory)
        branch = gate.check_branch()
        gate.check_tracked(descriptor)

        if commit:
            CommitEngine(self.config, self.executor, self.git).run(descriptor, note)

        if push and not commit:
            log.warning(f"{descriptor}: Push requested with commit disabled, skipping push.")
        elif commit and not push:
            log.warning(f"{descriptor}: Release committed but not pushed.")
        elif push:
            PushGate(self.git).run(branch)

        artifacts = self.locate_artifacts(descriptor)
        upload_set = self.signer.sign_all(artifacts)

        if upload:
            if upload_set:
                Uploader(self.config, self.executor).run(upload_set)
            else:
                log.warning(f"{descriptor}: No package files found, nothing to upload.")
        return upload_set
