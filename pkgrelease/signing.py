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
from typing import List

from pkgrelease.artifacts import Artifact
from pkgrelease.config import Config
from pkgrelease.descriptor import PackageDescriptor
from pkgrelease.exc import InvalidSignature, SigningFailed
from pkgrelease.executors import Executor, ExecutorError
from pkgrelease.log import get_logger

log = get_logger("sign")


class Signer:
    """
    Create detached signatures for package files when missing and verify
    every signature, new or pre-existing, before it can be uploaded.
    """

    def __init__(self, config: Config, executor: Executor):
        self.config = config
        self.executor = executor

    def create_signature(self, artifact: Artifact):
        log.info(f"Signing package '{artifact.path.name}'.")
        cmd = [
            self.config.gpg_client,
            "--detach-sign",
            "--use-agent",
            "--no-armor",
        ]
        if self.config.sign_key:
            cmd += ["--local-user", self.config.sign_key]
        cmd += ["--output", str(artifact.signature), str(artifact.path)]
        try:
            self.executor.run(cmd)
        except ExecutorError as e:
            # gpg may leave an incomplete file behind
            artifact.signature.unlink(missing_ok=True)
            msg = f"Failed to sign '{artifact.path}'."
            raise SigningFailed(msg, result=e.result) from e

    def verify_signature(self, artifact: Artifact):
        cmd = [
            self.config.gpg_client,
            "--verify",
            str(artifact.signature),
            str(artifact.path),
        ]
        result = self.executor.run(cmd, check=False)
        if not result.ok:
            raise InvalidSignature(
                f"Signature '{artifact.signature}' is incorrect!", result=result
            )

    def sign(self, artifact: Artifact) -> Path:
        if not artifact.signature.exists():
            self.create_signature(artifact)
        else:
            log.debug(f"Found existing signature '{artifact.signature.name}'.")
        self.verify_signature(artifact)
        return artifact.signature

    def sign_all(self, artifacts: List[Artifact]) -> List[Path]:
        """
        Return the upload set: each package file followed by its signature.
        """
        upload_set: List[Path] = []
        for artifact in artifacts:
            signature = self.sign(artifact)
            upload_set += [artifact.path, signature]
        return upload_set

    def check_keys(self, descriptor: PackageDescriptor) -> List[str]:
        """
        Return declared source signing keys missing from the keyring.
        """
        missing = []
        for key in descriptor.validpgpkeys:
            cmd = [self.config.gpg_client, "--batch", "--list-keys", key]
            if not self.executor.run(cmd, check=False, echo=False).ok:
                missing.append(key)
        return missing
