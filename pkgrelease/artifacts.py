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
import re
from pathlib import Path
from typing import Dict, List, Optional

from pkgrelease.common import DEBUG_PKGDESC_PREFIX, DEBUG_SUFFIX, SIGNATURE_SUFFIX
from pkgrelease.config import Config
from pkgrelease.exc import ArtifactNotFound, MissingArtifact
from pkgrelease.executors import Executor
from pkgrelease.log import get_logger

log = get_logger("artifacts")

# name-pkgver-pkgrel-arch.pkg.tar[.ext], signatures have a second extension
PACKAGE_FILE_RE = re.compile(r"^(.+)\.pkg\.tar(\.(?!sig$)[^.]+)?$")


def normalize_version(version: str) -> str:
    # a missing epoch is epoch 0
    return version if ":" in version else f"0:{version}"


def split_package_filename(filename: str) -> Optional[Dict[str, str]]:
    match = PACKAGE_FILE_RE.match(filename)
    if not match:
        return None
    parts = match.group(1).rsplit("-", 3)
    if len(parts) != 4:
        return None
    name, pkgver, pkgrel, arch = parts
    return {"name": name, "version": f"{pkgver}-{pkgrel}", "arch": arch}


class Artifact:
    def __init__(self, pkgname: str, version: str, arch: str, path: Path):
        self.pkgname = pkgname
        self.version = version
        self.arch = arch
        self.path = Path(path)

    @property
    def signature(self) -> Path:
        return self.path.with_name(self.path.name + SIGNATURE_SUFFIX)

    def __eq__(self, other):
        return repr(self) == repr(other)

    def __repr__(self):
        return f"<Artifact {self.pkgname}-{self.version}-{self.arch} {self.path}>"

    def __str__(self):
        return f"{self.pkgname}-{self.version}-{self.arch}"


class ArtifactLocator:
    """
    Find built package files in the package directory and in PKGDEST.
    """

    def __init__(self, config: Config, executor: Executor):
        self.config = config
        self.executor = executor

    def get_search_dirs(self) -> List[Path]:
        dirs = [self.config.package_dir]
        if self.config.pkgdest:
            dirs.append(self.config.pkgdest)
        return [d for d in dirs if d.is_dir()]

    def _candidates(self) -> List[Path]:
        candidates: List[Path] = []
        inodes = set()
        for directory in self.get_search_dirs():
            for path in sorted(directory.iterdir()):
                if not path.is_file() or not PACKAGE_FILE_RE.match(path.name):
                    continue
                # the same file may be reachable from both directories
                stat = path.stat()
                if (stat.st_dev, stat.st_ino) in inodes:
                    continue
                inodes.add((stat.st_dev, stat.st_ino))
                candidates.append(path)
        return candidates

    def find(self, pkgname: str, version: str, arch: str) -> Artifact:
        results = []
        for path in self._candidates():
            parts = split_package_filename(path.name)
            if not parts:
                continue
            if (
                parts["name"] == pkgname
                and parts["arch"] == arch
                and normalize_version(parts["version"]) == normalize_version(version)
            ):
                results.append(path)

        if not results:
            raise ArtifactNotFound(
                f"Failed to locate package file for {pkgname}-{version}-{arch}."
            )
        if len(results) > 1:
            raise ArtifactNotFound(
                f"Multiple package files found for {pkgname}-{version}-{arch}: "
                + ", ".join(str(r) for r in results)
            )
        return Artifact(pkgname, version, arch, results[0])

    def require(self, pkgname: str, version: str, arch: str) -> Artifact:
        try:
            return self.find(pkgname, version, arch)
        except ArtifactNotFound as e:
            raise MissingArtifact(str(e)) from e

    def read_pkginfo(self, path: Path) -> Dict[str, str]:
        cmd = [self.config.bsdtar_client, "-xOqf", str(path), ".PKGINFO"]
        result = self.executor.run(cmd, check=False, echo=False)
        if not result.ok:
            log.debug(f"Cannot read .PKGINFO from '{path}'.")
            return {}
        info: Dict[str, str] = {}
        for line in result.lines():
            if line.startswith("#") or " = " not in line:
                continue
            key, value = line.split(" = ", 1)
            # multi-valued keys (depend, license...) are not needed here
            info.setdefault(key.strip(), value.strip())
        return info

    def is_debug_package(self, path: Path) -> bool:
        info = self.read_pkginfo(path)
        pkgbase = info.get("pkgbase", "")
        return (
            bool(pkgbase)
            and info.get("pkgname") == f"{pkgbase}{DEBUG_SUFFIX}"
            and info.get("pkgdesc", "").startswith(DEBUG_PKGDESC_PREFIX)
        )

    def find_debug(self, pkgbase: str, version: str, arch: str) -> Artifact:
        artifact = self.find(f"{pkgbase}{DEBUG_SUFFIX}", version, arch)
        if not self.is_debug_package(artifact.path):
            raise ArtifactNotFound(f"'{artifact.path}' is not a debug package.")
        return artifact
