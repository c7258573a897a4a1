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
from string import digits, ascii_letters

DESCRIPTOR_FILENAME = "PKGBUILD"
SRCINFO_FILENAME = ".SRCINFO"
KEYS_DIR = Path("keys") / "pgp"
RELEASE_BRANCH = "main"
SIGNATURE_SUFFIX = ".sig"
DEBUG_SUFFIX = "-debug"
DEBUG_PKGDESC_PREFIX = "Detached debugging symbols for "

CHECKSUM_FIELDS = [
    "cksums",
    "md5sums",
    "sha1sums",
    "sha224sums",
    "sha256sums",
    "sha384sums",
    "sha512sums",
    "b2sums",
]


def is_filename_valid(filename: str) -> bool:
    if filename == "" or filename[0] in ("-", "."):
        return False
    authorized_chars = digits + ascii_letters + "-_.+@"
    for c in filename:
        if c not in authorized_chars:
            return False
    return True


def get_source_location(entry: str) -> str:
    # "name::location" renames the downloaded file, only location matters here
    if "::" in entry:
        return entry.split("::", 1)[1]
    return entry


def is_remote_source(entry: str) -> bool:
    return "://" in get_source_location(entry)


# Originally from QubesOS/qubes-builder/rpc-services/qubesbuilder.BuildLog
def sanitize_line(untrusted_line: bytes):
    line = bytearray(untrusted_line)
    for i, c in enumerate(line):
        if 0x20 <= c <= 0x7E:
            pass
        else:
            line[i] = 0x2E
    return bytearray(line).decode("ascii")


def str_to_bool(input_str: str) -> bool:
    input_str = input_str.lower()
    if input_str in ("true", "1", "yes"):
        return True
    else:
        return False
