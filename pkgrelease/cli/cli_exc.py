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

"""
pkgrelease command-line interface - exceptions module.
"""

from typing import Optional, IO

import click

from pkgrelease.exc import ReleaseError
from pkgrelease.log import ReleaseRootLogger


class CliError(ReleaseError, click.ClickException):
    """
    An exception that Click can handle and show to the user.
    """

    def show(self, file: Optional[IO] = None) -> None:
        ReleaseRootLogger.critical(self.format_message())
