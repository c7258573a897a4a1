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
pkgrelease command-line interface - base module.
"""
import traceback

import click

from pkgrelease.log import ReleaseRootLogger


class ReleaseCommand(click.Command):
    """
    A :class:`click.Command` that reports errors through the logger and
    exits with status 1.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.debug = False

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except (click.exceptions.Exit, click.Abort, click.ClickException):
            raise
        except Exception as exc:
            ReleaseRootLogger.error(f"An error occurred: {str(exc)}")
            if self.debug:
                formatted_tb = "".join(traceback.format_exception(exc))
                ReleaseRootLogger.error("\n" + formatted_tb.rstrip("\n"))
            result = getattr(exc, "result", None)
            if result is not None and result.error_output:
                ReleaseRootLogger.error(f"Output from '{result.cmd[0]}':")
                for line in result.error_output.splitlines():
                    ReleaseRootLogger.error(f">>> {line}")
            ctx.exit(1)

    def format_epilog(self, ctx, formatter):
        if self.epilog:
            formatter.write_paragraph()
            for line in self.epilog.split("\n"):
                formatter.write_text(line)
