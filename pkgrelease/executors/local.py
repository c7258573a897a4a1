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
import subprocess
from pathlib import Path
from typing import List, Dict, Optional

from pkgrelease.executors import Executor, ExecutorError, CommandResult


class LocalExecutor(Executor):
    """
    Local executor running commands on the host, synchronously, inside the
    package directory.
    """

    def __init__(
        self,
        directory: Path = Path("."),
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._directory = Path(directory).expanduser().resolve()

    def run(  # type: ignore
        self,
        cmd: List[str],
        cwd: Optional[Path] = None,
        environment: Optional[Dict[str, str]] = None,
        stdin: bytes = b"",
        check: bool = True,
        interactive: bool = False,
        echo: bool = True,
    ) -> CommandResult:
        cmd = [str(c) for c in cmd]
        cwd = Path(cwd) if cwd else self._directory

        # add requested env to existing env, instead of completely replacing it
        if environment is not None:
            environment_new = os.environ.copy()
            environment_new.update(environment)
            environment = environment_new

        self.log.debug(f"Running '{shlex.join(cmd)}' in {cwd}.")

        if interactive:
            # Editors need the controlling terminal, so nothing is captured.
            try:
                rc = subprocess.run(cmd, cwd=cwd, env=environment).returncode
            except (FileNotFoundError, PermissionError) as e:
                raise ExecutorError(
                    f"Failed to run '{shlex.join(cmd)}': {str(e)}"
                ) from e
            result = CommandResult(cmd, rc)
        else:
            result = self.execute(
                cmd, stdin=stdin, echo=echo, cwd=cwd, env=environment
            )

        if check and not result.ok:
            msg = f"Failed to run '{shlex.join(cmd)}' (status={result.returncode})."
            if result.error_output:
                msg += f" {result.error_output.splitlines()[-1]}"
            raise ExecutorError(msg, result=result)
        return result
