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
import asyncio
import shlex
from abc import ABC, abstractmethod
from collections import namedtuple
from typing import Tuple

from pkgrelease.common import sanitize_line
from pkgrelease.exc import ReleaseError
from pkgrelease.log import get_logger


class ExecutorError(ReleaseError):
    """
    Base executor exception
    """

    def __init__(self, *args, result=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.result = result


CommandResultBase = namedtuple(
    "CommandResultBase", ["cmd", "returncode", "stdout", "stderr"]
)
CommandResultBase.__new__.__defaults__ = (b"", b"")


class CommandResult(CommandResultBase):
    __slots__ = ()

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def error_output(self) -> str:
        return self.stderr.decode("utf-8", errors="replace").strip()

    def lines(self):
        return [line for line in self.output.splitlines() if line]

    def __repr__(self):
        return f"<CommandResult '{shlex.join(self.cmd)}' (status={self.returncode})>"


class Executor(ABC):
    """
    Base executor class
    """

    log = get_logger("executor")

    def __init__(self, **kwargs):
        self._kwargs = kwargs

    @abstractmethod
    def run(self, cmd, **kwargs) -> CommandResult:
        pass

    @staticmethod
    async def _read_stream(stream, callback, max_length=10000) -> bytes:
        remaining_line = b""
        buffer = b""

        while True:
            chunk = await stream.read(4096)
            if not chunk:
                if remaining_line and callback:
                    callback(sanitize_line(remaining_line).rstrip())
                break

            buffer += chunk
            lines = chunk.split(b"\n")

            lines[0] = remaining_line + lines[0]

            if callback:
                for line in lines[:-1]:
                    callback(sanitize_line(line).rstrip())

            remaining_line = lines[-1]
            if len(remaining_line) > max_length:
                line = remaining_line[:max_length]
                remaining_line = remaining_line[max_length:]
                if callback:
                    callback(sanitize_line(line).rstrip() + "…")

        return buffer

    async def _stream_subprocess(
        self, cmd, stdout_cb, stderr_cb, stdin=b"", **kwargs
    ) -> Tuple[int, bytes, bytes]:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            **kwargs,
        )

        if stdin:
            assert process.stdin is not None
            process.stdin.write(stdin)

        # tools like gpg or ssh wait for end of input otherwise
        assert process.stdin
        process.stdin.close()

        results = await asyncio.gather(
            self._read_stream(process.stdout, stdout_cb),
            self._read_stream(process.stderr, stderr_cb),
        )

        rc = await process.wait()
        return rc, results[0], results[1]

    def execute(self, cmd, stdin=b"", echo=True, **kwargs) -> CommandResult:
        try:
            rc, stdout, stderr = asyncio.run(
                self._stream_subprocess(
                    cmd=cmd,
                    stdout_cb=self.log.debug if echo else None,
                    stderr_cb=self.log.debug if echo else None,
                    stdin=stdin,
                    **kwargs,
                )
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ExecutorError(f"Failed to run '{shlex.join(cmd)}': {str(e)}") from e
        return CommandResult(list(cmd), rc, stdout, stderr)
