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
from logging import (
    Formatter,
    StreamHandler,
    FileHandler,
    Logger,
    getLogger,
    DEBUG,
    NOTSET,
    INFO,
)

from pkgrelease.exc import ReleaseError

FileLogDateFmt = "%Y-%m-%d %H:%M:%S"
ConsoleLogDateFmt = "%H:%M:%S"


class FileFormatter(Formatter):
    def __init__(
        self, fmt="%(asctime)s [%(name)s] %(levelname)s %(message)s", *args, **kwargs
    ):
        super().__init__(fmt, *args, **kwargs)


class ConsoleFormatter(Formatter):
    """
    A formatter that colors messages in console.
    """

    # https://en.wikipedia.org/wiki/ANSI_escape_code
    colors = {
        "grey": "\x1b[38;5;246m",
        "green": "\x1b[32m",
        "yellow": "\x1b[93;1m",
        "red": "\x1b[91;1m",
        "cyan": "\x1b[96m",
        "reset": "\x1b[0m",
    }

    def __init__(self, fmt=None, *args, **kwargs):
        if fmt is None:
            fmt = (
                "{grey}%(asctime)s "
                "{cyan}[%(name)s] "
                "$COLOR%(message)s"
                "{reset}"
            ).format(**self.colors)
        super().__init__(fmt, *args, **kwargs)

    def format(self, record):
        result = super().format(record)
        level_color = {
            "DEBUG": "grey",
            "INFO": "reset",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "red",
        }.get(record.levelname, "reset")
        result = result.replace("$COLOR", self.colors[level_color])
        return result

    def formatException(self, ei):
        result = super().formatException(ei)
        return "{red}{result}{reset}".format(result=result, **self.colors)


def create_file_handler(log_file, **kwargs):
    file_handler = FileHandler(log_file, **kwargs)
    file_handler.setLevel(DEBUG)
    file_handler.setFormatter(FileFormatter(datefmt=FileLogDateFmt))
    return file_handler


def create_console_handler(verbose):
    console_handler = StreamHandler()
    console_handler.setLevel(DEBUG if verbose else INFO)
    console_handler.setFormatter(ConsoleFormatter(datefmt=ConsoleLogDateFmt))
    return console_handler


def init_logger(verbose=False, log_file=None):
    # init_logger may be called more than once in the same process (tests,
    # embedding), so handlers are replaced instead of stacked.
    for handler in list(ReleaseRootLogger.handlers):
        ReleaseRootLogger.removeHandler(handler)
        handler.close()

    ReleaseRootLogger.setLevel(DEBUG)
    ReleaseRootLogger.set_log_file(log_file)
    ReleaseRootLogger.propagate = False
    ReleaseRootLogger.addHandler(create_console_handler(verbose))
    if log_file:
        try:
            ReleaseRootLogger.addHandler(
                create_file_handler(log_file, mode="a", delay=True)
            )
        except OSError as e:
            raise ReleaseError("Failed to initialize logger") from e


class ReleaseLogger(Logger):
    def __init__(self, name, level=NOTSET, log_file=None):
        super().__init__(name=name, level=level)
        # log_file will be set only if provided by cli option --log-file
        self._log_file = log_file

    def set_log_file(self, log_file):
        self._log_file = log_file

    def get_log_file(self):
        return self._log_file


Logger.manager.setLoggerClass(ReleaseLogger)

ReleaseRootLogger: ReleaseLogger = getLogger("pkgrelease")  # type: ignore


def get_logger(name: str) -> ReleaseLogger:
    return ReleaseRootLogger.getChild(name)  # type: ignore
