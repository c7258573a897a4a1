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
pkgrelease command-line interface.
"""
import re
from typing import Any, Dict, List, Optional

import click

from pkgrelease.cli.cli_base import ReleaseCommand
from pkgrelease.cli.cli_exc import CliError
from pkgrelease.common import str_to_bool
from pkgrelease.config import Config, deep_merge
from pkgrelease.log import init_logger
from pkgrelease.pipeline import ReleasePipeline

ALLOWED_KEY_PATTERN = r"[A-Za-z0-9_+-]+"


# Function to validate allowed key values in a dict
def validate_identifier(identifier):
    if re.match(ALLOWED_KEY_PATTERN, identifier) and not any(
        [
            identifier in ("-", "_"),
            identifier.startswith("-"),
            identifier.endswith("-"),
            identifier.startswith("_"),
            identifier.endswith("_"),
        ]
    ):
        return

    raise ValueError(f"Invalid key identifier found: '{identifier}'.")


def parse_dict_from_cli(s, value=None, append=False):
    index_dict = None
    index_array = None

    if value is None:
        # First, consider everything after "=" as value
        if "=" in s:
            s, value = s.split("=", 1)
        # If not, check if we append value
        elif "+" in s:
            s, value = s.split("+", 1)
            append = True

    if ":" in s:
        index_dict = s.index(":")
    if "+" in s:
        index_array = s.index("+")

    # Split on whichever of ":" and "+" comes first
    if index_dict and index_array:
        split_identifier = ":" if index_dict < index_array else "+"
    elif index_dict:
        split_identifier = ":"
    elif index_array:
        split_identifier = "+"
    else:
        split_identifier = None

    if split_identifier:
        parsed_identifier, remaining_content = s.split(split_identifier, 1)
    else:
        remaining_content = None
        parsed_identifier = s

    if remaining_content:
        validate_identifier(parsed_identifier)

        if split_identifier == ":":
            if value is None:
                raise ValueError(f"Cannot find '=' or '+' in '{remaining_content}'")
            result = {
                parsed_identifier: parse_dict_from_cli(
                    remaining_content, value=value, append=append
                )
            }
        else:
            result = {
                parsed_identifier: [
                    parse_dict_from_cli(remaining_content, value=value, append=append)
                ]
            }
    else:
        if value is None:
            result = s
        else:
            key = s
            validate_identifier(key)

            if value.lower() in ("true", "false", "1", "0"):
                value = str_to_bool(value)

            if append:
                value = [value]

            result = {key: value}
    return result


def parse_config_from_cli(array):
    result: Dict[str, Any] = {}
    for s in array:
        result = deep_merge(result, parse_dict_from_cli(s), allow_append=True)
    return result


def load_config(conf_file: Optional[str], option: List = None) -> Config:
    try:
        options = parse_config_from_cli(option) if option else {}
    except ValueError as e:
        raise CliError(f"Failed to parse CLI options: '{str(e)}'")
    return Config.load(conf_file=conf_file, options=options)


@click.command("pkgrelease", cls=ReleaseCommand)
@click.option(
    "--no-commit",
    "no_commit",
    is_flag=True,
    default=False,
    help="Do not stage and commit changes.",
)
@click.option(
    "--push",
    is_flag=True,
    default=False,
    help="Push the release commit and tags.",
)
@click.option(
    "--upload",
    is_flag=True,
    default=False,
    help="Upload packages and signatures, then update the remote database.",
)
@click.option(
    "--verbose/--no-verbose",
    default=None,
    is_flag=True,
    help="Increase log verbosity.",
)
@click.option(
    "--debug/--no-debug",
    default=None,
    is_flag=True,
    help="Print full traceback on exception.",
)
@click.option(
    "--config",
    "conf_file",
    default=None,
    help="Path to configuration file"
    " (default: $XDG_CONFIG_HOME/pkgrelease/config.yml if it exists).",
)
@click.option(
    "--log-file",
    default=None,
    help="Path to log file to be created.",
)
@click.option(
    "--option",
    "-o",
    default=None,
    multiple=True,
    help="Set configuration value (can be repeated).",
)
@click.argument("note", nargs=-1)
@click.pass_context
def main(
    ctx: click.Context,
    no_commit: bool,
    push: bool,
    upload: bool,
    verbose: bool,
    debug: bool,
    conf_file: str,
    log_file: str,
    option: List,
    note: List,
):
    """
    Commit, push, sign and upload the package in the current directory.

    NOTE is appended to the commit message.
    """
    init_logger(verbose=bool(verbose), log_file=log_file)
    ctx.command.debug = bool(debug)

    config = load_config(conf_file, option)

    # verbose/debug modes are also provided by configuration
    config.set("verbose", verbose if verbose is not None else config.verbose)
    config.set("debug", debug if debug is not None else config.debug)
    ctx.command.debug = config.debug
    if config.verbose != bool(verbose):
        init_logger(verbose=config.verbose, log_file=log_file)

    ReleasePipeline(config).run(
        note=" ".join(note) or None,
        commit=not no_commit,
        push=push,
        upload=upload,
    )


main.epilog = """Option:
    Input value for option is of the form:

        1. key=value
        2. parent-key:key=value
        3. key+value

    It allows to set configuration dict values or appending array values.

    For example:
        package-dir=~/pkgs/foo
        require-all-artifacts=true
        upload:remote-host=repo.example.org
        commit-exclude+*.log
"""
