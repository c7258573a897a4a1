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
Build descriptor (PKGBUILD) reader.

The descriptor is a bash script, but only a handful of declared fields are
needed to release a package. Instead of sourcing it, a small lexer reads
top-level assignments (scalars, arrays, appends), and assignments made inside
``package()``/``package_<name>()`` functions which override fields for a
single split package. Parameter expansions are resolved against fields that
were already read; command substitutions are kept verbatim and never run.
"""

import re
from collections import ChainMap
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, List, Optional, Union

from pkgrelease.common import (
    CHECKSUM_FIELDS,
    DESCRIPTOR_FILENAME,
    is_filename_valid,
)
from pkgrelease.exc import DescriptorMissing, DescriptorUnreadable

Value = Union[str, List[str]]

ASSIGNMENT_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)(\+?)=")
VARIABLE_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
PARAMETER_RE = re.compile(
    r"^(#?)([A-Za-z_][A-Za-z0-9_]*)(?:\[([^\]]*)\])?(.*)$", re.S
)
PACKAGE_FUNCTION_RE = re.compile(r"^package(?:_(.+))?$")

# Fields a split package function may override.
PACKAGE_OVERRIDES = ["pkgver", "pkgrel", "epoch", "arch", "install", "changelog", "pkgdesc"]

# Segment kinds: unquoted, double-quoted, single-quoted (literal) and
# command/arithmetic substitution (literal, never evaluated).
UNQUOTED, DOUBLE, SINGLE, COMMAND = "u", "d", "s", "c"


class Word:
    def __init__(self):
        self.segments: List[List[str]] = []

    def add(self, text: str, kind: str):
        if not text and kind != SINGLE:
            return
        if self.segments and self.segments[-1][1] == kind:
            self.segments[-1][0] += text
        else:
            self.segments.append([text, kind])

    @property
    def raw(self) -> str:
        return "".join(text for text, _ in self.segments)

    def is_literal(self, value: str) -> bool:
        return len(self.segments) == 1 and self.segments[0] == [value, UNQUOTED]

    def __repr__(self):
        return f"<Word {self.raw!r}>"


def _find_closing(text: str, start: int, opening: str, closing: str) -> int:
    """Return the index of the bracket closing the one opened before start."""
    depth = 1
    i = start
    quote = None
    while i < len(text):
        c = text[i]
        if quote:
            if c == "\\" and quote == '"':
                i += 2
                continue
            if c == quote:
                quote = None
        elif c == "\\":
            i += 2
            continue
        elif c in ("'", '"'):
            quote = c
        elif c == opening:
            depth += 1
        elif c == closing:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise DescriptorUnreadable(f"Unterminated '{opening}' in descriptor.")


def _read_dollar(text: str, i: int, word: Word, kind: str) -> int:
    """Consume a '$' construct at text[i] and return the next index."""
    nxt = text[i + 1 : i + 2]
    if nxt == "(":
        end = _find_closing(text, i + 2, "(", ")")
        word.add(text[i : end + 1], COMMAND)
        return end + 1
    if nxt == "{":
        end = _find_closing(text, i + 2, "{", "}")
        word.add(text[i : end + 1], kind)
        return end + 1
    word.add("$", kind)
    return i + 1


def _skip_heredocs(text: str, i: int, heredocs: List) -> int:
    for delimiter, strip_tabs in heredocs:
        while True:
            if i >= len(text):
                raise DescriptorUnreadable(
                    f"Unterminated here-document '{delimiter}' in descriptor."
                )
            end = text.find("\n", i)
            end = len(text) if end < 0 else end
            line = text[i:end]
            i = end + 1
            if (line.lstrip("\t") if strip_tabs else line) == delimiter:
                break
    heredocs.clear()
    return i


def tokenize(text: str) -> List:
    """
    Split a shell script into ("word", Word), ("newline", None), ("(", None),
    (")", None) and ("op", str) tokens.
    """
    tokens: List = []
    heredocs: List = []
    word: Optional[Word] = None
    i = 0
    n = len(text)

    def flush():
        nonlocal word
        if word is not None:
            tokens.append(("word", word))
            word = None

    while i < n:
        c = text[i]
        if c == "\\":
            if text[i + 1 : i + 2] == "\n":
                i += 2
                continue
            word = word or Word()
            word.add(text[i + 1 : i + 2], SINGLE)
            i += 2
        elif c == "\n":
            flush()
            tokens.append(("newline", None))
            i += 1
            if heredocs:
                i = _skip_heredocs(text, i, heredocs)
        elif c in " \t\r":
            flush()
            i += 1
        elif c == "#" and word is None:
            end = text.find("\n", i)
            i = n if end < 0 else end
        elif c == "'":
            end = text.find("'", i + 1)
            if end < 0:
                raise DescriptorUnreadable("Unterminated single quote in descriptor.")
            word = word or Word()
            word.add(text[i + 1 : end], SINGLE)
            i = end + 1
        elif c == '"':
            word = word or Word()
            word.add("", DOUBLE)
            i += 1
            while True:
                if i >= n:
                    raise DescriptorUnreadable(
                        "Unterminated double quote in descriptor."
                    )
                c = text[i]
                if c == '"':
                    i += 1
                    break
                if c == "\\" and text[i + 1 : i + 2] in ("$", "`", '"', "\\", "\n"):
                    if text[i + 1] != "\n":
                        word.add(text[i + 1], SINGLE)
                    i += 2
                elif c == "$":
                    i = _read_dollar(text, i, word, DOUBLE)
                elif c == "`":
                    end = text.find("`", i + 1)
                    if end < 0:
                        raise DescriptorUnreadable("Unterminated backquote in descriptor.")
                    word.add(text[i : end + 1], COMMAND)
                    i = end + 1
                else:
                    word.add(c, DOUBLE)
                    i += 1
        elif c == "$":
            word = word or Word()
            i = _read_dollar(text, i, word, UNQUOTED)
        elif c == "`":
            end = text.find("`", i + 1)
            if end < 0:
                raise DescriptorUnreadable("Unterminated backquote in descriptor.")
            word = word or Word()
            word.add(text[i : end + 1], COMMAND)
            i = end + 1
        elif c in "()":
            flush()
            tokens.append((c, None))
            i += 1
        elif c == ";":
            flush()
            tokens.append(("newline", None))
            i += 1
        elif c == "<" and text[i : i + 3] == "<<<":
            flush()
            tokens.append(("op", "<<<"))
            i += 3
        elif c == "<" and text[i : i + 2] == "<<":
            flush()
            i += 2
            strip_tabs = text[i : i + 1] == "-"
            if strip_tabs:
                i += 1
            while i < n and text[i] in " \t":
                i += 1
            match = re.match(r"""['"]?([^\s'";&|<>()]+)['"]?""", text[i:])
            if not match:
                raise DescriptorUnreadable("Invalid here-document in descriptor.")
            heredocs.append((match.group(1), strip_tabs))
            tokens.append(("op", "<<"))
            i += match.end()
        elif c in "&|<>":
            flush()
            tokens.append(("op", c))
            i += 1
        else:
            word = word or Word()
            word.add(c, UNQUOTED)
            i += 1
    flush()
    if heredocs:
        raise DescriptorUnreadable("Unterminated here-document in descriptor.")
    return tokens


def _as_scalar(value: Optional[Value]) -> str:
    if isinstance(value, list):
        return value[0] if value else ""
    return value or ""


def _as_list(value: Optional[Value]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    return [value] if value else []


class PkgbuildParser:
    """
    Narrow extractor of declared fields from a PKGBUILD-like shell script.
    """

    def __init__(self, text: str, variables: Optional[Dict[str, Value]] = None):
        self._tokens = tokenize(text)
        self._pos = 0
        self.variables: Dict[str, Value] = dict(variables or {})
        self.functions: Dict[str, Dict[str, Value]] = {}

    def parse(self) -> "PkgbuildParser":
        self._parse_block(ChainMap(self.variables), in_function=False)
        return self

    # Expansion
    def _expand_parameter(self, expression: str, scope) -> Value:
        match = PARAMETER_RE.match(expression)
        if not match:
            return ""
        length, name, index, operation = match.groups()
        value = scope.get(name)

        if index in ("@", "*"):
            values = _as_list(value)
            if length:
                return str(len(values))
            if not operation:
                return values
            value = " ".join(values)
        elif isinstance(value, list):
            position = int(index) if index and index.isdigit() else 0
            value = value[position] if position < len(value) else ""
        elif index not in (None, "0"):
            value = ""
        value = value or ""

        if length:
            return str(len(value))
        if not operation:
            return value

        for op in (":-", ":+", "%%", "##", "//", "-", "+", "%", "#", "/"):
            if operation.startswith(op):
                argument = operation[len(op) :]
                break
        else:
            return value

        if op in (":-", "-"):
            return value or self.expand_text(argument, scope)
        if op in (":+", "+"):
            return self.expand_text(argument, scope) if value else ""
        if op in ("//", "/"):
            pattern, _, replacement = argument.partition("/")
            pattern = self.expand_text(pattern, scope)
            replacement = self.expand_text(replacement, scope)
            if not pattern:
                return value
            return value.replace(pattern, replacement, -1 if op == "//" else 1)

        pattern = self.expand_text(argument, scope)
        if op == "%":
            positions = range(len(value), -1, -1)
        elif op == "%%":
            positions = range(0, len(value) + 1)
        elif op == "#":
            positions = range(0, len(value) + 1)
        else:
            positions = range(len(value), -1, -1)
        for position in positions:
            if op.startswith("%") and fnmatchcase(value[position:], pattern):
                return value[:position]
            if op.startswith("#") and fnmatchcase(value[:position], pattern):
                return value[position:]
        return value

    def expand_text(self, text: str, scope) -> str:
        result = ""
        i = 0
        while i < len(text):
            c = text[i]
            if c != "$":
                result += c
                i += 1
                continue
            if text[i + 1 : i + 2] == "{":
                # braces are matched by depth so that ${a:-${b}} stays whole
                end = _find_closing(text, i + 2, "{", "}")
                expanded = self._expand_parameter(text[i + 2 : end], scope)
                result += " ".join(expanded) if isinstance(expanded, list) else expanded
                i = end + 1
                continue
            match = VARIABLE_RE.match(text, i + 1)
            if match:
                result += _as_scalar(scope.get(match.group(0)))
                i = match.end()
            else:
                result += c
                i += 1
        return result

    def expand_word(self, word: Word, scope, segments=None) -> str:
        result = ""
        for text, kind in segments if segments is not None else word.segments:
            if kind in (UNQUOTED, DOUBLE):
                result += self.expand_text(text, scope)
            else:
                result += text
        return result

    def expand_array_word(self, word: Word, scope) -> List[str]:
        # "${name[@]}" and $name[@] splice every element into the array
        if len(word.segments) == 1 and word.segments[0][1] in (UNQUOTED, DOUBLE):
            match = re.fullmatch(r"\$\{([^}]*)\}", word.segments[0][0])
            if match:
                expanded = self._expand_parameter(match.group(1), scope)
                if isinstance(expanded, list):
                    return expanded
        return [self.expand_word(word, scope)]

    # Parsing
    def _peek(self):
        if self._pos < len(self._tokens):
            return self._tokens[self._pos]
        return None, None

    def _next(self):
        token = self._peek()
        self._pos += 1
        return token

    def _skip_statement(self):
        while self._pos < len(self._tokens):
            kind, _ = self._peek()
            if kind == "newline":
                return
            self._pos += 1

    def _skip_newlines(self):
        while self._peek()[0] == "newline":
            self._pos += 1

    def _parse_block(self, scope, in_function: bool):
        while self._pos < len(self._tokens):
            kind, value = self._peek()
            if kind == "newline":
                self._pos += 1
                continue
            if kind == "word" and value.is_literal("}"):
                self._pos += 1
                if in_function:
                    return
                continue
            self._parse_statement(scope)
        if in_function:
            raise DescriptorUnreadable("Unterminated function body in descriptor.")

    def _parse_statement(self, scope):
        kind, word = self._peek()
        if kind != "word":
            self._skip_statement()
            return

        if word.is_literal("{"):
            self._pos += 1
            self._parse_block(scope, in_function=True)
            return

        if word.is_literal("function"):
            self._pos += 1
            kind, name = self._next()
            if kind != "word":
                raise DescriptorUnreadable("Invalid function definition in descriptor.")
            if self._peek()[0] == "(":
                self._pos += 1
                if self._next()[0] != ")":
                    raise DescriptorUnreadable(
                        "Invalid function definition in descriptor."
                    )
            self._parse_function(name.raw)
            return

        following = self._tokens[self._pos + 1 : self._pos + 3]
        if [t[0] for t in following] == ["(", ")"] and not ASSIGNMENT_RE.match(
            word.raw
        ):
            self._pos += 3
            self._parse_function(word.raw)
            return

        if not self._parse_assignments(scope):
            self._skip_statement()

    def _parse_function(self, name: str):
        self._skip_newlines()
        kind, word = self._next()
        if kind != "word" or not word.is_literal("{"):
            # subshell bodies and other forms are not read
            self._skip_statement()
            return
        match = PACKAGE_FUNCTION_RE.match(name)
        local: Dict[str, Value] = {}
        if match and match.group(1):
            local["pkgname"] = match.group(1)
        self._parse_block(ChainMap(local, self.variables), in_function=True)
        if match:
            local.pop("pkgname", None)
            self.functions[name] = local

    def _parse_assignments(self, scope) -> bool:
        found = False
        while True:
            kind, word = self._peek()
            if kind != "word" or not word.segments or word.segments[0][1] != UNQUOTED:
                break
            match = ASSIGNMENT_RE.match(word.segments[0][0])
            if not match:
                break
            found = True
            self._pos += 1
            name, append = match.group(1), bool(match.group(2))
            rest = [[word.segments[0][0][match.end() :], UNQUOTED]] + [
                list(s) for s in word.segments[1:]
            ]
            if not word.raw[match.end() :] and self._peek()[0] == "(":
                self._pos += 1
                values = self._parse_array(scope)
                if append:
                    values = _as_list(scope.get(name)) + values
                scope[name] = values
            else:
                value = self.expand_word(word, scope, segments=rest)
                if append:
                    current = scope.get(name)
                    if isinstance(current, list):
                        value = current + [value]  # type: ignore
                    else:
                        value = (current or "") + value
                scope[name] = value
        return found

    def _parse_array(self, scope) -> List[str]:
        values: List[str] = []
        while True:
            kind, word = self._next()
            if kind is None:
                raise DescriptorUnreadable("Unterminated array in descriptor.")
            if kind == ")":
                return values
            if kind == "word":
                values += self.expand_array_word(word, scope)
            elif kind != "newline":
                raise DescriptorUnreadable("Unexpected token in array in descriptor.")


class PackageDescriptor:
    """
    Fields of a build descriptor needed to release a package.
    """

    def __init__(
        self,
        path: Path,
        variables: Dict[str, Value],
        functions: Optional[Dict[str, Dict[str, Value]]] = None,
    ):
        self.path = path
        self._variables = variables
        self.pkgname: List[str] = _as_list(variables.get("pkgname"))
        self.pkgbase: str = _as_scalar(variables.get("pkgbase")) or (
            self.pkgname[0] if self.pkgname else ""
        )
        self.pkgver: str = _as_scalar(variables.get("pkgver"))
        self.pkgrel: str = _as_scalar(variables.get("pkgrel"))
        self.epoch: str = _as_scalar(variables.get("epoch"))
        self.arch: List[str] = _as_list(variables.get("arch"))
        self.source: List[str] = _as_list(variables.get("source"))
        self.validpgpkeys: List[str] = _as_list(variables.get("validpgpkeys"))
        self.install: str = _as_scalar(variables.get("install"))
        self.changelog: str = _as_scalar(variables.get("changelog"))

        # source_<arch> and <checksum>_<arch> keep declaration order
        self.arch_sources: Dict[str, List[str]] = {}
        self.checksums: Dict[str, List[str]] = {}
        for name, value in variables.items():
            if name.startswith("source_"):
                self.arch_sources[name[len("source_") :]] = _as_list(value)
            elif name.split("_", 1)[0] in CHECKSUM_FIELDS:
                self.checksums[name] = _as_list(value)

        self.overrides: Dict[str, Dict[str, Value]] = {}
        for function, local in (functions or {}).items():
            match = PACKAGE_FUNCTION_RE.match(function)
            if not match:
                continue
            pkgname = match.group(1) or (self.pkgname[0] if self.pkgname else "")
            self.overrides[pkgname] = {
                key: value for key, value in local.items() if key in PACKAGE_OVERRIDES
            }

    def get_field(self, pkgname: Optional[str], field: str) -> Value:
        if pkgname and field in self.overrides.get(pkgname, {}):
            return self.overrides[pkgname][field]
        return self._variables.get(field, "")

    def full_version(self, pkgname: Optional[str] = None) -> str:
        pkgver = _as_scalar(self.get_field(pkgname, "pkgver"))
        pkgrel = _as_scalar(self.get_field(pkgname, "pkgrel"))
        epoch = _as_scalar(self.get_field(pkgname, "epoch"))
        version = f"{pkgver}-{pkgrel}"
        if epoch and epoch != "0":
            version = f"{epoch}:{version}"
        return version

    def get_arch(self, pkgname: Optional[str] = None) -> List[str]:
        return _as_list(self.get_field(pkgname, "arch"))

    def all_sources(self) -> List[str]:
        sources = list(self.source)
        for entries in self.arch_sources.values():
            sources += entries
        return sources

    def _package_files(self, field: str) -> List[str]:
        files = []
        for value in [self._variables.get(field)] + [
            override.get(field) for override in self.overrides.values()
        ]:
            value = _as_scalar(value)
            if value and value not in files:
                files.append(value)
        return files

    def install_files(self) -> List[str]:
        return self._package_files("install")

    def changelog_files(self) -> List[str]:
        return self._package_files("changelog")

    def checksum_mismatches(self):
        """
        Return (field, sources count, checksums count) for every checksum
        array whose length does not match its source array.
        """
        mismatches = []
        for field, values in self.checksums.items():
            _, _, arch = field.partition("_")
            sources = self.arch_sources.get(arch, []) if arch else self.source
            if len(values) != len(sources):
                mismatches.append((field, len(sources), len(values)))
        return mismatches

    def validate(self):
        if not self.pkgname:
            raise DescriptorUnreadable(f"{self.path}: No package names defined.")
        for pkgname in [self.pkgbase] + self.pkgname:
            if not is_filename_valid(pkgname):
                raise DescriptorUnreadable(
                    f"{self.path}: Invalid package name '{pkgname}'."
                )
        if not self.pkgver or not self.pkgrel:
            raise DescriptorUnreadable(f"{self.path}: Missing pkgver or pkgrel.")
        if not self.arch:
            raise DescriptorUnreadable(f"{self.path}: No architecture defined.")

    def __repr__(self):
        return f"<PackageDescriptor {self.pkgbase}-{self.full_version()}>"

    def __str__(self):
        return self.pkgbase


def read_shell_variables(path: Path, variables: Optional[Dict[str, Value]] = None):
    try:
        text = Path(path).read_text()
    except (OSError, UnicodeDecodeError) as e:
        raise DescriptorUnreadable(f"Cannot read '{path}': {str(e)}") from e
    return PkgbuildParser(text, variables).parse()


def read_descriptor(directory: Union[str, Path]) -> PackageDescriptor:
    path = Path(directory) / DESCRIPTOR_FILENAME
    if not path.exists():
        raise DescriptorMissing(f"Cannot find '{DESCRIPTOR_FILENAME}' in {directory}.")
    parser = read_shell_variables(path)
    descriptor = PackageDescriptor(path, parser.variables, parser.functions)
    descriptor.validate()
    return descriptor
