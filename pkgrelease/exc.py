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


class ReleaseError(Exception):
    """
    Base release exception. A fatal error stops the pipeline, an advisory
    one is reported as a warning and the pipeline goes on.
    """

    fatal = True

    def __init__(self, *args, **kwargs):
        super().__init__(*args)
        self.kwargs = kwargs


class ConfigError(ReleaseError):
    pass


# Precondition failures, reported before any mutation.
class PreconditionError(ReleaseError):
    pass


class DescriptorMissing(PreconditionError):
    """Package directory does not have a PKGBUILD file"""

    pass


class DescriptorUnreadable(PreconditionError):
    pass


class DetachedHead(PreconditionError):
    pass


class WrongBranch(PreconditionError):
    pass


class UntrackedRequiredFile(PreconditionError):
    def __init__(self, *args, path=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.path = path


# Interactive input failures.
class InteractiveError(ReleaseError):
    pass


class NoEditorAvailable(InteractiveError):
    pass


class EditorFailed(InteractiveError):
    pass


class EmptyCommitMessage(InteractiveError):
    pass


# External tool failures (non-zero exit status).
class ExternalToolError(ReleaseError):
    def __init__(self, *args, result=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.result = result


class SrcinfoFailed(ExternalToolError):
    pass


class KeyExportFailed(ExternalToolError):
    pass


class CommitFailed(ExternalToolError):
    pass


class NoUpstream(ExternalToolError):
    pass


class FetchFailed(ExternalToolError):
    pass


class PushFailed(ExternalToolError):
    pass


class SigningFailed(ExternalToolError):
    pass


class UploadFailed(ExternalToolError):
    pass


class RemoteDatabaseUpdateFailed(ExternalToolError):
    pass


# Consistency guards: the underlying command could succeed but the outcome
# would lose history or ship unverifiable artifacts.
class ConsistencyError(ReleaseError):
    pass


class DivergedHistory(ConsistencyError):
    pass


class InvalidSignature(ConsistencyError):
    pass


class MissingArtifact(ConsistencyError):
    pass


class AdvisoryError(ReleaseError):
    fatal = False


class ArtifactNotFound(AdvisoryError):
    pass
