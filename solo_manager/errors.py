# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Error types raised by solo_manager."""

from __future__ import annotations


class SoloError(RuntimeError):
    """Application-level error carrying the original cause.

    Attributes:
        cause: The exception that triggered this error, if any.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class MissingArgumentError(SoloError):
    """A required flag has no value after prompting."""

    def __init__(self, flag: str) -> None:
        super().__init__(f"No value set for required flag: {flag}")
        self.flag = flag


class IllegalArgumentError(SoloError):
    """A flag or derived value is malformed."""

    def __init__(self, message: str, value: object = None) -> None:
        super().__init__(message)
        self.value = value


class PollTimeoutError(SoloError):
    """The poller exhausted its attempt budget without success."""


class TerminalStatusError(SoloError):
    """The polled entity reported a state it can never recover from."""


class ContinuationSchemaError(SoloError):
    """A continuation record does not match the schema of the loading phase."""


class LeaseAcquisitionError(SoloError):
    """The namespace lease is held by someone else."""


class LeaseRelinquishmentError(SoloError):
    """The namespace lease could not be released."""
