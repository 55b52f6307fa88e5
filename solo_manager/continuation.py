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


"""Versioned records carrying a split operation across invocations.

A record file holds::

    {"phase": "add", "version": 1, "data": {...}}

``data`` must contain exactly the fields named by the phase schema.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from solo_manager import logger
from solo_manager.constants import CONTINUATION_SCHEMA_VERSION
from solo_manager.errors import ContinuationSchemaError, SoloError


@dataclass(frozen=True)
class ContinuationSchema:
    """Fields exchanged between the phases of one operation.

    Attributes:
        phase: Operation name stored in the record.
        file_name: Record file name inside the output/input directory.
        fields: Names of the fields the record carries.
        version: Schema version; records of another version are rejected.
    """

    phase: str
    file_name: str
    fields: tuple[str, ...]
    version: int = CONTINUATION_SCHEMA_VERSION

    def check(self, data: dict[str, Any]) -> None:
        """Ensure ``data`` carries exactly the schema fields.

        Raises:
            ContinuationSchemaError: On missing or unexpected fields.
        """
        missing = sorted(set(self.fields) - data.keys())
        unexpected = sorted(data.keys() - set(self.fields))
        if missing or unexpected:
            raise ContinuationSchemaError(
                f"{self.phase} context data does not match schema v{self.version}: "
                f"missing={missing} unexpected={unexpected}"
            )


def save_record(output_dir: str | Path | None, schema: ContinuationSchema, data: dict[str, Any]) -> Path:
    """Write a record, creating the output directory if needed.

    Raises:
        SoloError: If no output directory is given.
        ContinuationSchemaError: If ``data`` does not match the schema.
    """
    if not output_dir:
        raise SoloError("Path to export context data not specified. Please set a value for --output-dir")
    schema.check(data)
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / schema.file_name
    with open(path, "w") as f:
        json.dump({"phase": schema.phase, "version": schema.version, "data": data}, f, indent=2)
    logger.debug("Saved %s context data to %s", schema.phase, path)
    return path


def load_record(input_dir: str | Path | None, schema: ContinuationSchema) -> dict[str, Any]:
    """Read a record written by :func:`save_record`.

    Raises:
        SoloError: If no input directory is given or the file cannot be read.
        ContinuationSchemaError: If the phase, version or fields differ.
    """
    if not input_dir:
        raise SoloError("Path to context data not specified. Please set a value for --input-dir")
    path = Path(input_dir) / schema.file_name
    try:
        with open(path) as f:
            record = json.load(f)
    except OSError as err:
        raise SoloError(f"Unable to read context data {path}: {err}", err) from err
    except json.JSONDecodeError as err:
        raise ContinuationSchemaError(f"Context data {path} is not valid JSON: {err}", err) from err

    if not isinstance(record, dict) or not isinstance(record.get("data"), dict):
        raise ContinuationSchemaError(f"Context data {path} has no data section")
    if record.get("phase") != schema.phase:
        raise ContinuationSchemaError(
            f"Context data {path} belongs to phase {record.get('phase')!r}, expected {schema.phase!r}"
        )
    if record.get("version") != schema.version:
        raise ContinuationSchemaError(
            f"Context data {path} has schema version {record.get('version')}, expected {schema.version}"
        )
    schema.check(record["data"])
    return record["data"]
