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


"""Utility functions for kubectl, command checks, and file hashing."""

from __future__ import annotations

import hashlib
import json
import socket
from pathlib import Path
from typing import Any

import sh

from solo_manager.constants import KUBECTL_TIMEOUT_SECONDS


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err


def run_kubectl(args: list[str], timeout: int = KUBECTL_TIMEOUT_SECONDS) -> tuple[bool, str, str]:
    """Run a kubectl command and return (success, stdout, stderr).

    Used for queries whose failure is an expected answer (a missing secret,
    lease or namespace) and needs stderr kept apart from stdout.

    Args:
        args: kubectl arguments (e.g. ``["get", "pods", "-n", "default"]``).
        timeout: Maximum seconds to wait for the command to complete.

    Returns:
        Tuple of (success, stdout, stderr).
    """
    try:
        result = sh.kubectl(*args, _timeout=timeout)
    except sh.ErrorReturnCode as err:
        return False, err.stdout.decode(errors="replace"), err.stderr.decode(errors="replace")
    except (sh.TimeoutException, sh.CommandNotFound) as exc:
        return False, "", str(exc)
    return True, str(result), ""


def is_not_found(stderr: str) -> bool:
    return "NotFound" in stderr or "not found" in stderr


def kubectl_json(args: list[str]) -> dict[str, Any]:
    """Run a kubectl query with ``-o json`` and parse the output.

    Raises:
        RuntimeError: If kubectl fails.
    """
    ok, stdout, stderr = run_kubectl([*args, "-o", "json"])
    if not ok:
        raise RuntimeError(f"kubectl {' '.join(args)} failed: {stderr.strip()}")
    return json.loads(stdout)


def free_local_port() -> int:
    """Ask the OS for an unused local TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def sha384_hex(path: Path) -> str:
    digest = hashlib.sha384()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()
