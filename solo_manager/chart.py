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


"""Helm-backed chart manager."""

from __future__ import annotations

import sh

from solo_manager import console, logger


def set_args(values: dict[str, object]) -> list[str]:
    """Build ``--set key=value`` helm arguments in insertion order."""
    return [item for key, value in values.items() for item in ("--set", f"{key}={_helm_value(value)}")]


def _helm_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ChartManager:
    """Install, upgrade and remove releases with helm."""

    def _helm(self, *args: str) -> str:
        try:
            return str(sh.helm(*args))
        except sh.ErrorReturnCode as err:
            stderr = err.stderr.decode(errors="replace").strip() if err.stderr else ""
            raise RuntimeError(f"helm {args[0]} failed: {stderr}") from err

    def is_chart_installed(self, namespace: str, release: str) -> bool:
        output = self._helm("list", "-n", namespace, "-q", "--filter", f"^{release}$")
        return release in output.split()

    def install(self, namespace: str, release: str, chart: str, version: str = "",
                values: list[str] | None = None) -> None:
        args = ["install", release, chart, "-n", namespace, "--create-namespace"]
        if version:
            args += ["--version", version]
        args += values or []
        logger.debug("helm %s", " ".join(args))
        self._helm(*args)
        console.print(f"[green]  ✓ Installed {release} {version}[/green]")

    def upgrade(self, namespace: str, release: str, chart: str, version: str = "",
                values: list[str] | None = None, reuse_values: bool = True) -> None:
        args = ["upgrade", release, chart, "-n", namespace]
        if reuse_values:
            args.append("--reuse-values")
        if version:
            args += ["--version", version]
        args += values or []
        logger.debug("helm %s", " ".join(args))
        self._helm(*args)
        console.print(f"[green]  ✓ Upgraded {release} {version}[/green]")

    def uninstall(self, namespace: str, release: str) -> None:
        self._helm("uninstall", release, "-n", namespace)
        console.print(f"[green]  ✓ Uninstalled {release}[/green]")

    def install_with_rollback(self, namespace: str, release: str, chart: str, version: str = "",
                              values: list[str] | None = None) -> None:
        """Install a release, uninstalling it again if the install fails.

        The rollback is best effort: its failure is logged and the install
        error is the one raised.
        """
        try:
            self.install(namespace, release, chart, version, values)
        except Exception:
            try:
                self.uninstall(namespace, release)
            except Exception as rollback_err:
                logger.warning("Rollback of %s failed: %s", release, rollback_err)
            raise
