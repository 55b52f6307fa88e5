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

"""User role subcommands (register, login, delete)."""

from __future__ import annotations

import typer

from solo_manager.components import RoleCommandHandlers

app = typer.Typer(help="Manage cluster users of a network.")

NAMESPACE = typer.Option(None, "--namespace", "-n", help="Namespace of the network")
USERNAME = typer.Option(None, "--username", help="User name")


def _argv(namespace: str | None, username: str | None, password: str | None = None) -> dict[str, str]:
    argv = {"namespace": namespace, "username": username, "password": password}
    return {k: v for k, v in argv.items() if v is not None}


@app.command()
def register(
    namespace: str | None = NAMESPACE,
    username: str | None = USERNAME,
    password: str | None = typer.Option(None, "--password", help="User password"),
) -> None:
    """Register a user allowed to operate on network pods."""
    RoleCommandHandlers.from_environment().register(_argv(namespace, username, password))


@app.command()
def login(
    namespace: str | None = NAMESPACE,
    username: str | None = USERNAME,
    password: str | None = typer.Option(None, "--password", help="User password"),
) -> None:
    """Check the credentials of a registered user."""
    RoleCommandHandlers.from_environment().login(_argv(namespace, username, password))


@app.command()
def delete(
    namespace: str | None = NAMESPACE,
    username: str | None = USERNAME,
) -> None:
    """Remove a registered user."""
    RoleCommandHandlers.from_environment().delete(_argv(namespace, username))
