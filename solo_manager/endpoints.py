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


"""Gossip and gRPC endpoint parsing and defaulting."""

from __future__ import annotations

from dataclasses import dataclass

from solo_manager import templates
from solo_manager.constants import (
    ENDPOINT_TYPE_FQDN,
    ENDPOINT_TYPE_IP,
    HEDERA_NODE_EXTERNAL_GOSSIP_PORT,
    HEDERA_NODE_INTERNAL_GOSSIP_PORT,
)
from solo_manager.errors import IllegalArgumentError, SoloError


@dataclass(frozen=True)
class ServiceEndpoint:
    """A node endpoint.

    Attributes:
        host: IP address or domain name.
        port: TCP port.
        endpoint_type: ``IP`` or ``FQDN``; decides how ``host`` is sent to the ledger.
    """

    host: str
    port: int
    endpoint_type: str = ENDPOINT_TYPE_FQDN

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def split_flag_input(value: str, separator: str = ",") -> list[str]:
    """Split a flag value, trimming whitespace and dropping empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(separator) if item.strip()]


def prepare_endpoints(endpoint_type: str, endpoints: list[str], default_port: int) -> list[ServiceEndpoint]:
    """Parse ``host[:port]`` strings into endpoints.

    Args:
        endpoint_type: ``IP`` or ``FQDN``.
        endpoints: Endpoint strings.
        default_port: Port used when an entry has none.

    Returns:
        Parsed endpoints in input order.

    Raises:
        IllegalArgumentError: If an entry has more than one colon or a bad port.
    """
    if endpoint_type not in (ENDPOINT_TYPE_IP, ENDPOINT_TYPE_FQDN):
        raise IllegalArgumentError(f"unsupported endpoint type: {endpoint_type}", endpoint_type)
    result = []
    for endpoint in endpoints:
        parts = endpoint.split(":")
        if len(parts) == 1:
            host, port = parts[0], default_port
        elif len(parts) == 2:
            host = parts[0]
            try:
                port = int(parts[1])
            except ValueError as err:
                raise IllegalArgumentError(
                    f"incorrect endpoint format. expected url:port, found {endpoint}", endpoint
                ) from err
        else:
            raise IllegalArgumentError(f"incorrect endpoint format. expected url:port, found {endpoint}", endpoint)
        result.append(ServiceEndpoint(host=host, port=port, endpoint_type=endpoint_type))
    return result


def resolve_gossip_endpoints(
    endpoint_type: str, explicit: str, namespace: str, alias: str
) -> list[ServiceEndpoint]:
    """Gossip endpoints from the flag, or the pod and service DNS names.

    Raises:
        SoloError: If no endpoints are given and the endpoint type is IP.
    """
    endpoints = split_flag_input(explicit)
    if not endpoints:
        if endpoint_type != ENDPOINT_TYPE_FQDN:
            raise SoloError(f"--gossip-endpoints must be set if --endpoint-type is: {ENDPOINT_TYPE_IP}")
        endpoints = [
            f"{templates.pod_fqdn(namespace, alias)}:{HEDERA_NODE_INTERNAL_GOSSIP_PORT}",
            f"{templates.service_fqdn(namespace, alias)}:{HEDERA_NODE_EXTERNAL_GOSSIP_PORT}",
        ]
    return prepare_endpoints(endpoint_type, endpoints, HEDERA_NODE_INTERNAL_GOSSIP_PORT)


def resolve_grpc_endpoints(
    endpoint_type: str, explicit: str, namespace: str, alias: str
) -> list[ServiceEndpoint]:
    """gRPC service endpoints from the flag, or the service DNS name.

    Raises:
        SoloError: If no endpoints are given and the endpoint type is IP.
    """
    endpoints = split_flag_input(explicit)
    if not endpoints:
        if endpoint_type != ENDPOINT_TYPE_FQDN:
            raise SoloError(f"--grpc-endpoints must be set if --endpoint-type is: {ENDPOINT_TYPE_IP}")
        endpoints = [f"{templates.service_fqdn(namespace, alias)}:{HEDERA_NODE_EXTERNAL_GOSSIP_PORT}"]
    return prepare_endpoints(endpoint_type, endpoints, HEDERA_NODE_EXTERNAL_GOSSIP_PORT)
