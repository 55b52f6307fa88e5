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


"""Gossip signing and gRPC TLS key generation."""

from __future__ import annotations

import datetime
import hashlib
import shutil
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from solo_manager import logger, templates
from solo_manager.constants import (
    CERTIFICATE_VALIDITY_DAYS,
    GOSSIP_KEY_SIZE,
    GRPC_TLS_KEY_SIZE,
    SIGNING_KEY_PREFIX,
)


@dataclass(frozen=True)
class NodeKeyFiles:
    """Paths of one node's private key and certificate files.

    Attributes:
        private_key_file: PEM encoded private key.
        certificate_file: PEM encoded self-signed certificate.
    """

    private_key_file: Path
    certificate_file: Path


class KeyManager:
    """Creates and loads node key pairs on the local disk."""

    def generate_signing_key(self, alias: str, keys_dir: Path) -> NodeKeyFiles:
        """Generate the gossip signing key and certificate of a node."""
        files = NodeKeyFiles(
            Path(keys_dir) / templates.gossip_private_key_file(alias),
            Path(keys_dir) / templates.gossip_public_key_file(alias),
        )
        self._generate(f"{SIGNING_KEY_PREFIX}-{alias}", GOSSIP_KEY_SIZE, files)
        logger.debug("Generated signing key for %s in %s", alias, keys_dir)
        return files

    def generate_grpc_tls_key(self, alias: str, keys_dir: Path) -> NodeKeyFiles:
        """Generate the gRPC TLS key and certificate of a node."""
        files = NodeKeyFiles(
            Path(keys_dir) / templates.tls_private_key_file(alias),
            Path(keys_dir) / templates.tls_public_key_file(alias),
        )
        self._generate(alias, GRPC_TLS_KEY_SIZE, files)
        logger.debug("Generated gRPC TLS key for %s in %s", alias, keys_dir)
        return files

    def _generate(self, common_name: str, key_size: int, files: NodeKeyFiles) -> None:
        key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        now = datetime.datetime.now(datetime.timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + datetime.timedelta(days=CERTIFICATE_VALIDITY_DAYS))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .sign(key, hashes.SHA384())
        )
        files.private_key_file.parent.mkdir(parents=True, exist_ok=True)
        files.private_key_file.write_bytes(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ))
        files.certificate_file.write_bytes(cert.public_bytes(serialization.Encoding.PEM))

    def der_from_pem_certificate(self, cert_file: Path) -> bytes:
        cert = x509.load_pem_x509_certificate(Path(cert_file).read_bytes())
        return cert.public_bytes(serialization.Encoding.DER)

    def certificate_hash(self, cert_file: Path) -> bytes:
        """SHA-384 digest of a certificate's DER encoding."""
        return hashlib.sha384(self.der_from_pem_certificate(cert_file)).digest()

    def copy_node_keys(self, alias: str, keys_dir: Path, dest_dir: Path, *, gossip: bool, tls: bool) -> None:
        """Copy one node's existing key files into another directory.

        Raises:
            FileNotFoundError: If a requested key file is missing.
        """
        names = []
        if gossip:
            names += [templates.gossip_private_key_file(alias), templates.gossip_public_key_file(alias)]
        if tls:
            names += [templates.tls_private_key_file(alias), templates.tls_public_key_file(alias)]
        Path(dest_dir).mkdir(parents=True, exist_ok=True)
        for name in names:
            src = Path(keys_dir) / name
            if not src.exists():
                raise FileNotFoundError(f"key file not found: {src}")
            shutil.copy2(src, Path(dest_dir) / name)
