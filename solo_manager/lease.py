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

"""Namespace-scoped mutual exclusion leases."""

from __future__ import annotations

import fcntl
import getpass
import json
import os
import socket
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from solo_manager import logger
from solo_manager.config import SoloSettings
from solo_manager.constants import LEASE_API_VERSION
from solo_manager.errors import LeaseAcquisitionError, LeaseRelinquishmentError
from solo_manager.k8s import ClusterClient
from solo_manager.tasks import Task

_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


# ============================================================================
# Holder identity
# ============================================================================

@dataclass(frozen=True)
class LeaseHolder:
    """Identity of the process holding a lease.

    Attributes:
        username: OS user running the process.
        hostname: Machine the process runs on.
        pid: Process id.
    """

    username: str
    hostname: str
    pid: int

    @classmethod
    def current(cls) -> LeaseHolder:
        return cls(getpass.getuser(), socket.gethostname(), os.getpid())

    @classmethod
    def from_json(cls, value: str | None) -> LeaseHolder | None:
        if not value:
            return None
        try:
            data = json.loads(value)
            return cls(str(data["username"]), str(data["hostname"]), int(data["pid"]))
        except (ValueError, KeyError, TypeError):
            logger.debug("Unparseable lease holder: %s", value)
            return None

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)

    def is_dead_local_process(self) -> bool:
        """True when the holder ran on this host and its process is gone."""
        if self.hostname != socket.gethostname():
            return False
        try:
            os.kill(self.pid, 0)
        except ProcessLookupError:
            return True
        except PermissionError:
            return False
        return False

    def __str__(self) -> str:
        return f"{self.username} on {self.hostname} (pid {self.pid})"


# ============================================================================
# Lease base
# ============================================================================

class Lease(ABC):
    """A mutual exclusion token for one namespace.

    :meth:`acquire` retries with exponential backoff while another holder
    owns the lease. :meth:`release` is idempotent and a no-op when the lease
    was never acquired.
    """

    def __init__(
        self,
        namespace: Callable[[], str] | str,
        *,
        attempts: int,
        holder: LeaseHolder | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._namespace = namespace
        self.attempts = attempts
        self.holder = holder or LeaseHolder.current()
        self._sleep = sleep
        self._acquired = False
        self._lock = threading.Lock()

    @property
    def namespace(self) -> str:
        namespace = self._namespace() if callable(self._namespace) else self._namespace
        if not namespace:
            raise LeaseAcquisitionError("namespace is required to acquire a lease")
        return namespace

    @property
    def acquired(self) -> bool:
        return self._acquired

    def acquire(self) -> None:
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=1, max=10),
            retry=retry_if_exception_type(LeaseAcquisitionError),
            sleep=self._sleep,
            reraise=True,
        )
        retrying(self._try_acquire)
        self._acquired = True
        logger.debug("Lease %s acquired by %s", self.namespace, self.holder)

    def release(self) -> None:
        with self._lock:
            if not self._acquired:
                return
            self._acquired = False
        self._release()
        logger.debug("Lease %s released", self.namespace)

    def acquire_task(self) -> Task:
        return Task(title="Acquire lock", action=lambda ctx: self.acquire())

    @abstractmethod
    def _try_acquire(self) -> None:
        """Take the lease once or raise LeaseAcquisitionError."""

    @abstractmethod
    def _release(self) -> None:
        """Give the lease back."""


# ============================================================================
# Kubernetes lease
# ============================================================================

def _format_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(_TIME_FORMAT)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    for fmt in (_TIME_FORMAT, "%Y-%m-%dT%H:%M:%SZ"):
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


class KubernetesLease(Lease):
    """Lease stored as a ``coordination.k8s.io`` Lease named after the namespace."""

    def __init__(
        self,
        cluster: ClusterClient,
        namespace: Callable[[], str] | str,
        *,
        duration: int,
        attempts: int,
        renew: bool = False,
        holder: LeaseHolder | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        super().__init__(namespace, attempts=attempts, holder=holder, sleep=sleep)
        self.cluster = cluster
        self.duration = duration
        self.renew = renew
        self._clock = clock
        self._stop_renewal = threading.Event()
        self._renewal: threading.Thread | None = None

    def _manifest(self, namespace: str, existing: dict[str, Any] | None = None) -> dict[str, Any]:
        now = _format_time(self._clock())
        metadata: dict[str, Any] = {"name": namespace, "namespace": namespace}
        acquire_time = now
        if existing is not None:
            metadata["resourceVersion"] = existing.get("metadata", {}).get("resourceVersion")
            previous = LeaseHolder.from_json(existing.get("spec", {}).get("holderIdentity"))
            if previous == self.holder:
                acquire_time = existing.get("spec", {}).get("acquireTime") or now
        return {
            "apiVersion": LEASE_API_VERSION,
            "kind": "Lease",
            "metadata": metadata,
            "spec": {
                "holderIdentity": self.holder.to_json(),
                "leaseDurationSeconds": self.duration,
                "acquireTime": acquire_time,
                "renewTime": now,
            },
        }

    def _is_expired(self, lease: dict[str, Any]) -> bool:
        spec = lease.get("spec", {})
        renewed = _parse_time(spec.get("renewTime")) or _parse_time(spec.get("acquireTime"))
        if renewed is None:
            return True
        duration = int(spec.get("leaseDurationSeconds") or self.duration)
        return renewed + timedelta(seconds=duration) < self._clock()

    def _try_acquire(self) -> None:
        namespace = self.namespace
        lease = self.cluster.get_lease(namespace, namespace)
        if lease is None:
            self.cluster.create_lease(self._manifest(namespace))
        else:
            holder = LeaseHolder.from_json(lease.get("spec", {}).get("holderIdentity"))
            if holder is not None and holder != self.holder and not self._is_expired(lease) \
                    and not holder.is_dead_local_process():
                raise LeaseAcquisitionError(f"lock already acquired by {holder}")
            if holder is not None and holder != self.holder:
                logger.debug("Taking over lease %s from %s", namespace, holder)
            self.cluster.replace_lease(self._manifest(namespace, existing=lease))
        if self.renew:
            self._start_renewal()

    def _start_renewal(self) -> None:
        self._stop_renewal.clear()
        self._renewal = threading.Thread(target=self._renew_loop, name="lease-renewal", daemon=True)
        self._renewal.start()

    def _renew_loop(self) -> None:
        interval = max(self.duration / 2, 1)
        while not self._stop_renewal.wait(interval):
            try:
                namespace = self.namespace
                lease = self.cluster.get_lease(namespace, namespace)
                if lease is None:
                    logger.warning("Lease %s disappeared while held", namespace)
                    return
                self.cluster.replace_lease(self._manifest(namespace, existing=lease))
            except Exception as exc:
                logger.warning("Lease renewal failed: %s", exc)

    def _release(self) -> None:
        self._stop_renewal.set()
        if self._renewal is not None:
            self._renewal.join(timeout=5)
            self._renewal = None
        namespace = self.namespace
        lease = self.cluster.get_lease(namespace, namespace)
        if lease is None:
            return
        holder = LeaseHolder.from_json(lease.get("spec", {}).get("holderIdentity"))
        if holder == self.holder or self._is_expired(lease):
            self.cluster.delete_lease(namespace, namespace)
            return
        raise LeaseRelinquishmentError(f"lease {namespace} is held by {holder} and cannot be released")


# ============================================================================
# File lease
# ============================================================================

class FileLease(Lease):
    """Lease held as an exclusive ``lockf`` lock on a local file."""

    def __init__(
        self,
        lock_dir: Path,
        namespace: Callable[[], str] | str,
        *,
        attempts: int,
        holder: LeaseHolder | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(namespace, attempts=attempts, holder=holder, sleep=sleep)
        self.lock_dir = Path(lock_dir)
        self._fh = None

    @property
    def path(self) -> Path:
        return self.lock_dir / f"{self.namespace}.lock"

    def _try_acquire(self) -> None:
        if self._fh is not None:
            raise OSError("Already locked; this would deadlock")
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        if not path.exists():
            open(path, "a").close()
        fh = open(path, "r+")
        try:
            fcntl.lockf(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as err:
            owner = fh.read().strip()
            fh.close()
            raise LeaseAcquisitionError(f"lock already acquired: {owner or path}") from err
        fh.truncate()
        fh.write(f"Locked by PID {self.holder.pid} on {self.holder.hostname}\n")
        fh.flush()
        fh.seek(0)
        self._fh = fh

    def _release(self) -> None:
        fh, self._fh = self._fh, None
        if fh is None:
            return
        try:
            fh.seek(0)
            fh.truncate()
        except OSError:
            logger.debug("Failed to clear lock file %s", self.path)
        finally:
            fcntl.lockf(fh.fileno(), fcntl.LOCK_UN)
            fh.close()


# ============================================================================
# Manager
# ============================================================================

class LeaseManager:
    """Creates leases for the configured backend."""

    def __init__(
        self,
        settings: SoloSettings,
        cluster: ClusterClient,
        namespace: Callable[[], str],
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.cluster = cluster
        self._namespace = namespace
        self._sleep = sleep

    def create(self) -> Lease:
        if self.settings.lease_backend == "file":
            return FileLease(
                self.settings.home / "leases", self._namespace,
                attempts=self.settings.lease_acquire_attempts, sleep=self._sleep,
            )
        return KubernetesLease(
            self.cluster, self._namespace,
            duration=self.settings.lease_duration,
            attempts=self.settings.lease_acquire_attempts,
            renew=self.settings.lease_renew,
            sleep=self._sleep,
        )
