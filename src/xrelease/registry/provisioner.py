"""
Image repository provisioning.

Ensures the target repository exists in the registry before anything is
pushed. Creation is idempotent and tolerates a concurrent creator.
"""

import asyncio
import logging
import re
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
)

from ..exceptions import AuthError, ProvisionError
from ..models import RepositoryHandle
from ..utils.file_lock import FileLockError, file_lock

log = logging.getLogger(__name__)

REGISTRY_SERVICE = "ecr-public"
DEFAULT_LOCK_DIR = Path(tempfile.gettempdir()) / "xrelease"
LOCK_TIMEOUT = 300.0

NOT_FOUND_CODES = frozenset({"RepositoryNotFoundException"})
ALREADY_EXISTS_CODES = frozenset({"RepositoryAlreadyExistsException"})
AUTH_ERROR_CODES = frozenset(
    {
        "UnrecognizedClientException",
        "InvalidSignatureException",
        "ExpiredTokenException",
        "ExpiredToken",
        "InvalidClientTokenId",
        "MissingAuthenticationToken",
    }
)


class ProvisionState(str, Enum):
    UNKNOWN = "unknown"
    CHECKED_EXISTS = "checked_exists"
    CHECKED_ABSENT = "checked_absent"
    READY = "ready"


def default_client_factory(region: str):
    import boto3

    return boto3.client(REGISTRY_SERVICE, region_name=region)


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class RegistryProvisioner:
    """Ensure a named repository exists, creating it when absent."""

    # Shared across instances so overlapping runs serialize per repository
    _locks: Dict[str, asyncio.Lock] = {}

    def __init__(
        self,
        client_factory: Optional[Callable[[str], Any]] = None,
        lock_dir: Optional[Path] = None,
        lock_timeout: Optional[float] = LOCK_TIMEOUT,
    ):
        """
        Initialize provisioner.

        Args:
            client_factory: Builds a registry API client for a region
                (defaults to a boto3 ``ecr-public`` client)
            lock_dir: Directory holding per-repository lock files shared
                with other xrelease processes on this host
            lock_timeout: Seconds to wait for another process's lock
        """
        self.client_factory = client_factory or default_client_factory
        self.lock_dir = Path(lock_dir) if lock_dir else DEFAULT_LOCK_DIR
        self.lock_timeout = lock_timeout
        self._clients: Dict[str, Any] = {}
        self.states: Dict[str, ProvisionState] = {}

    def lock_path(self, name: str) -> Path:
        safe_name = re.sub(r"[^A-Za-z0-9._-]", "_", name)
        return self.lock_dir / f"provision-{safe_name}.lock"

    def _client(self, region: str):
        if region not in self._clients:
            try:
                self._clients[region] = self.client_factory(region)
            except (NoCredentialsError, PartialCredentialsError) as e:
                raise AuthError(f"Registry credentials unavailable: {e}") from e
        return self._clients[region]

    @classmethod
    def _lock_for(cls, name: str) -> asyncio.Lock:
        return cls._locks.setdefault(name, asyncio.Lock())

    def _classify(self, name: str, action: str, error: Exception) -> Exception:
        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return AuthError(f"Registry credentials unavailable: {error}")
        if isinstance(error, ClientError):
            code = error_code(error)
            if code in AUTH_ERROR_CODES:
                return AuthError(f"Registry rejected credentials ({code}): {error}")
            return ProvisionError(
                name, f"Failed to {action} repository '{name}': {error}", code=code
            )
        return ProvisionError(name, f"Failed to {action} repository '{name}': {error}")

    def _describe(self, client, name: str) -> Optional[str]:
        """Return the repository URI, or None if the repository is absent."""
        try:
            response = client.describe_repositories(repositoryNames=[name])
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                return None
            raise self._classify(name, "describe", e) from e
        except BotoCoreError as e:
            raise self._classify(name, "describe", e) from e

        repositories = response.get("repositories") or []
        if not repositories:
            return None
        return repositories[0].get("repositoryUri", "")

    def _create(self, client, name: str) -> Optional[str]:
        try:
            response = client.create_repository(repositoryName=name)
        except ClientError as e:
            if error_code(e) in ALREADY_EXISTS_CODES:
                log.info(f"Repository '{name}' was created concurrently, reusing it")
                return self._describe(client, name)
            raise self._classify(name, "create", e) from e
        except BotoCoreError as e:
            raise self._classify(name, "create", e) from e

        return response.get("repository", {}).get("repositoryUri")

    def _ensure_locked(self, name: str, region: str) -> RepositoryHandle:
        try:
            with file_lock(self.lock_path(name), timeout=self.lock_timeout):
                return self._ensure(name, region)
        except FileLockError as e:
            raise ProvisionError(
                name, f"Could not serialize provisioning of '{name}': {e}"
            ) from e

    def _ensure(self, name: str, region: str) -> RepositoryHandle:
        client = self._client(region)
        self.states[name] = ProvisionState.UNKNOWN

        uri = self._describe(client, name)
        if uri is not None:
            self.states[name] = ProvisionState.CHECKED_EXISTS
            log.info(f"Repository '{name}' already exists")
        else:
            self.states[name] = ProvisionState.CHECKED_ABSENT
            log.info(f"Creating repository '{name}' in {region}")
            uri = self._create(client, name)

        self.states[name] = ProvisionState.READY
        return RepositoryHandle(name=name, region=region, uri=uri or None)

    async def ensure_repository(self, name: str, region: str) -> RepositoryHandle:
        """
        Ensure repository ``name`` exists in ``region``.

        Only one provisioning attempt per repository name is in flight at a
        time, within this process (asyncio lock) and across processes on
        this host (lock file). A create that loses a race to another actor
        is treated as success.

        Returns:
            RepositoryHandle with the repository URI when the registry reports one

        Raises:
            AuthError: If credentials are missing or rejected
            ProvisionError: On permission, quota or network failures
        """
        async with self._lock_for(name):
            return await asyncio.to_thread(self._ensure_locked, name, region)
