"""Docker login against the image registry using a registry-issued token."""

import asyncio
import base64
import logging
from typing import Any, Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import AuthError
from ..utils.process import CommandRunner, run_command
from .provisioner import default_client_factory

log = logging.getLogger(__name__)


def registry_host(registry: str) -> str:
    """``public.ecr.aws/abc123`` -> ``public.ecr.aws``"""
    return registry.split("/", 1)[0]


class RegistryAuth:
    """Establish a scoped docker login for the publisher."""

    def __init__(
        self,
        client_factory: Optional[Callable[[str], Any]] = None,
        runner: CommandRunner = run_command,
    ):
        self.client_factory = client_factory or default_client_factory
        self.runner = runner

    def _password(self, region: str) -> str:
        try:
            client = self.client_factory(region)
            response = client.get_authorization_token()
        except (ClientError, BotoCoreError) as e:
            raise AuthError(f"Could not obtain registry login token: {e}") from e

        token = response.get("authorizationData", {}).get("authorizationToken")
        if not token:
            raise AuthError("Registry returned no authorization token")

        username, _, password = base64.b64decode(token).decode().partition(":")
        if not password:
            raise AuthError(f"Malformed authorization token for user '{username}'")
        return password

    async def login(self, registry: str, region: str) -> None:
        """
        Log docker in to ``registry``.

        Raises:
            AuthError: If the token cannot be fetched or docker rejects it
        """
        host = registry_host(registry)
        password = await asyncio.to_thread(self._password, region)

        log.info(f"Logging in to {host}")
        try:
            result = await self.runner(
                ["docker", "login", "--username", "AWS", "--password-stdin", host],
                stdin=password,
            )
        except FileNotFoundError as e:
            raise AuthError(f"docker not found: {e}") from e

        if not result.ok:
            raise AuthError(f"docker login to {host} failed: {result.stderr_tail(5)}")
        log.debug(f"Logged in to {host}")
