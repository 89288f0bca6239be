"""Tests for registry docker login."""

import base64

import pytest

from xrelease.exceptions import AuthError
from xrelease.registry.auth import RegistryAuth, registry_host


def test_registry_host():
    assert registry_host("public.ecr.aws/s8c6d7p4") == "public.ecr.aws"
    assert registry_host("ghcr.io") == "ghcr.io"


class TestRegistryAuth:
    @pytest.mark.asyncio
    async def test_login_pipes_token_to_docker(self, registry_client, fake_runner):
        auth = RegistryAuth(client_factory=lambda region: registry_client, runner=fake_runner)

        await auth.login("public.ecr.aws/s8c6d7p4", "us-east-1")

        call = fake_runner.calls[0]
        assert call["command"] == [
            "docker",
            "login",
            "--username",
            "AWS",
            "--password-stdin",
            "public.ecr.aws",
        ]
        assert call["stdin"] == "s3cret"

    @pytest.mark.asyncio
    async def test_rejected_login(self, registry_client, fake_runner):
        fake_runner.login_failure = "Error response from daemon: unauthorized"
        auth = RegistryAuth(client_factory=lambda region: registry_client, runner=fake_runner)

        with pytest.raises(AuthError, match="unauthorized"):
            await auth.login("public.ecr.aws/s8c6d7p4", "us-east-1")

    @pytest.mark.asyncio
    async def test_token_request_failure(self, make_client_error, fake_runner):
        class Client:
            def get_authorization_token(self):
                raise make_client_error("ExpiredTokenException", "GetAuthorizationToken")

        auth = RegistryAuth(client_factory=lambda region: Client(), runner=fake_runner)

        with pytest.raises(AuthError):
            await auth.login("public.ecr.aws/x", "us-east-1")
        assert fake_runner.calls == []

    @pytest.mark.asyncio
    async def test_malformed_token(self, fake_runner):
        class Client:
            def get_authorization_token(self):
                token = base64.b64encode(b"AWS").decode()
                return {"authorizationData": {"authorizationToken": token}}

        auth = RegistryAuth(client_factory=lambda region: Client(), runner=fake_runner)

        with pytest.raises(AuthError, match="Malformed"):
            await auth.login("public.ecr.aws/x", "us-east-1")
