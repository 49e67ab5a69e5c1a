"""Typed endpoint wrappers over the data gateway.

Grouped per resource so callers never build endpoint strings themselves.
All methods return the gateway's GatewayResponse unchanged.
"""

from offline_cache.entities import GatewayResponse
from offline_cache.protocols import DataGateway


class AuthApi:
    """Authentication endpoints."""

    def __init__(self, gateway: DataGateway) -> None:
        self._gateway = gateway

    async def login(self, username: str, password: str) -> GatewayResponse:
        return await self._gateway.request(
            "/login", method="POST", body={"username": username, "password": password}
        )

    async def signup(self, username: str, password: str, email: str | None = None) -> GatewayResponse:
        body = {"username": username, "password": password}
        if email:
            body["email"] = email
        return await self._gateway.request("/signup", method="POST", body=body)

    async def forgot_password(self, email: str) -> GatewayResponse:
        """Request a password reset mail.

        The server always answers success to prevent user enumeration.
        """
        return await self._gateway.request("/forgot-password", method="POST", body={"email": email})

    async def reset_password(self, token: str, password: str) -> GatewayResponse:
        return await self._gateway.request(
            "/reset-password", method="POST", body={"token": token, "password": password}
        )

    async def validate_reset_token(self, token: str) -> GatewayResponse:
        return await self._gateway.request(f"/reset-password/{token}")


class EntriesApi:
    """Entry endpoints. All calls require a valid token."""

    def __init__(self, gateway: DataGateway) -> None:
        self._gateway = gateway

    async def get_all(self, token: str) -> GatewayResponse:
        return await self._gateway.request("/entries", token=token)

    async def create(self, token: str, text: str) -> GatewayResponse:
        return await self._gateway.request("/entries", method="POST", body={"text": text}, token=token)

    async def update(self, token: str, entry_id: int, text: str) -> GatewayResponse:
        return await self._gateway.request(
            f"/entries/{entry_id}", method="PUT", body={"text": text}, token=token
        )

    async def delete(self, token: str, entry_id: int) -> GatewayResponse:
        return await self._gateway.request(f"/entries/{entry_id}", method="DELETE", token=token)


class FilesApi:
    """File endpoints. All calls require a valid token."""

    def __init__(self, gateway: DataGateway) -> None:
        self._gateway = gateway

    async def get_all(self, token: str) -> GatewayResponse:
        return await self._gateway.request("/files", token=token)

    async def upload(
        self,
        token: str,
        filename: str,
        content: bytes,
        mime_type: str,
        description: str | None = None,
    ) -> GatewayResponse:
        fields = {"description": description} if description else None
        return await self._gateway.upload(
            "/files", filename, content, mime_type, fields=fields, token=token
        )

    async def download(self, token: str, file_id: int) -> GatewayResponse:
        return await self._gateway.download(f"/files/{file_id}/download", token=token)

    async def delete(self, token: str, file_id: int) -> GatewayResponse:
        return await self._gateway.request(f"/files/{file_id}", method="DELETE", token=token)
