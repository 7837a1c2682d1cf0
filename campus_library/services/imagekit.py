"""ImageKit signed uploads.

The private key never leaves the server: ``sign_upload`` runs behind
``/api/auth/imagekit`` and hands out a short-lived token/expire/signature
triple. The browser side (``UploadAuthenticator`` + ``ImageKitTransport``)
fetches a fresh triple for every upload and posts the file straight to the CDN.
"""
import hashlib
import hmac
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import AsyncIterator, Callable, Optional

import httpx

from campus_library.config import UploadConfig
from campus_library.models import SelectedFile, UploadResult
from campus_library.services.http_client import HTTPClient

logger = logging.getLogger(__name__)

# ImageKit rejects expiry timestamps more than an hour ahead
MAX_TOKEN_TTL = 3600

ProgressCallback = Callable[[int, int], None]


class AuthenticationError(Exception):
    """Upload signing failed; carries the HTTP status and body when there was a response."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body


class UploadError(Exception):
    """The CDN refused or failed the upload."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class UploadAuth:
    token: str
    expire: int
    signature: str

    def to_dict(self) -> dict:
        return {"token": self.token, "expire": self.expire, "signature": self.signature}


def sign_upload(private_key: str, token: Optional[str] = None, expire: Optional[int] = None,
                ttl: int = 1800) -> UploadAuth:
    """Build the token/expire/signature triple ImageKit expects for client uploads."""
    if not private_key:
        raise ValueError("ImageKit private key is not configured.")
    token = token or str(uuid.uuid4())
    expire = expire or int(time.time()) + min(ttl, MAX_TOKEN_TTL)
    signature = hmac.new(
        private_key.encode("utf-8"),
        f"{token}{expire}".encode("utf-8"),
        hashlib.sha1,
    ).hexdigest()
    return UploadAuth(token=token, expire=expire, signature=signature)


class _ConfiguredClient:
    """Uses the injected client, or a short-lived one built from ``config.timeout``."""

    def __init__(self, config: UploadConfig, client: Optional[HTTPClient] = None):
        self.config = config
        self._client = client

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[HTTPClient]:
        if self._client is not None:
            yield self._client
            return
        async with HTTPClient(timeout=self.config.timeout) as client:
            yield client


class UploadAuthenticator(_ConfiguredClient):
    """Fetches a fresh signed-upload triple from the backend.

    Called once per upload attempt. Tokens are single-use, so nothing is cached.
    """

    async def __call__(self) -> UploadAuth:
        async with self._session() as client:
            try:
                response = await client.get(self.config.auth_url)
            except httpx.HTTPError as exc:
                raise AuthenticationError(f"Authentication failed: {exc}") from exc

        if not response.is_success:
            body = response.text
            raise AuthenticationError(
                f"Authentication failed: Request failed with status {response.status_code}: {body}",
                status=response.status_code,
                body=body,
            )

        try:
            data = response.json()
            return UploadAuth(token=data["token"], expire=int(data["expire"]), signature=data["signature"])
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthenticationError(f"Authentication failed: malformed response: {exc}",
                                      status=response.status_code, body=response.text) from exc


class ImageKitTransport(_ConfiguredClient):
    """Posts a file plus its signed triple to the ImageKit upload API."""

    async def upload(self, file: SelectedFile, auth: UploadAuth, folder: str,
                     on_progress: ProgressCallback) -> UploadResult:
        async with self._session() as client:
            response = await self._post(client, file, auth, folder, on_progress)

        if not response.is_success:
            message = response.text
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict) and payload.get("message"):
                message = payload["message"]
            raise UploadError(f"Upload failed with status {response.status_code}: {message}",
                              status=response.status_code)

        try:
            result = UploadResult.from_response(response.json())
        except ValueError as exc:
            raise UploadError(f"Upload failed: {exc}") from exc
        if not result.url and self.config.url_endpoint:
            result = replace(result, url=self.config.asset_url(result.file_path))
        logger.info("Uploaded %s to %s", file.name, result.file_path)
        return result

    async def _post(self, client: HTTPClient, file: SelectedFile, auth: UploadAuth, folder: str,
                    on_progress: ProgressCallback) -> httpx.Response:
        data = {
            "fileName": file.name,
            "publicKey": self.config.public_key,
            "signature": auth.signature,
            "expire": str(auth.expire),
            "token": auth.token,
            "folder": folder,
            "useUniqueFileName": "true",
        }
        files = {"file": (file.name, file.content, file.content_type)}
        encoded = client.build_request("POST", self.config.upload_endpoint, data=data, files=files)
        total = int(encoded.headers.get("Content-Length") or file.size)

        async def counted_body():
            loaded = 0
            async for chunk in encoded.stream:
                loaded += len(chunk)
                on_progress(min(loaded, total), total)
                yield chunk

        request = httpx.Request("POST", encoded.url, headers=encoded.headers, content=counted_body())
        try:
            return await client.send(request)
        except httpx.HTTPError as exc:
            raise UploadError(f"Upload failed: {exc}") from exc
