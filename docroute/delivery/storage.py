"""Upload of packages to a hosted store."""

from __future__ import annotations

from typing import Optional, Protocol

import httpx

from .package import OutboundPackage


class PackageUploader(Protocol):
    async def upload(self, package: OutboundPackage) -> Optional[str]:
        """Upload ``package`` and return its public URL, if any."""


class HttpPackageUploader:
    """POSTs packages to an HTTP endpoint that answers with ``{"url": ...}``."""

    def __init__(
        self,
        upload_url: str,
        token: Optional[str] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.upload_url = upload_url
        self._token = token
        self._timeout = timeout
        self._client = client

    async def upload(self, package: OutboundPackage) -> Optional[str]:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        payload = {
            "id": package.id,
            "filename": package.filename,
            "participant": package.participant.name,
            "content": package.content,
        }
        if self._client is not None:
            resp = await self._client.post(self.upload_url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self.upload_url, json=payload, headers=headers)
        resp.raise_for_status()
        return resp.json().get("url")
