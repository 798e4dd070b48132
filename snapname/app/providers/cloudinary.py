"""Cloudinary image store provider.

Talks to the Cloudinary REST API directly over httpx. Upload and destroy
calls are signed with the API secret; search uses basic authentication.
"""

import hashlib
import time
from typing import Any, Dict, List, Optional

import httpx

from snapname.app.core.logging import get_logger
from snapname.app.exceptions import UpstreamServiceError
from snapname.app.providers.base import HTTPProvider, ImageStore, UploadedImage

logger = get_logger(__name__)


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Compute the Cloudinary request signature.

    SHA-1 of the ``key=value`` pairs sorted by key and joined with ``&``,
    followed directly by the API secret. Empty values are left out.
    """
    to_sign = "&".join(
        f"{key}={value}"
        for key, value in sorted(params.items())
        if value is not None and value != ""
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode()).hexdigest()


class CloudinaryProvider(HTTPProvider, ImageStore):
    """Image store backed by a Cloudinary cloud."""

    name = "cloudinary"

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        base_url: str = "https://api.cloudinary.com/v1_1",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        super().__init__(f"{base_url.rstrip('/')}/{cloud_name}", http_client, timeout)
        self.cloud_name = cloud_name
        self.api_key = api_key
        self._api_secret = api_secret

    def _signed(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params = {k: v for k, v in params.items() if v is not None and v != ""}
        params["timestamp"] = int(time.time())
        params["signature"] = sign_params(params, self._api_secret)
        params["api_key"] = self.api_key
        return params

    async def upload(
        self,
        file: str,
        folder: Optional[str] = None,
        transformation: Optional[str] = None,
    ) -> UploadedImage:
        """Upload a data URI or remote URL.

        Raises:
            httpx.HTTPStatusError: If Cloudinary rejects the request
            UpstreamServiceError: If the response lacks the image URL or id
        """
        data = self._signed({"folder": folder, "transformation": transformation})
        data["file"] = file

        async with self._client_context() as client:
            resp = await client.post(
                self._get_endpoint_url("/image/upload"), data=data, timeout=self.timeout
            )
            resp.raise_for_status()
            body = resp.json()

        url = body.get("secure_url") or body.get("url")
        public_id = body.get("public_id")
        if not url or not public_id:
            raise UpstreamServiceError(self.name, "Image store returned an incomplete upload result")
        return UploadedImage(url=url, public_id=public_id)

    async def destroy(self, public_id: str) -> bool:
        data = self._signed({"public_id": public_id})

        async with self._client_context() as client:
            resp = await client.post(
                self._get_endpoint_url("/image/destroy"), data=data, timeout=self.timeout
            )
            resp.raise_for_status()
            result = resp.json().get("result")

        if result == "ok":
            return True
        if result == "not found":
            return False
        raise UpstreamServiceError(self.name, f"Unexpected destroy result: {result!r}")

    async def search(self, expression: str, max_results: int = 100) -> List[Dict[str, Any]]:
        payload = {
            "expression": expression,
            "sort_by": [{"created_at": "desc"}],
            "max_results": max_results,
        }
        async with self._client_context() as client:
            resp = await client.post(
                self._get_endpoint_url("/resources/search"),
                json=payload,
                auth=(self.api_key, self._api_secret),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json().get("resources", [])

    async def health_check(self, timeout: float = 2.0) -> bool:
        """Check credentials and reachability via the usage endpoint."""
        try:
            async with self._client_context() as client:
                resp = await client.get(
                    self._get_endpoint_url("/usage"),
                    auth=(self.api_key, self._api_secret),
                    timeout=timeout,
                )
                return resp.status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"Cloudinary health check failed: {e}")
            return False
