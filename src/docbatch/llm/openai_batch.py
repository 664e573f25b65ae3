"""
OpenAI Batch API client for docbatch.

Wraps the four endpoints the job lifecycle needs: file upload, batch
creation, batch retrieval and output download, plus cancellation.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from docbatch.batch.errors import ProviderAuthError, ProviderError
from docbatch.config import BatchConfig, get_config
from docbatch.config.defaults import OPENAI_BATCH_ENDPOINT, OPENAI_COMPLETION_WINDOW

logger = logging.getLogger(__name__)


class BatchClient(Protocol):
    """Operations the coordinator needs from a batch provider."""

    async def upload_file(self, filename: str, content: str) -> str: ...

    async def create_batch(self, input_file_id: str) -> Dict[str, Any]: ...

    async def get_batch(self, batch_id: str) -> Dict[str, Any]: ...

    async def download_file(self, file_id: str) -> str: ...

    async def cancel_batch(self, batch_id: str) -> bool: ...


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(error, str):
            return error
    return response.text


def _check_response(response: httpx.Response, operation: str) -> None:
    if response.status_code == 401:
        raise ProviderAuthError("Invalid OpenAI API key", status_code=401)
    if response.status_code == 429:
        raise ProviderError(
            f"OpenAI rate limit exceeded during {operation}: {_error_message(response)}",
            status_code=429,
        )
    if response.status_code >= 400:
        raise ProviderError(
            f"OpenAI {operation} failed with status {response.status_code}: "
            f"{_error_message(response)}",
            status_code=response.status_code,
        )


class OpenAIBatchClient:
    """Async client for the OpenAI Batch API.

    A fresh httpx.AsyncClient is opened per call; jobs are long-lived and
    calls are minutes or hours apart, so there is nothing to pool.

    Args:
        config: BatchConfig (defaults to the global config)
        transport: Optional httpx transport, used by tests
    """

    def __init__(
        self,
        config: Optional[BatchConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or get_config()
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self.config.api_key:
            raise ProviderAuthError(
                "OpenAI API key not found. Set OPENAI_API_KEY environment variable."
            )
        return {"Authorization": f"Bearer {self.config.api_key}"}

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(
            self.config.read_timeout,
            connect=self.config.connect_timeout,
        )
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = self._headers()
        try:
            async with self._client() as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise ProviderError(f"OpenAI {operation} failed: {e}") from e
        _check_response(response, operation)
        return response

    async def upload_file(self, filename: str, content: str) -> str:
        """Upload a JSONL request file with purpose=batch. Returns the file id."""
        logger.info(f"Uploading {filename} ({len(content)} bytes) to OpenAI")
        response = await self._request(
            "POST",
            "/files",
            "file upload",
            data={"purpose": "batch"},
            files={"file": (filename, content.encode("utf-8"), "application/jsonl")},
        )
        file_id = response.json().get("id")
        if not file_id:
            raise ProviderError(f"OpenAI file upload returned no file id: {response.text[:200]}")
        return file_id

    async def create_batch(self, input_file_id: str) -> Dict[str, Any]:
        """Create a batch job for an uploaded input file. Returns the batch object."""
        logger.info(f"Creating batch with file ID: {input_file_id}")
        response = await self._request(
            "POST",
            "/batches",
            "batch creation",
            json={
                "input_file_id": input_file_id,
                "endpoint": OPENAI_BATCH_ENDPOINT,
                "completion_window": OPENAI_COMPLETION_WINDOW,
            },
        )
        data = response.json()
        if not data.get("id"):
            raise ProviderError(f"OpenAI batch creation returned no batch id: {response.text[:200]}")
        return data

    async def get_batch(self, batch_id: str) -> Dict[str, Any]:
        """Return the raw batch object."""
        response = await self._request("GET", f"/batches/{batch_id}", "batch status check")
        return response.json()

    async def download_file(self, file_id: str) -> str:
        """Return the text content of a provider file (JSONL for batch output)."""
        logger.info(f"Downloading output file: {file_id}")
        response = await self._request("GET", f"/files/{file_id}/content", "file download")
        return response.text

    async def cancel_batch(self, batch_id: str) -> bool:
        """Ask the provider to cancel a batch. Returns False instead of raising."""
        try:
            await self._request("POST", f"/batches/{batch_id}/cancel", "batch cancellation")
        except ProviderError as e:
            logger.warning(f"Failed to cancel batch {batch_id}: {e}")
            return False
        logger.info(f"Successfully cancelled batch {batch_id}")
        return True
