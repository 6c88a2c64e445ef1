"""Upload of merged artifacts to the storage service."""

import asyncio
import logging
import os
from typing import Optional

import httpx

from app.jobs.errors import ArtifactIOError, UpstreamUnavailableError
from app.utils.backoff import get_backoff_delay

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


def _read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


class ResultUploader:
    """Sends an artifact as a multipart form (``file`` + ``path``) with a bearer token.

    Transport errors and retryable status codes are retried with exponential
    backoff; anything else fails on the first attempt.
    """

    def __init__(
        self,
        upload_url: str,
        timeout: float = 10.0,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.upload_url = upload_url
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self._transport = transport

    async def upload(self, local_path: str, destination_path: str, access_token: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            contents = await loop.run_in_executor(None, _read_file, local_path)
        except OSError as e:
            raise ArtifactIOError(f"Could not read artifact {local_path}: {e}") from e

        filename = os.path.basename(local_path)
        headers = {"Authorization": f"Bearer {access_token}"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(self.max_attempts):
                try:
                    response = await client.post(
                        self.upload_url,
                        files={"file": (filename, contents)},
                        data={"path": destination_path},
                        headers=headers,
                    )
                except httpx.TransportError as e:
                    error = f"{type(e).__name__}: {e}"
                else:
                    if response.is_success:
                        logger.info(f"Uploaded {filename} ({len(contents)} bytes) to {destination_path}")
                        return
                    error = f"HTTP {response.status_code}: {response.text[:500]}"
                    if response.status_code not in RETRYABLE_STATUS_CODES:
                        raise UpstreamUnavailableError(f"Upload of {filename} rejected: {error}")

                if attempt >= self.max_attempts - 1:
                    break
                delay = get_backoff_delay(attempt, self.base_delay)
                logger.warning(
                    f"Upload of {filename} failed ({error}); "
                    f"retry {attempt + 1}/{self.max_attempts - 1} in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

        raise UpstreamUnavailableError(
            f"Upload of {filename} failed after {self.max_attempts} attempts: {error}"
        )
