import asyncio
import logging
import httpx
from typing import Any, Dict, Optional

from kbparts.config.settings import ProcessingConfig, settings
from kbparts.core.errors import ProcessingTriggerError
from kbparts.models.document import DocumentRecord

logger = logging.getLogger(__name__)

class ProcessingClient:
    """
    Asks the remote processing service to index a stored part.
    Completion is reported later through the status webhook.
    """

    def __init__(self,
                 config: Optional[ProcessingConfig] = None,
                 sync_secret: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or settings.processing
        self.enabled = bool(self.config.endpoint)
        self.url = f"{self.config.endpoint.rstrip('/')}{self.config.process_path}"
        self.headers = {
            "X-Sync-Secret": sync_secret if sync_secret is not None else settings.sync_secret,
            "Content-Type": "application/json"
        }
        self.max_retries = self.config.max_retries
        self.base_delay = self.config.base_delay
        self.transport = transport

    async def trigger(self, record: DocumentRecord, file_url: str) -> Dict[str, Any]:
        """
        POSTs the part to the processing service.
        Returns the parsed response body; raises ProcessingTriggerError otherwise.
        """
        if not self.enabled:
            logger.warning(f"Processing endpoint is not configured. '{record.name}' stays pending.")
            return {"skipped": True}

        payload = {
            "document_id": record.id,
            "file_url": file_url,
            "file_name": record.name,
            "description": record.description
        }

        try:
            response = await asyncio.wait_for(self._post_with_retry(payload), timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise ProcessingTriggerError(
                record.id, f"Request timed out after {self.config.timeout_seconds:.0f} seconds"
            ) from e
        except httpx.HTTPError as e:
            raise ProcessingTriggerError(record.id, f"Connection error: {e}") from e

        if not response.is_success:
            raise ProcessingTriggerError(
                record.id,
                f"Processing service error: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    async def _post_with_retry(self, payload: Dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(transport=self.transport, timeout=self.config.timeout_seconds) as client:
            for attempt in range(self.max_retries):
                try:
                    logger.debug(f"Trigger attempt {attempt + 1}/{self.max_retries} for {payload['document_id']}")
                    response = await client.post(self.url, headers=self.headers, json=payload)

                    # 4xx will not get better on retry
                    if response.status_code < 500:
                        return response

                    if attempt == self.max_retries - 1:
                        return response
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(f"Server error {response.status_code}, retrying in {delay:.2f}s...")
                    await asyncio.sleep(delay)
                except httpx.TransportError as e:
                    if attempt == self.max_retries - 1:
                        raise e
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(f"Network error: {e}. Retrying in {delay:.2f}s...")
                    await asyncio.sleep(delay)

        raise ProcessingTriggerError(payload["document_id"], "Failed after maximum retries")
