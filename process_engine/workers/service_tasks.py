"""
Service task executor.

Calls the endpoint of SERVICE_TASK and AI_AGENT_TASK functions. Relative
paths are resolved against the configured base URL and carry the service
bearer token; absolute URLs are called as-is.
"""

import logging
from typing import Any, Optional

import httpx

from process_engine.config import get_settings
from process_engine.core.errors import ServiceTaskFailed
from process_engine.core.models import FunctionRegistryEntry, InstanceTask

logger = logging.getLogger(__name__)


class ServiceTaskExecutor:
    """HTTP client for automated task endpoints."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        auth_token: Optional[str] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.service_task.base_url).rstrip("/")
        self.auth_token = auth_token if auth_token is not None else settings.service_task.auth_token
        self.default_timeout = settings.service_task.default_timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.default_timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def resolve_endpoint(self, endpoint_or_path: str) -> tuple[str, dict[str, str]]:
        """Full URL and extra headers for a registry endpoint."""
        if endpoint_or_path.startswith(("http://", "https://")):
            return endpoint_or_path, {}

        headers = {}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        path = endpoint_or_path if endpoint_or_path.startswith("/") else f"/{endpoint_or_path}"
        return f"{self.base_url}{path}", headers

    async def call(self, task: InstanceTask, entry: FunctionRegistryEntry) -> dict[str, Any]:
        """
        POST the task to its function's endpoint.

        Returns:
            The ``output`` member of the response body, or the whole body

        Raises:
            ServiceTaskFailed: On transport errors, timeouts or non-2xx responses
        """
        if not entry.endpoint_or_path:
            raise ServiceTaskFailed(f"Function {entry.function_code} has no endpoint")

        url, headers = self.resolve_endpoint(entry.endpoint_or_path)
        payload = {
            "task_id": str(task.id),
            "workflow_instance_id": str(task.workflow_instance_id),
            "function_code": task.function_code,
            "input_data": task.input_data,
            "context": {
                "node_id": task.node_id,
                "task_type": task.task_type.value,
            },
        }

        logger.info(f"Calling {entry.implementation_type.value} {entry.function_code} at {url}")

        try:
            response = await self.client.post(
                url,
                json=payload,
                headers=headers,
                timeout=entry.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise ServiceTaskFailed(
                f"Service task timed out after {entry.timeout_seconds} seconds"
            ) from e
        except httpx.HTTPError as e:
            raise ServiceTaskFailed(f"Service task request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            reason = body.get("error") if isinstance(body, dict) else None
            raise ServiceTaskFailed(f"Service task failed: {reason or response.reason_phrase}")

        if isinstance(body, dict) and "output" in body:
            output = body["output"]
        else:
            output = body

        if not isinstance(output, dict):
            output = {"result": output}
        return output
