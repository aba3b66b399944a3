# backend/app/services/provider_client.py
import httpx
from typing import Dict, Any, Optional

from app.core.config import settings
from app.core.constants import AI_MODELS
from app.core.exceptions import ProviderError
from app.core.logging import logger
from app.schemas.webhook import ProviderEvent


class ProviderClient:
    """Client for the compute provider's prediction API"""

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_token = api_token if api_token is not None else settings.PROVIDER_API_TOKEN
        self.base_url = (base_url or settings.PROVIDER_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self.transport = transport
        self.webhook_url = f"{settings.BACKEND_URL}{settings.API_V1_STR}/webhooks/provider"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_token}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> ProviderEvent:
        if not self.api_token:
            raise ProviderError("Compute provider API token not configured")

        try:
            async with self._client() as client:
                response = await client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error(f"Provider request {method} {path} failed: {str(e)}")
            raise ProviderError(f"Compute provider unreachable: {str(e)}")

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            logger.error(f"Provider error {response.status_code} on {method} {path}: {detail}")
            raise ProviderError(
                f"Compute provider returned {response.status_code}: {detail}",
                details={"status_code": response.status_code},
            )

        try:
            return ProviderEvent.model_validate(response.json())
        except ValueError as e:
            raise ProviderError(f"Unexpected provider response: {str(e)}")

    async def create_prediction(
        self,
        model: str,
        inputs: Dict[str, Any],
        webhook_url: Optional[str] = None,
    ) -> ProviderEvent:
        """
        Start a prediction for ``model``.

        Args:
            model: Catalog key (e.g. ``flux-dev``) or a provider model reference
            inputs: Model input; passed through as-is
            webhook_url: Where the provider sends status callbacks

        Returns:
            The prediction as first reported by the provider
        """
        provider_model = AI_MODELS.get(model, {}).get("provider_model", model)
        payload = {
            "input": inputs,
            "webhook": webhook_url or self.webhook_url,
            "webhook_events_filter": ["start", "completed"],
        }

        prediction = await self._request("POST", f"/v1/models/{provider_model}/predictions", json=payload)
        logger.info(f"Created provider prediction {prediction.id} for {provider_model}")
        return prediction

    async def get_prediction(self, prediction_id: str) -> ProviderEvent:
        return await self._request("GET", f"/v1/predictions/{prediction_id}")

    async def cancel_prediction(self, prediction_id: str) -> ProviderEvent:
        prediction = await self._request("POST", f"/v1/predictions/{prediction_id}/cancel")
        logger.info(f"Cancelled provider prediction {prediction_id}")
        return prediction
