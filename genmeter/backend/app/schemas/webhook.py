# backend/app/schemas/webhook.py
from pydantic import BaseModel, ConfigDict
from typing import Optional, Dict, Any, List, Union

from app.core.constants import ProviderStatus


class ProviderMetrics(BaseModel):
    model_config = ConfigDict(extra="allow")

    predict_time: Optional[float] = None


class ProviderEvent(BaseModel):
    """A prediction as the compute provider reports it (webhook body or poll result)"""
    model_config = ConfigDict(extra="ignore")

    id: str
    status: ProviderStatus
    output: Optional[Union[str, List[Optional[str]]]] = None
    error: Optional[str] = None
    metrics: Optional[ProviderMetrics] = None
    logs: Optional[str] = None

    @property
    def first_output(self) -> Optional[str]:
        if isinstance(self.output, list):
            return next((item for item in self.output if item), None)
        return self.output

    @property
    def predict_time(self) -> Optional[float]:
        return self.metrics.predict_time if self.metrics else None


class WebhookResult(BaseModel):
    received: bool = True
    applied: bool
    generation_id: Optional[str] = None
    status: Optional[str] = None
    detail: Optional[str] = None

    def to_log(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
