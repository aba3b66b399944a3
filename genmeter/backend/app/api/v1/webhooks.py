# backend/app/api/v1/webhooks.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import WEBHOOK_SIGNATURE_HEADER
from app.core.logging import logger
from app.db.database import get_db
from app.schemas.webhook import WebhookResult
from app.services.provider_webhook_service import ProviderWebhookService

router = APIRouter()


@router.post("/provider", response_model=WebhookResult)
async def provider_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Status callback from the compute provider.

    The signature is checked against the raw body before anything is parsed.
    Rejections answer with an error status so the provider retries.
    """
    payload = await request.body()
    signature = request.headers.get(WEBHOOK_SIGNATURE_HEADER)

    result = await ProviderWebhookService(db).handle_webhook(payload, signature)
    logger.info("Provider webhook processed", extra=result.to_log())
    return result
