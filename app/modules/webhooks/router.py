import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError as PayloadError
from twilio.request_validator import RequestValidator

from app.core.config import settings
from app.core.errors import MessageNotFound
from app.modules.messages.router import orchestrator
from app.modules.messages.schemas import WebhookAck
from app.modules.messages.service import DispatchOrchestrator
from app.modules.webhooks.twilio_schema import TwilioStatusCallback
from app.platform.adapters.delivery_twilio import STATUS_MAP

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/twilio/status", response_model=WebhookAck)
async def twilio_status_callback(request: Request, service: DispatchOrchestrator = Depends(orchestrator)):
    """
    Delivery receipts pushed by Twilio. Resolves the message by its Twilio SID and
    feeds the mapped status through the same path as the generic webhook.
    """
    form_data = await request.form()
    try:
        callback = TwilioStatusCallback.model_validate(dict(form_data))
    except PayloadError as e:
        logger.error(f"Twilio status callback validation failed: {e}")
        raise HTTPException(status_code=400, detail="Malformed Twilio status callback")

    message = await service.messages.get_by_provider_id(callback.message_sid)
    if message is None:
        raise MessageNotFound(callback.message_sid)

    if settings.VERIFY_TWILIO_SIGNATURES:
        tenant = await service.tenants.get_config(message.org_id)
        auth_token = tenant.delivery.credentials.get("auth_token") if tenant else None
        signature = request.headers.get("X-Twilio-Signature", "")
        if not auth_token or not RequestValidator(auth_token).validate(str(request.url), dict(form_data), signature):
            logger.warning(f"Rejected Twilio callback for {callback.message_sid}: bad signature")
            raise HTTPException(status_code=403, detail="Invalid Twilio signature")

    raw = callback.message_status.lower()
    status = STATUS_MAP.get(raw, "pending")
    error = callback.error() or (raw if status == "failed" else None)
    logger.info(f"Twilio reports {callback.message_status} for {callback.message_sid}")
    return await service.ingest_report(message, status, error)
