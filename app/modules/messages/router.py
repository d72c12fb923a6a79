import uuid
from datetime import datetime
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.db import get_session
from app.core.security import get_principal, require_scopes, Principal
from app.modules.messages.schemas import (
    DeliveryStatus, MessageOut, MessagePage, OptOutCreate, OptOutOut, SendOutcome, SendRequest, WebhookAck, WebhookIn,
)
from app.modules.messages.service import DispatchOrchestrator

router = APIRouter()
opt_out_router = APIRouter()

OUTCOME_STATUS = {"sent": 200, "scheduled": 200, "rejected": 400, "failed": 502}

def orchestrator(session: AsyncSession = Depends(get_session)) -> DispatchOrchestrator:
    return DispatchOrchestrator(session)

@router.post("/send", response_model=SendOutcome, response_model_exclude_none=True,
             dependencies=[Depends(require_scopes("messages:send"))])
async def send_message(
    payload: SendRequest,
    response: Response,
    principal: Principal = Depends(get_principal),
    service: DispatchOrchestrator = Depends(orchestrator),
):
    outcome = await service.send(principal, payload)
    response.status_code = OUTCOME_STATUS[outcome.status]
    return outcome

@router.post("/webhook", response_model=WebhookAck)
async def delivery_webhook(payload: WebhookIn, service: DispatchOrchestrator = Depends(orchestrator)):
    # unauthenticated: called by delivery providers
    return await service.ingest_webhook(payload.message_id, payload.status, payload.error)

@router.get("", response_model=MessagePage, dependencies=[Depends(require_scopes("messages:read"))])
async def list_messages(
    status: DeliveryStatus | None = None,
    campaign_id: uuid.UUID | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    service: DispatchOrchestrator = Depends(orchestrator),
):
    return await service.list(principal, status=status, campaign_id=campaign_id,
                              start=start_date, end=end_date, page=page, limit=limit)

@router.get("/{message_id}", response_model=MessageOut, dependencies=[Depends(require_scopes("messages:read"))])
async def get_message(
    message_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: DispatchOrchestrator = Depends(orchestrator),
):
    return MessageOut.from_model(await service.get(principal, message_id))

@router.post("/{message_id}/retry", response_model=SendOutcome, response_model_exclude_none=True,
             dependencies=[Depends(require_scopes("messages:write"))])
async def retry_message(
    message_id: uuid.UUID,
    response: Response,
    principal: Principal = Depends(get_principal),
    service: DispatchOrchestrator = Depends(orchestrator),
):
    outcome = await service.retry(principal, message_id)
    response.status_code = OUTCOME_STATUS[outcome.status]
    return outcome

@router.delete("/{message_id}", dependencies=[Depends(require_scopes("messages:write"))])
async def cancel_message(
    message_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: DispatchOrchestrator = Depends(orchestrator),
):
    await service.cancel(principal, message_id)
    return {"message": "Scheduled message cancelled successfully", "message_id": str(message_id)}

@router.post("/{message_id}/dispatch", response_model=SendOutcome, response_model_exclude_none=True,
             dependencies=[Depends(require_scopes("messages:dispatch"))])
async def dispatch_message(
    message_id: uuid.UUID,
    response: Response,
    principal: Principal = Depends(get_principal),
    service: DispatchOrchestrator = Depends(orchestrator),
):
    outcome = await service.dispatch_scheduled(principal, message_id)
    response.status_code = OUTCOME_STATUS[outcome.status]
    return outcome

@router.post("/{message_id}/refresh-status", response_model=WebhookAck,
             dependencies=[Depends(require_scopes("messages:read"))])
async def refresh_status(
    message_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: DispatchOrchestrator = Depends(orchestrator),
):
    return await service.refresh_status(principal, message_id)

@opt_out_router.post("", response_model=OptOutOut, status_code=201,
                     dependencies=[Depends(require_scopes("optouts:write"))])
async def create_opt_out(
    payload: OptOutCreate,
    principal: Principal = Depends(get_principal),
    service: DispatchOrchestrator = Depends(orchestrator),
):
    return await service.record_opt_out(principal, payload)
