from fastapi import APIRouter
from app.modules.messages.router import router as messages_router, opt_out_router
from app.modules.webhooks.router import router as webhooks_router

api_router = APIRouter()
api_router.include_router(messages_router, prefix="/messages", tags=["messages"])
api_router.include_router(opt_out_router, prefix="/opt-outs", tags=["opt-outs"])
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
