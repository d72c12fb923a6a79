import uuid
from pydantic import BaseModel, Field
from app.modules.messages.schemas import MediaItem

class TemplateVariable(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    required: bool = False
    default_value: str | None = None

class TemplateView(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    name: str
    body: str
    media: list[MediaItem] = []
    variables: list[TemplateVariable] = []

    class Config:
        from_attributes = True
