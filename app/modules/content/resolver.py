import uuid
import logging
from app.core.errors import ContentTooLong, MissingRequiredVariable, TemplateNotFound
from app.modules.compliance.evaluator import MAX_TEXT_LENGTH
from app.modules.messages.schemas import ContentIn, ResolvedContent
from app.modules.templates.rendering import missing_variables, render
from app.modules.templates.repository import TemplateRepository

log = logging.getLogger("content")

def check_length(text: str, limit: int = MAX_TEXT_LENGTH) -> None:
    if len(text) > limit:
        raise ContentTooLong(len(text), limit)

class ContentResolver:
    """Turns a send request's content block into final text and media."""

    def __init__(self, templates: TemplateRepository):
        self.templates = templates

    async def resolve(self, org_id: uuid.UUID, content: ContentIn) -> ResolvedContent:
        if content.template_id is None:
            text = content.text or ""
            check_length(text)
            return ResolvedContent(text=text, media=content.media)

        template = await self.templates.get_template(content.template_id, org_id)
        if template is None:
            raise TemplateNotFound(content.template_id)
        missing = missing_variables(template.variables, content.variables)
        if missing:
            raise MissingRequiredVariable(missing)
        text = render(template.body, template.variables, content.variables)
        check_length(text)

        await self.templates.increment_usage(template.id)
        log.debug(f"template {template.id} rendered for org {org_id}")
        # media on the request replaces the template's own
        return ResolvedContent(text=text, media=content.media or template.media, template_id=template.id)
