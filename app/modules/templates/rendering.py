"""Placeholder substitution for `{{name}}` templates."""
from app.modules.templates.schemas import TemplateVariable


def placeholder(name: str) -> str:
    return "{{" + name + "}}"


def missing_variables(declared: list[TemplateVariable], supplied: dict[str, str]) -> list[str]:
    """Every required variable with neither a non-empty supplied value nor a non-empty default."""
    return [
        v.name for v in declared
        if v.required and not (supplied.get(v.name) or v.default_value)
    ]


def render(body: str, declared: list[TemplateVariable], supplied: dict[str, str]) -> str:
    # Undeclared placeholders are left as written.
    text = body
    for v in declared:
        value = supplied.get(v.name) or v.default_value or placeholder(v.name)
        text = text.replace(placeholder(v.name), str(value))
    return text
