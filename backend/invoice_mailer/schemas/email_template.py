"""Email template schemas."""

from typing import List

from pydantic import BaseModel, Field


class TemplateVariable(BaseModel):
    """A placeholder available in email templates."""

    name: str = Field(..., description="Placeholder name, used as {{name}}")
    description: str


class TemplateVariableListResponse(BaseModel):
    """Placeholder catalogue for the template editor."""

    variables: List[TemplateVariable]
