"""
Email template API endpoints.

WHAT: The placeholder catalogue shown by the template editor.
"""

from fastapi import APIRouter, Depends

from invoice_mailer.core.deps import get_current_user
from invoice_mailer.models.user import User
from invoice_mailer.schemas.email_template import TemplateVariable, TemplateVariableListResponse
from invoice_mailer.services.template_renderer import TEMPLATE_VARIABLES


router = APIRouter(prefix="/email-templates", tags=["email-templates"])


@router.get(
    "/variables",
    response_model=TemplateVariableListResponse,
    summary="List template variables",
)
async def list_template_variables(
    current_user: User = Depends(get_current_user),
) -> TemplateVariableListResponse:
    return TemplateVariableListResponse(
        variables=[TemplateVariable(**variable) for variable in TEMPLATE_VARIABLES]
    )
