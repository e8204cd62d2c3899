"""
Quality audit routes.
"""
from dataclasses import asdict
from fastapi import APIRouter

from api.models.requests import AuditRequest
from services.audit.quality_auditor import audit_course, get_quality_rating

router = APIRouter()


@router.post("/audit")
async def audit(request: AuditRequest):
    """
    Audit a finished course against its source text.

    overall_score is -1 when the course has no usable source text.
    """
    result = audit_course(request.model_dump())
    response = asdict(result)
    response["rating"] = get_quality_rating(result.overall_score) if result.auditable else None
    return response
