"""
Medical report endpoints.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from database.database import get_db
from database.tables import User
from models.care_models import (
    ReportAnalyzeRequest,
    ReportAnalyzeResponse,
    ReportCreate,
    ReportData,
    ReportDetail,
    ReportListResponse,
    ReportResponse,
)
from services import care_service
from services.ai_service import OncologyAIService, get_ai_service
from services.auth_service import get_current_user

router = APIRouter(prefix="/api/v1/reports", tags=["Reports"])


@router.get("", response_model=ReportListResponse)
def list_reports(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ReportListResponse:
    reports = care_service.list_reports(db, user.id)
    return ReportListResponse(reports=[ReportData.model_validate(r) for r in reports])


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
def create_report(
    payload: ReportCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ReportResponse:
    report = care_service.create_report(db, user.id, payload)
    return ReportResponse(report=ReportDetail.model_validate(report))


@router.get("/{report_id}", response_model=ReportResponse)
def get_report(
    report_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ReportResponse:
    report = care_service.get_report(db, user.id, report_id)
    return ReportResponse(report=ReportDetail.model_validate(report))


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_report(
    report_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    care_service.delete_report(db, user.id, report_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{report_id}/analyze", response_model=ReportAnalyzeResponse)
async def analyze_report(
    report_id: str,
    payload: ReportAnalyzeRequest | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    ai_service: OncologyAIService = Depends(get_ai_service),
) -> ReportAnalyzeResponse:
    """
    Run AI analysis on a report.

    Analyzes ``report_text`` when supplied, otherwise the stored content.
    """
    report, analysis = await care_service.analyze_report(
        db, ai_service, user.id, report_id, payload.report_text if payload else None
    )
    return ReportAnalyzeResponse(report=ReportDetail.model_validate(report), analysis=analysis)
