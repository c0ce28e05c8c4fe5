"""Production and project reporting routes."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import OrganizationContext, get_organization_context
from ..database import get_db
from ..services import production_report, progress_rate
from ..services.time_windows import PRODUCTION_PERIODS, PROJECT_PERIODS, InvalidPeriod

# purpose: read-only dashboards over printer accumulators and project stages
# status: active
# depends_on: printops.services.production_report, printops.services.progress_rate

router = APIRouter(prefix="/api/reports", tags=["reports"])


def _require_period(period: str | None, allowed: tuple[str, ...]) -> str:
    if not period:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid or missing 'for' parameter; expected one of: {', '.join(allowed)}",
        )
    return period


@router.get("/production", response_model=schemas.ProductionReport)
def production_report_view(
    period: str | None = Query(None, alias="for"),
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    period = _require_period(period, PRODUCTION_PERIODS)
    try:
        return production_report.generate_production_report(
            db, context.organization_id, period, datetime.now(timezone.utc)
        )
    except InvalidPeriod as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/projects", response_model=schemas.ProjectReport)
def project_report_view(
    period: str | None = Query(None, alias="for"),
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    period = _require_period(period, PROJECT_PERIODS)
    try:
        return production_report.generate_project_report(
            db, context.organization_id, period, datetime.now(timezone.utc)
        )
    except InvalidPeriod as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/progress-rate", response_model=schemas.OrganizationProgressRateOut)
def organization_progress_rate_view(
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    rate = progress_rate.organization_progress_rate(db, context.organization_id, datetime.now(timezone.utc))
    return schemas.OrganizationProgressRateOut(organization_id=context.organization_id, rate=rate)
