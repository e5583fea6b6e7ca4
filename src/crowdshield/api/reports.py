"""Fraud report and statistics endpoints.

Endpoints:
- POST /fraud/report
- GET /fraud/my-reports
- POST /fraud/reports/{report_id}/deactivate   (admin)
- POST /fraud/reports/{report_id}/reactivate   (admin)
- GET /stats/overview
"""

import math

from fastapi import APIRouter, Depends, Query, status

from crowdshield.api.auth import require_role, require_token
from crowdshield.services.factories import ServiceContainer, get_services
from crowdshield.services.models import FraudReportInput

router = APIRouter(tags=["reports"])


@router.post("/fraud/report", status_code=status.HTTP_201_CREATED)
def submit_report(
    payload: FraudReportInput,
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    report = services.reports.submit_report(user["user_id"], payload)
    return {
        "message": "Fraud report submitted successfully. Thank you for helping protect the community!",
        "report": report.summary(),
    }


@router.get("/fraud/my-reports")
def my_reports(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    reports, total = services.reports.list_reports_by_reporter(
        user["user_id"], limit=limit, offset=(page - 1) * limit
    )
    return {
        "reports": [report.summary() for report in reports],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }


@router.post("/fraud/reports/{report_id}/deactivate")
def deactivate_report(
    report_id: str,
    user=Depends(require_role("admin")),
    services: ServiceContainer = Depends(get_services),
):
    services.reports.deactivate_report(report_id)
    return {"report_id": report_id, "is_active": False}


@router.post("/fraud/reports/{report_id}/reactivate")
def reactivate_report(
    report_id: str,
    user=Depends(require_role("admin")),
    services: ServiceContainer = Depends(get_services),
):
    services.reports.reactivate_report(report_id)
    return {"report_id": report_id, "is_active": True}


@router.get("/stats/overview")
def stats_overview(services: ServiceContainer = Depends(get_services)):
    return services.reports.stats_overview()
