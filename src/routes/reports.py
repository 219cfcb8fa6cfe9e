import logging
import re
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from src.routes.deps import get_case_service
from src.services.case_aggregation import CaseService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports"])

_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def _error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "status": "error"})


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value or not _DATE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


# GET /reports/daily?date=2025-01-16
@router.get("/daily")
def daily_report(date: Optional[str] = None, case_service: CaseService = Depends(get_case_service)):
    if not date:
        return _error("Date parameter is required in YYYY-MM-DD format")

    day = _parse_date(date)
    if day is None:
        return _error("Invalid date format. Use YYYY-MM-DD")

    logger.info(f"API request for daily report: {date}")
    try:
        return case_service.daily_summary(day)
    except Exception as e:
        logger.error(f"Error generating daily report: {e}", exc_info=True)
        return _error("Failed to generate daily report", status_code=500)


# GET /reports/monthly?month=2025-01
@router.get("/monthly")
def monthly_report(month: Optional[str] = None, case_service: CaseService = Depends(get_case_service)):
    if not month:
        return _error("Month parameter is required in YYYY-MM format")

    if not _MONTH.match(month):
        return _error("Invalid month format. Use YYYY-MM")

    logger.info(f"API request for monthly report: {month}")
    try:
        return case_service.monthly_summary(month)
    except Exception as e:
        logger.error(f"Error generating monthly report: {e}", exc_info=True)
        return _error("Failed to generate monthly report", status_code=500)


# GET /reports/cases?follower=Srey%20Sros&month=2025-01
@router.get("/cases")
def follower_cases(
    follower: Optional[str] = None,
    month: Optional[str] = None,
    case_service: CaseService = Depends(get_case_service),
):
    if not follower or not follower.strip():
        return _error("Follower parameter is required")

    if not month or not _MONTH.match(month):
        return _error("Invalid month format. Use YYYY-MM")

    logger.info(f"API request for cases: {follower.strip()} {month}")
    try:
        cases = case_service.cases_for_month(month, follower.strip())
    except Exception as e:
        logger.error(f"Error loading cases: {e}", exc_info=True)
        return _error("Failed to load cases", status_code=500)

    return {
        "follower": follower.strip(),
        "month": month,
        "total": len(cases),
        "cases": [case.model_dump(mode="json") for case in cases],
    }


@router.get("/health")
def reports_health():
    return {
        "status": "ok",
        "service": "reports",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
