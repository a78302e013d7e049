import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from eventcheckin.core.deps import require_permission
from eventcheckin.core.permissions import Action
from eventcheckin.db.base import utcnow
from eventcheckin.db.session import get_db
from eventcheckin.models.staff import StaffUser
from eventcheckin.schemas import ReportSummary
from eventcheckin.services import reports as report_service

router = APIRouter()
logger = logging.getLogger(__name__)

def _csv_response(content: str, name: str) -> Response:
    filename = f"{name}-{utcnow():%Y%m%d-%H%M%S}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

@router.get("/reports/summary", response_model=ReportSummary)
def report_summary(
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.VIEW_REPORTS)),
):
    return report_service.summary(db)

@router.get("/reports/attendees.csv")
def export_attendees(
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.EXPORT_REPORTS)),
):
    logger.info(f"[Admin] Attendee export by {current_user.email}")
    return _csv_response(report_service.attendees_csv(db), "attendees")

@router.get("/reports/checkins.csv")
def export_checkins(
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.EXPORT_REPORTS)),
):
    logger.info(f"[Admin] Check-in export by {current_user.email}")
    return _csv_response(report_service.checkins_csv(db), "checkins")
