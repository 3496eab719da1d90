from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from sqlalchemy.orm import Session

from app.api.dependencies.auth import get_current_user_id
from app.db.repository import DuplicateCheckinError, add_checkin
from app.db.session import get_db
from app.planning.schema.checkin import CheckinData

router = APIRouter(prefix="/checkins", tags=["checkins"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_checkin(
    checkin: CheckinData,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> dict[str, str]:
    """Record today's check-in. Check-ins are immutable: a second one for the same day is a 409."""
    try:
        record = add_checkin(db, user_id, checkin)
        db.commit()
    except DuplicateCheckinError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    logger.info("Check-in recorded", user_id=user_id, date=checkin.date.isoformat())
    return {"id": record.id, "date": checkin.date.isoformat()}
