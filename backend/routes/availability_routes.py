from datetime import date, time

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from backend.routes.dependencies import database_unavailable, ensure_database_ready, get_engine
from backend.scheduling.engine import SchedulingEngine

router = APIRouter(tags=['availability'])


class BusinessHoursResponse(BaseModel):
    open_time: time
    close_time: time
    display_open_time: time
    display_close_time: time
    granularity_minutes: int
    closed_weekdays: list[int]


class TimeSlotResponse(BaseModel):
    date: date
    start_time: time
    end_time: time
    available: bool


class EarliestStartResponse(BaseModel):
    date: date
    start_time: time | None = None


@router.get('/hours', response_model=BusinessHoursResponse)
def get_business_hours(engine: SchedulingEngine = Depends(get_engine)):
    settings = engine.settings
    return BusinessHoursResponse(
        open_time=settings.hours.open_time,
        close_time=settings.hours.close_time,
        display_open_time=settings.display_hours.open_time,
        display_close_time=settings.display_hours.close_time,
        granularity_minutes=settings.granularity_minutes,
        closed_weekdays=sorted(settings.hours.closed_weekdays),
    )


@router.get('/slots/{slot_date}', response_model=list[TimeSlotResponse])
def list_time_slots(slot_date: date, engine: SchedulingEngine = Depends(get_engine)):
    ensure_database_ready()

    try:
        return [
            TimeSlotResponse(
                date=slot.date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                available=slot.available,
            )
            for slot in engine.iter_available_slots(slot_date)
        ]
    except SQLAlchemyError as exc:
        raise database_unavailable(engine) from exc


@router.get('/earliest/{slot_date}', response_model=EarliestStartResponse)
def get_earliest_start(slot_date: date, engine: SchedulingEngine = Depends(get_engine)):
    return EarliestStartResponse(date=slot_date, start_time=engine.earliest_bookable_start(slot_date))
