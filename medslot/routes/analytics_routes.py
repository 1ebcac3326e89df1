from datetime import date, time

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medslot.auth.dependencies import CurrentUser, require_patient, require_staff
from medslot.core import config
from medslot.database import get_db
from medslot.models.appointment import Appointment
from medslot.models.time_slot import TimeSlot
from medslot.routes.common import database_unavailable, ensure_database_ready
from medslot.services import analytics
from medslot.services.recommendations import recommend_for_patient

router = APIRouter(tags=['analytics'])

MAX_RECOMMENDATIONS = 20


class RecommendationResponse(BaseModel):
    slot_id: int
    staff_id: int
    doctor_name: str
    slot_date: date
    start_time: time
    end_time: time
    time_range: str
    score: float
    reason_tag: str

    class Config:
        from_attributes = True


class RecommendationListResponse(BaseModel):
    reason_code: str
    preferred_staff_id: int | None = None
    preferred_hour: float
    recommendations: list[RecommendationResponse]


class DemandAdvisoryResponse(BaseModel):
    day: date
    level: analytics.AdvisoryLevel
    expected: float
    actual: int
    ratio: float

    class Config:
        from_attributes = True


class UtilizationAdvisoryResponse(BaseModel):
    day: date
    level: analytics.AdvisoryLevel
    booked: int
    capacity: int
    utilization: float

    class Config:
        from_attributes = True


class DemandResponse(BaseModel):
    demand_aligned: bool
    demand: list[DemandAdvisoryResponse]
    utilization_aligned: bool
    utilization: list[UtilizationAdvisoryResponse]


class BusiestTimeSlotResponse(BaseModel):
    time_range: str
    total_bookings: int

    class Config:
        from_attributes = True


class StaffWorkloadResponse(BaseModel):
    staff_id: int
    full_name: str
    appointment_count: int

    class Config:
        from_attributes = True


class SummaryResponse(BaseModel):
    busiest_day: str | None = None
    busiest_time_slot: BusiestTimeSlotResponse | None = None
    most_occupied_staff: StaffWorkloadResponse | None = None
    patient_load: str
    staff_by_weekday: dict[str, list[StaffWorkloadResponse]]
    demand: DemandResponse


def build_demand_response(staffing_demand: analytics.Forecast, staff_requirement: analytics.Forecast) -> DemandResponse:
    return DemandResponse(
        demand_aligned=staffing_demand.aligned,
        demand=[DemandAdvisoryResponse.model_validate(advisory) for advisory in staffing_demand.advisories],
        utilization_aligned=staff_requirement.aligned,
        utilization=[UtilizationAdvisoryResponse.model_validate(advisory) for advisory in staff_requirement.advisories],
    )


def _recommendations(db: Session, user: CurrentUser, staff_id: int | None, limit: int) -> RecommendationListResponse:
    ensure_database_ready()

    try:
        result = recommend_for_patient(db, user.id, staff_id=staff_id, limit=limit)
        return RecommendationListResponse(
            reason_code=result.reason_code,
            preferred_staff_id=result.preferences.preferred_staff_id,
            preferred_hour=result.preferences.preferred_hour,
            recommendations=[RecommendationResponse.model_validate(item) for item in result.recommendations],
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/recommendations', response_model=RecommendationListResponse)
def recommend_any_doctor(
    limit: int = Query(default=config.RECOMMENDATION_LIMIT, ge=1, le=MAX_RECOMMENDATIONS),
    user: CurrentUser = Depends(require_patient),
    db: Session = Depends(get_db),
):
    return _recommendations(db, user, None, limit)


@router.get('/recommendations/{staff_id}', response_model=RecommendationListResponse)
def recommend_for_doctor(
    staff_id: int,
    limit: int = Query(default=config.RECOMMENDATION_LIMIT, ge=1, le=MAX_RECOMMENDATIONS),
    user: CurrentUser = Depends(require_patient),
    db: Session = Depends(get_db),
):
    return _recommendations(db, user, staff_id, limit)


@router.get('/demand', response_model=DemandResponse)
def staffing_demand(
    lookahead_days: int = Query(default=config.DEMAND_LOOKAHEAD_DAYS, ge=1, le=31),
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    del user
    ensure_database_ready()

    try:
        appointments = db.query(Appointment).all()
        slots = db.query(TimeSlot).filter(TimeSlot.slot_date >= date.today()).all()
        return build_demand_response(
            analytics.predict_staffing_demand(appointments, lookahead_days=lookahead_days),
            analytics.predict_staff_requirement(slots),
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/summary', response_model=SummaryResponse)
def analytics_summary(
    user: CurrentUser = Depends(require_staff),
    db: Session = Depends(get_db),
):
    del user
    ensure_database_ready()

    try:
        summary = analytics.build_summary(db)
        return SummaryResponse(
            busiest_day=summary.busiest_day,
            busiest_time_slot=(
                BusiestTimeSlotResponse.model_validate(summary.busiest_time_slot)
                if summary.busiest_time_slot is not None
                else None
            ),
            most_occupied_staff=(
                StaffWorkloadResponse.model_validate(summary.most_occupied_staff)
                if summary.most_occupied_staff is not None
                else None
            ),
            patient_load=summary.patient_load.value,
            staff_by_weekday={
                day: [StaffWorkloadResponse.model_validate(workload) for workload in workloads]
                for day, workloads in summary.staff_by_weekday.items()
            },
            demand=build_demand_response(summary.staffing_demand, summary.staff_requirement),
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
