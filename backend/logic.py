# Aggregation engine - pure derived views over the visit list
from __future__ import annotations

import calendar
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterator, List, Optional, Union

from models import PatientRollup, VisitRecord, canonicalize_reg_number
from holiday_calendar import MONTHS, get_holiday_for_date

DateLike = Union[date, datetime]

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class UniquePatientCounts:
    """Distinct-patient counts: total over every record, buckets over pending ones only"""
    byMonth: Dict[int, int] = field(default_factory=dict)
    byDate: Dict[date, int] = field(default_factory=dict)
    total: int = 0


@dataclass
class DayDescriptor:
    """One cell of a month calendar"""
    date: date
    day: int
    dayName: str
    count: int
    patients: List[VisitRecord]
    holiday: Optional[Dict]
    isToday: bool
    isSunday: bool


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


def tablet_days_between(visit_date: DateLike, next_visit_date: DateLike) -> int:
    """ceil(days between the two dates), clamped to 0"""
    diff = _as_datetime(next_visit_date) - _as_datetime(visit_date)
    days = math.ceil(diff.total_seconds() / SECONDS_PER_DAY)
    return days if days > 0 else 0


def compute_unique_patient_counts(records: List[VisitRecord]) -> UniquePatientCounts:
    """
    Group by canonical registration number.
    total counts every record; byMonth (0-based month index) and byDate
    (calendar day of nextVisitDate) count pending records only. A bucket is
    created for any scheduled month/day even if every record in it is completed.
    """
    total = set()
    by_month: Dict[int, set] = {}
    by_date: Dict[date, set] = {}

    for visit in records:
        reg_num = visit.canonicalKey
        month = visit.nextVisitDate.month - 1
        day_key = visit.nextVisitDate

        total.add(reg_num)

        month_bucket = by_month.setdefault(month, set())
        date_bucket = by_date.setdefault(day_key, set())
        if not visit.completed:
            month_bucket.add(reg_num)
            date_bucket.add(reg_num)

    return UniquePatientCounts(
        byMonth={k: len(v) for k, v in by_month.items()},
        byDate={k: len(v) for k, v in by_date.items()},
        total=len(total),
    )


def compute_patient_rollups(records: List[VisitRecord]) -> Dict[str, PatientRollup]:
    """
    Per-patient rollups keyed by canonical registration number, in order of
    first appearance. Min/max comparisons are strict so ties keep the
    first-seen value.
    """
    rollups: Dict[str, PatientRollup] = {}

    for visit in records:
        reg_num = visit.canonicalKey
        rollup = rollups.get(reg_num)
        if rollup is None:
            rollup = PatientRollup(
                displayRegistrationNumber=visit.registrationNumber,
                firstVisitDate=visit.visitDate,
                lastVisitDate=visit.visitDate,
                lastNextVisitDate=visit.nextVisitDate,
            )
            rollups[reg_num] = rollup

        rollup.totalTabletDays += visit.tabletDaysGiven
        rollup.visits.append(visit)

        if visit.visitDate < rollup.firstVisitDate:
            rollup.firstVisitDate = visit.visitDate
        if visit.visitDate > rollup.lastVisitDate:
            rollup.lastVisitDate = visit.visitDate
        if visit.nextVisitDate > rollup.lastNextVisitDate:
            rollup.lastNextVisitDate = visit.nextVisitDate

    for rollup in rollups.values():
        rollup.visits.sort(key=lambda v: v.visitDate)  # stable

    return rollups


def get_patient_total_tablets(rollups: Dict[str, PatientRollup], reg_number: str) -> int:
    """Cumulative tablet days for a patient, 0 if never seen"""
    rollup = rollups.get(canonicalize_reg_number(reg_number))
    return rollup.totalTabletDays if rollup else 0


def unique_patients_for_date(counts: UniquePatientCounts, day: DateLike) -> int:
    if isinstance(day, datetime):
        day = day.date()
    return counts.byDate.get(day, 0)


def unique_patients_for_month(counts: UniquePatientCounts, month_index: int) -> int:
    return counts.byMonth.get(month_index, 0)


def get_patients_for_date(records: List[VisitRecord], day: date) -> List[VisitRecord]:
    """All records (completed or not) scheduled on a day"""
    return [v for v in records if v.nextVisitDate == day]


def _pending_for_date(records: List[VisitRecord], day: date) -> List[VisitRecord]:
    return [v for v in records if v.nextVisitDate == day and not v.completed]


def dates_for_month(
    records: List[VisitRecord],
    month_index: int,
    year: int,
    today: Optional[date] = None,
) -> Iterator[DayDescriptor]:
    """
    Lazily yield one DayDescriptor per day of a month (month_index is 0-based).
    Only the opened month is computed; nothing is precomputed for the year.
    """
    if not 0 <= month_index <= 11:
        raise ValueError(f"month_index must be 0-11, got {month_index}")
    today = today or date.today()
    _, days_in_month = calendar.monthrange(year, month_index + 1)

    for day_number in range(1, days_in_month + 1):
        day = date(year, month_index + 1, day_number)
        pending = _pending_for_date(records, day)
        yield DayDescriptor(
            date=day,
            day=day_number,
            dayName=day.strftime("%a"),
            count=len({v.canonicalKey for v in pending}),
            patients=pending,
            holiday=get_holiday_for_date(day),
            isToday=day == today,
            isSunday=day.weekday() == 6,
        )


def get_upcoming_days(counts: UniquePatientCounts, today: date, days: int = 6) -> List[Dict]:
    """Pending patient counts for each of the next `days` days after today"""
    result = []
    for offset in range(1, days + 1):
        next_date = today + timedelta(days=offset)
        result.append({
            "date": next_date,
            "day": next_date.day,
            "month": next_date.strftime("%b %Y"),
            "count": unique_patients_for_date(counts, next_date),
        })
    return result


def get_today_patients(records: List[VisitRecord], today: date) -> List[VisitRecord]:
    return get_patients_for_date(records, today)


def get_pending_today_count(records: List[VisitRecord], today: date) -> int:
    """Distinct patients still pending today"""
    return len({v.canonicalKey for v in _pending_for_date(records, today)})


def month_overview(counts: UniquePatientCounts) -> List[Dict]:
    """Year grid: pending patient count per month"""
    return [
        {"monthIndex": index, "name": name, "count": unique_patients_for_month(counts, index)}
        for index, name in enumerate(MONTHS)
    ]
