# Seed data - demo visits for local review and tests
import logging
from datetime import date, datetime, timezone

from models import VisitRecord
from logic import tablet_days_between
from store import AppState

logger = logging.getLogger(__name__)

# (id, regNumber, visitDate, nextVisitDate, completed)
DEMO_VISITS = [
    # Patient 1: two visits, the first follow-up already happened
    (1001, "2026/ABC/0001", date(2026, 1, 1), date(2026, 3, 1), True),
    (1002, "2026/ABC/0001", date(2026, 3, 1), date(2026, 5, 1), False),
    # Patient 2: single pending visit due the same day as patient 1's second
    (1003, "2026/KDY/0042", date(2026, 4, 1), date(2026, 5, 1), False),
    # Patient 3: lowercase entry from an older import, same serial as patient 1
    (1004, "2025/mtr/0001", date(2026, 2, 10), date(2026, 2, 15), False),
]


def seed_data(state: AppState) -> None:
    """Replace the store contents with the demo visits (most recent first)"""
    recorded_at = datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)
    visits = [
        VisitRecord(
            id=visit_id,
            registrationNumber=reg_number,
            visitDate=visit_date,
            nextVisitDate=next_visit_date,
            tabletDaysGiven=tablet_days_between(visit_date, next_visit_date),
            recordedAt=recorded_at,
            completed=completed,
            completedAt=recorded_at if completed else None,
        )
        for visit_id, reg_number, visit_date, next_visit_date, completed in reversed(DEMO_VISITS)
    ]
    state.visits = visits
    state.notice = None
    state.last_id = max(v.id for v in visits)
    state.cache.save_visits(visits)

    logger.info("Seed data initialized: %d visits, %d patients", len(visits), len(state.rollups()))
