# Visit record store - application state and the commands that mutate it
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from models import (
    REG_NUMBER_EXAMPLE,
    PatientRollup,
    ValidationError,
    VisitRecord,
    is_valid_reg_number,
)
from logic import (
    UniquePatientCounts,
    compute_patient_rollups,
    compute_unique_patient_counts,
    tablet_days_between,
)
from gateway import (
    ADD_VISIT,
    CLEAR_ALL_DATA,
    DEFAULT_TIMEOUT,
    DELETE_VISIT,
    UPDATE_VISIT,
    GatewayError,
    LocalCache,
    PersistenceGateway,
    RemoteGateway,
    visit_to_wire,
)

logger = logging.getLogger(__name__)

OFFLINE_NOTICE = "Could not reach the remote endpoint; changes are saved locally."


@dataclass
class AppState:
    """
    Everything the tracker knows. Commands below replace `visits` with a new
    list on every change, so derived values are cached by list identity.
    """
    cache: LocalCache
    gateway: PersistenceGateway
    visits: List[VisitRecord] = field(default_factory=list)
    notice: Optional[str] = None
    syncing: bool = False
    last_id: int = 0
    _derived_for: Optional[List[VisitRecord]] = field(default=None, repr=False)
    _counts: Optional[UniquePatientCounts] = field(default=None, repr=False)
    _rollups: Optional[Dict[str, PatientRollup]] = field(default=None, repr=False)

    def _refresh_derived(self) -> None:
        if self._derived_for is not self.visits:
            self._counts = compute_unique_patient_counts(self.visits)
            self._rollups = compute_patient_rollups(self.visits)
            self._derived_for = self.visits

    def counts(self) -> UniquePatientCounts:
        self._refresh_derived()
        return self._counts

    def rollups(self) -> Dict[str, PatientRollup]:
        self._refresh_derived()
        return self._rollups

    def find(self, visit_id) -> Optional[VisitRecord]:
        return next((v for v in self.visits if v.id == visit_id), None)


def validate_visit(reg_number: Optional[str], visit_date: Optional[date], next_visit_date: Optional[date]) -> str:
    """Check a submission; returns the trimmed registration number"""
    if not reg_number or not reg_number.strip() or not visit_date or not next_visit_date:
        raise ValidationError("Please fill in all required fields")
    reg_number = reg_number.strip()
    if not is_valid_reg_number(reg_number):
        raise ValidationError(
            f"Invalid PT Registration Number format. Required format: YYYY/AAA/0000 (e.g. {REG_NUMBER_EXAMPLE})"
        )
    if next_visit_date <= visit_date:
        raise ValidationError("Next Visit Date must be after Visit Date")
    return reg_number


def _next_id(state: AppState, now: datetime) -> int:
    """Epoch milliseconds, bumped past anything already issued or stored"""
    existing = {v.id for v in state.visits}
    candidate = max(int(now.timestamp() * 1000), state.last_id + 1)
    while candidate in existing:
        candidate += 1
    state.last_id = candidate
    return candidate


def _commit(state: AppState, visits: List[VisitRecord]) -> None:
    """Swap in a new visit list and mirror it to the cache; empty resets the cache"""
    state.visits = visits
    if visits:
        state.cache.save_visits(visits)
    else:
        state.cache.clear_visits()


def _sync(state: AppState, action: str, **payload) -> bool:
    """
    Push a change to the gateway after the local commit. A remote success is
    followed by a full re-fetch; any failure leaves local state as it is.
    """
    state.syncing = True
    try:
        state.gateway.send(action, **payload)
        if state.gateway.remote:
            _commit(state, state.gateway.fetch_all())
    except GatewayError as e:
        logger.warning("Sync failed, keeping local state: %s", e)
        state.notice = OFFLINE_NOTICE
        return False
    finally:
        state.syncing = False
    state.notice = None
    return True


def add_visit(
    state: AppState,
    reg_number: str,
    visit_date: date,
    next_visit_date: date,
    now: Optional[datetime] = None,
) -> VisitRecord:
    """Record a visit; raises ValidationError without touching the store"""
    reg_number = validate_visit(reg_number, visit_date, next_visit_date)
    now = now or datetime.now(timezone.utc)

    record = VisitRecord(
        id=_next_id(state, now),
        registrationNumber=reg_number,
        visitDate=visit_date,
        nextVisitDate=next_visit_date,
        tabletDaysGiven=tablet_days_between(visit_date, next_visit_date),
        recordedAt=now,
    )
    _commit(state, [record] + state.visits)
    logger.info("Recorded visit %s for %s (%d tablet days)", record.id, reg_number, record.tabletDaysGiven)
    _sync(state, ADD_VISIT, visit=visit_to_wire(record))
    return record


def toggle_completed(state: AppState, visit_id, now: Optional[datetime] = None) -> Optional[VisitRecord]:
    """Flip a visit between pending and completed; None if the id is unknown"""
    visit = state.find(visit_id)
    if visit is None:
        logger.warning("toggle_completed: visit %s not found", visit_id)
        return None

    completed = not visit.completed
    updated = replace(
        visit,
        completed=completed,
        completedAt=(now or datetime.now(timezone.utc)) if completed else None,
    )
    _commit(state, [updated if v.id == visit_id else v for v in state.visits])
    _sync(state, UPDATE_VISIT, visit=visit_to_wire(updated))
    return updated


def delete_visit(state: AppState, visit_id) -> bool:
    """Remove a visit; deleting the last one clears the cache entirely"""
    if state.find(visit_id) is None:
        logger.warning("delete_visit: visit %s not found", visit_id)
        return False

    _commit(state, [v for v in state.visits if v.id != visit_id])
    _sync(state, DELETE_VISIT, id=visit_id)
    return True


def clear_all(state: AppState) -> None:
    """Drop every visit locally and remotely. Callers must confirm twice first."""
    _commit(state, [])
    _sync(state, CLEAR_ALL_DATA)
    logger.info("All visit data cleared")


def load_visits(state: AppState) -> List[VisitRecord]:
    """Read from the gateway, falling back to the cache when it fails"""
    state.syncing = True
    try:
        visits = state.gateway.fetch_all()
    except GatewayError as e:
        logger.warning("Error loading visits, using local cache: %s", e)
        state.notice = OFFLINE_NOTICE
        state.visits = state.cache.load_visits()
        return state.visits
    finally:
        state.syncing = False

    state.notice = None
    state.visits = visits
    if state.gateway.remote:
        state.cache.save_visits(visits)
    return state.visits


def connect_gateway(state: AppState, url: str, timeout: float = DEFAULT_TIMEOUT) -> List[VisitRecord]:
    """Save the endpoint URL, switch to the remote gateway and reload"""
    url = (url or "").strip()
    if not url:
        raise ValidationError("Please enter a valid endpoint URL")
    state.cache.set_gateway_url(url)
    state.gateway.close()
    state.gateway = RemoteGateway(url, timeout=timeout)
    logger.info("Connected to remote endpoint %s", url)
    return load_visits(state)
