# Lookup and autocomplete matching over per-patient rollups
from __future__ import annotations

from typing import Dict, List, Optional

from models import PatientRollup, VisitRecord, canonicalize_reg_number

DEFAULT_SUGGESTION_LIMIT = 10
RECENT_PATIENTS_LIMIT = 15


def suggest(
    query: str,
    rollups: Dict[str, PatientRollup],
    limit: int = DEFAULT_SUGGESTION_LIMIT,
) -> List[str]:
    """
    Canonical registration numbers matching a query, for both the add-visit
    autocomplete and the lookup search box.
    A candidate matches when it contains the query, or its last 4 characters
    (the serial number) contain it. Order is rollup insertion order.
    """
    search = query.strip().upper() if query else ""
    if not search or limit <= 0:
        return []

    matches: List[str] = []
    for reg_num in rollups:
        if search in reg_num or search in reg_num[-4:]:
            matches.append(reg_num)
            if len(matches) == limit:
                break
    return matches


def _by_last_visit_desc(patients: List[PatientRollup]) -> List[PatientRollup]:
    return sorted(patients, key=lambda p: p.lastVisitDate, reverse=True)


def filter_patients(query: str, rollups: Dict[str, PatientRollup]) -> List[PatientRollup]:
    """Lookup list: display numbers containing the query, most recently seen first"""
    search = (query or "").strip().upper()
    patients = [
        p for p in rollups.values()
        if not search or search in p.displayRegistrationNumber.upper()
    ]
    return _by_last_visit_desc(patients)


def recent_patients(
    rollups: Dict[str, PatientRollup],
    limit: int = RECENT_PATIENTS_LIMIT,
) -> List[PatientRollup]:
    return _by_last_visit_desc(list(rollups.values()))[:limit]


def patient_history(reg_number: str, rollups: Dict[str, PatientRollup]) -> Optional[PatientRollup]:
    return rollups.get(canonicalize_reg_number(reg_number))


def lookup_stats(records: List[VisitRecord]) -> Dict[str, int]:
    return {
        "totalEntries": len(records),
        "uniquePatients": len({v.canonicalKey for v in records}),
    }
