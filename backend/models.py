# Visit data models - records, derived rollups, registration number helpers
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional
import re

REG_NUMBER_PATTERN = re.compile(r"^\d{4}/[A-Z]{3}/\d{4}$")
REG_NUMBER_EXAMPLE = "2026/ABC/0001"


class ValidationError(ValueError):
    """Raised when a visit submission fails format or ordering checks."""


@dataclass
class VisitRecord:
    """One tablet-dispensing visit"""
    id: int
    registrationNumber: str
    visitDate: date
    nextVisitDate: date
    tabletDaysGiven: int
    recordedAt: datetime
    completed: bool = False
    completedAt: Optional[datetime] = None

    @property
    def canonicalKey(self) -> str:
        return canonicalize_reg_number(self.registrationNumber)


@dataclass
class PatientRollup:
    """Per-patient aggregate, derived from every visit of that patient"""
    displayRegistrationNumber: str
    firstVisitDate: date
    lastVisitDate: date
    lastNextVisitDate: date
    totalTabletDays: int = 0
    visits: List[VisitRecord] = field(default_factory=list)

    @property
    def latestVisit(self) -> Optional[VisitRecord]:
        return self.visits[-1] if self.visits else None

    @property
    def pendingVisits(self) -> int:
        return sum(1 for v in self.visits if not v.completed)


def canonicalize_reg_number(value: str) -> str:
    """Canonical grouping key: trim, uppercase"""
    return value.strip().upper()


def is_valid_reg_number(value: str) -> bool:
    return bool(REG_NUMBER_PATTERN.match(value))


def format_reg_number(value: str) -> str:
    """
    Auto-format typed input towards YYYY/AAA/NNNN.
    Non-alphanumerics are dropped, the letter block is uppercased and
    anything past the 11th cleaned character is discarded.
    """
    cleaned = re.sub(r"[^a-zA-Z0-9]", "", value)
    formatted = cleaned[:4]
    if len(cleaned) > 4:
        formatted += "/" + cleaned[4:7].upper()
    if len(cleaned) > 7:
        formatted += "/" + cleaned[7:11]
    return formatted
