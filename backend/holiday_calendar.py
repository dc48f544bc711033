# Static holiday calendar - Sri Lankan public holidays and poya days (2026)
from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

# Keyed by month index (0 = January); lookups ignore the year
HOLIDAYS: Dict[int, List[Dict]] = {
    0: [
        {"date": 1, "name": "New Year's Day", "type": "public"},
        {"date": 13, "name": "Duruthu Poya", "type": "poya"},
        {"date": 14, "name": "Thai Pongal", "type": "public"},
        {"date": 15, "name": "Duruthu Poya", "type": "poya"},
    ],
    1: [
        {"date": 4, "name": "Independence Day", "type": "public"},
        {"date": 11, "name": "Navam Poya", "type": "poya"},
        {"date": 26, "name": "Maha Sivarathri", "type": "public"},
    ],
    2: [
        {"date": 13, "name": "Medin Poya", "type": "poya"},
        {"date": 14, "name": "Holi", "type": "public"},
    ],
    3: [
        {"date": 2, "name": "Idul Fitr", "type": "public"},
        {"date": 11, "name": "Bak Poya", "type": "poya"},
        {"date": 13, "name": "Sinhala & Tamil New Year Eve", "type": "public"},
        {"date": 14, "name": "Sinhala & Tamil New Year", "type": "public"},
        {"date": 18, "name": "Good Friday", "type": "public"},
    ],
    4: [
        {"date": 1, "name": "May Day", "type": "public"},
        {"date": 11, "name": "Vesak Poya", "type": "poya"},
        {"date": 12, "name": "Day after Vesak", "type": "public"},
    ],
    5: [
        {"date": 9, "name": "Poson Poya", "type": "poya"},
        {"date": 10, "name": "Idul Alha", "type": "public"},
    ],
    6: [
        {"date": 9, "name": "Esala Poya", "type": "poya"},
    ],
    7: [
        {"date": 7, "name": "Nikini Poya", "type": "poya"},
    ],
    8: [
        {"date": 6, "name": "Binara Poya", "type": "poya"},
        {"date": 10, "name": "Milad-un-Nabi", "type": "public"},
    ],
    9: [
        {"date": 5, "name": "Vap Poya", "type": "poya"},
        {"date": 21, "name": "Deepavali", "type": "public"},
    ],
    10: [
        {"date": 4, "name": "Il Poya", "type": "poya"},
    ],
    11: [
        {"date": 3, "name": "Unduvap Poya", "type": "poya"},
        {"date": 25, "name": "Christmas Day", "type": "public"},
    ],
}


def get_holidays_for_month(month_index: int) -> List[Dict]:
    return HOLIDAYS.get(month_index, [])


def get_holiday_for_date(day: date) -> Optional[Dict]:
    """First holiday entry matching the day's month and day-of-month, if any"""
    for holiday in get_holidays_for_month(day.month - 1):
        if holiday["date"] == day.day:
            return holiday
    return None
