# Persistence gateway - spreadsheet web endpoint (remote) or local JSON cache
from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from models import VisitRecord
from logic import tablet_days_between

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0

# Actions understood by the spreadsheet endpoint
GET_ALL_VISITS = "getAllVisits"
ADD_VISIT = "addVisit"
UPDATE_VISIT = "updateVisit"
DELETE_VISIT = "deleteVisit"
CLEAR_ALL_DATA = "clearAllData"


class GatewayError(Exception):
    """Network failure or non-success response from the persistence endpoint."""


# =============================================================================
# Wire format (shared by the endpoint and the cache)
# =============================================================================

def _parse_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # "2026-03-01" or "2026-03-01T00:00:00.000Z" -> calendar day only
    return date.fromisoformat(str(value)[:10])


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_bool(value) -> bool:
    # Spreadsheet cells come back as "TRUE" / "FALSE"
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def visit_to_wire(record: VisitRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "regNumber": record.registrationNumber,
        "visitDate": record.visitDate.isoformat(),
        "nextVisitDate": record.nextVisitDate.isoformat(),
        "tabletDays": record.tabletDaysGiven,
        "completed": record.completed,
        "completedAt": record.completedAt.isoformat() if record.completedAt else None,
        "recordedAt": record.recordedAt.isoformat(),
    }


def visit_from_wire(data: Dict[str, Any]) -> VisitRecord:
    """
    Decode a stored visit.
    Missing visitDate falls back to recordedAt, then nextVisitDate.
    tabletDays is recomputed from the dates rather than trusted.
    completedAt is dropped for pending visits and defaults to recordedAt for
    completed visits that lack one.
    """
    next_visit = _parse_date(data["nextVisitDate"])
    if next_visit is None:
        raise ValueError("nextVisitDate is empty")
    recorded_at = _parse_timestamp(data.get("recordedAt"))
    visit_date = _parse_date(data.get("visitDate")) or _parse_date(data.get("recordedAt")) or next_visit

    completed = _parse_bool(data.get("completed", False))
    completed_at = None
    if completed:
        completed_at = _parse_timestamp(data.get("completedAt")) or recorded_at

    return VisitRecord(
        id=int(data["id"]),
        registrationNumber=str(data.get("regNumber", "")),
        visitDate=visit_date,
        nextVisitDate=next_visit,
        tabletDaysGiven=tablet_days_between(visit_date, next_visit),
        recordedAt=recorded_at or datetime.now(timezone.utc),
        completed=completed,
        completedAt=completed_at,
    )


def visits_from_wire(items: List[Dict[str, Any]]) -> List[VisitRecord]:
    """Decode each stored visit, skipping (and logging) the ones that are malformed"""
    visits = []
    for item in items:
        try:
            visits.append(visit_from_wire(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Skipping malformed visit %r: %s", item, e)
    return visits


# =============================================================================
# Local fallback cache
# =============================================================================

class LocalCache:
    """Key-value JSON file holding the visit list and the endpoint URL"""

    VISITS_KEY = "ptVisits"
    URL_KEY = "gatewayUrl"

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Error reading local cache %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def get(self, key: str, default=None):
        return self._read().get(key, default)

    def set(self, key: str, value) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def load_visits(self) -> List[VisitRecord]:
        items = self.get(self.VISITS_KEY) or []
        try:
            return visits_from_wire(items)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Error loading visits from local cache: %s", e)
            return []

    def save_visits(self, records: List[VisitRecord]) -> None:
        self.set(self.VISITS_KEY, [visit_to_wire(v) for v in records])

    def clear_visits(self) -> None:
        self.remove(self.VISITS_KEY)

    def get_gateway_url(self) -> str:
        return self.get(self.URL_KEY) or ""

    def set_gateway_url(self, url: str) -> None:
        self.set(self.URL_KEY, url)


# =============================================================================
# Gateways
# =============================================================================

class PersistenceGateway:
    """Where visits are persisted. Selected once at startup."""

    remote = False

    def fetch_all(self) -> List[VisitRecord]:
        raise NotImplementedError

    def send(self, action: str, **payload) -> Dict[str, Any]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class LocalGateway(PersistenceGateway):
    """Local-only mode: the cache is the source of truth"""

    def __init__(self, cache: LocalCache):
        self.cache = cache

    def fetch_all(self) -> List[VisitRecord]:
        return self.cache.load_visits()

    def send(self, action: str, **payload) -> Dict[str, Any]:
        return {"success": True, "message": "Stored locally"}


class RemoteGateway(PersistenceGateway):
    """
    Spreadsheet-backed web endpoint speaking action-tagged JSON.
    Reads are GET ?action=getAllVisits, writes are POST {action, ...payload}.
    """

    remote = True

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT, client: Optional[httpx.Client] = None):
        self.url = url
        # Apps Script web apps answer POSTs with a redirect
        self.client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def _decode(self, action: str, response: httpx.Response) -> Dict[str, Any]:
        try:
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPStatusError as e:
            raise GatewayError(f"{action}: HTTP {e.response.status_code}") from e
        except ValueError as e:
            raise GatewayError(f"{action}: response is not JSON") from e

        if not isinstance(result, dict) or not result.get("success"):
            error = result.get("error") if isinstance(result, dict) else None
            raise GatewayError(f"{action}: {error or 'Unknown error'}")
        logger.info("Success: %s %s", action, result.get("message") or "OK")
        return result

    def fetch_all(self) -> List[VisitRecord]:
        try:
            response = self.client.get(self.url, params={"action": GET_ALL_VISITS})
        except httpx.HTTPError as e:
            raise GatewayError(f"{GET_ALL_VISITS}: {e}") from e
        result = self._decode(GET_ALL_VISITS, response)
        try:
            visits = visits_from_wire(result.get("visits") or [])
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError(f"{GET_ALL_VISITS}: malformed visit data ({e})") from e
        logger.info("Loaded %d visits from remote endpoint", len(visits))
        return visits

    def send(self, action: str, **payload) -> Dict[str, Any]:
        body = {"action": action, **payload}
        try:
            response = self.client.post(self.url, json=body)
        except httpx.HTTPError as e:
            raise GatewayError(f"{action}: {e}") from e
        return self._decode(action, response)

    def close(self) -> None:
        self.client.close()


def select_gateway(cache: LocalCache, url: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT) -> PersistenceGateway:
    """Remote when an endpoint URL is configured (explicitly or in the cache), else local"""
    url = (url or cache.get_gateway_url() or "").strip()
    if url:
        return RemoteGateway(url, timeout=timeout)
    return LocalGateway(cache)
