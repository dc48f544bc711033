"""
Shared pytest fixtures for the PT visit tracker tests.
"""
import json
import os
import tempfile
from datetime import date, datetime, timezone

import httpx
import pytest

# Keep the module-level app state away from the working directory and the network
os.environ["VISIT_CACHE_PATH"] = os.path.join(tempfile.mkdtemp(), "import_cache.json")
os.environ.pop("VISIT_GATEWAY_URL", None)

from fastapi.testclient import TestClient

import main
from models import VisitRecord
from logic import tablet_days_between
from gateway import LocalCache, LocalGateway, RemoteGateway
from store import AppState
from seed import seed_data

GATEWAY_URL = "https://script.example.com/macros/s/test/exec"
RECORDED_AT = datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)


def make_visit(
    visit_id: int,
    reg_number: str,
    visit_date: date,
    next_visit_date: date,
    completed: bool = False,
) -> VisitRecord:
    """Build a VisitRecord with tabletDaysGiven derived from its dates."""
    return VisitRecord(
        id=visit_id,
        registrationNumber=reg_number,
        visitDate=visit_date,
        nextVisitDate=next_visit_date,
        tabletDaysGiven=tablet_days_between(visit_date, next_visit_date),
        recordedAt=RECORDED_AT,
        completed=completed,
        completedAt=RECORDED_AT if completed else None,
    )


@pytest.fixture
def cache(tmp_path):
    return LocalCache(tmp_path / "cache.json")


@pytest.fixture
def app_state(cache):
    """Empty state in local-only mode."""
    return AppState(cache=cache, gateway=LocalGateway(cache))


@pytest.fixture
def seeded_state(app_state):
    """
    Demo visits:
    - 2026/ABC/0001: two visits (first completed), 59 + 61 tablet days
    - 2026/KDY/0042: one pending visit due 2026-05-01
    - 2025/mtr/0001: one pending visit due 2026-02-15
    """
    seed_data(app_state)
    return app_state


@pytest.fixture
def client(app_state, monkeypatch):
    """FastAPI TestClient bound to a fresh local-only state."""
    monkeypatch.setattr(main, "state", app_state)
    return TestClient(main.app)


class FakeSheet:
    """
    In-memory stand-in for the spreadsheet web endpoint, served through
    httpx.MockTransport. Set `fail` to make every call raise a transport error,
    or `error` to answer {success: false}.
    """

    def __init__(self, visits=None):
        self.visits = list(visits or [])
        self.requests = []
        self.fail = False
        self.error = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.fail:
            raise httpx.ConnectError("connection refused", request=request)

        if request.method == "GET":
            action = request.url.params.get("action")
            body = {}
        else:
            body = json.loads(request.content)
            action = body["action"]
        self.requests.append((request.method, action, body))

        if self.error:
            return httpx.Response(200, json={"success": False, "error": self.error})

        if action == "getAllVisits":
            return httpx.Response(200, json={"success": True, "visits": self.visits})
        if action == "addVisit":
            self.visits.insert(0, body["visit"])
        elif action == "updateVisit":
            self.visits = [body["visit"] if v["id"] == body["visit"]["id"] else v for v in self.visits]
        elif action == "deleteVisit":
            self.visits = [v for v in self.visits if v["id"] != body["id"]]
        elif action == "clearAllData":
            self.visits = []
        return httpx.Response(200, json={"success": True, "message": f"{action} OK"})

    def gateway(self) -> RemoteGateway:
        client = httpx.Client(transport=httpx.MockTransport(self.handler))
        return RemoteGateway(GATEWAY_URL, client=client)


@pytest.fixture
def fake_sheet():
    return FakeSheet()


@pytest.fixture
def remote_state(cache, fake_sheet):
    """State wired to the fake spreadsheet endpoint."""
    return AppState(cache=cache, gateway=fake_sheet.gateway())
