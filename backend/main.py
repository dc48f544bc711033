# Backend main entry point - PT visit tracker API
import logging
import os
from datetime import date, datetime
from dotenv import load_dotenv
load_dotenv()  # Load .env so VISIT_GATEWAY_URL / DEMO_MODE work for local runs
from fastapi import FastAPI, HTTPException, Path, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import List, Optional
from models import PatientRollup, ValidationError, VisitRecord, format_reg_number, is_valid_reg_number
from logic import (
    dates_for_month,
    get_patient_total_tablets,
    get_pending_today_count,
    get_today_patients,
    get_upcoming_days,
    month_overview,
    tablet_days_between,
)
from lookup import DEFAULT_SUGGESTION_LIMIT, RECENT_PATIENTS_LIMIT, filter_patients, lookup_stats, patient_history, recent_patients, suggest
from gateway import DEFAULT_TIMEOUT, LocalCache, select_gateway
from store import AppState, add_visit, clear_all, connect_gateway, delete_visit, load_visits, toggle_completed
from seed import seed_data

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _gateway_timeout() -> float:
    try:
        return float(os.environ.get("GATEWAY_TIMEOUT", DEFAULT_TIMEOUT))
    except ValueError:
        logger.warning("Ignoring invalid GATEWAY_TIMEOUT=%r", os.environ.get("GATEWAY_TIMEOUT"))
        return DEFAULT_TIMEOUT


def create_state() -> AppState:
    """Build the application state and pick the gateway once, from env or the cached URL"""
    cache = LocalCache(os.environ.get("VISIT_CACHE_PATH", ".pt_visits_cache.json"))
    gateway = select_gateway(cache, os.environ.get("VISIT_GATEWAY_URL"), timeout=_gateway_timeout())
    return AppState(cache=cache, gateway=gateway)


# Initialize state from the configured backend
state = create_state()
load_visits(state)

app = FastAPI(title="PT Visit Tracker API")


def _is_demo_mode() -> bool:
    """True only when DEMO_MODE env var is explicitly 'true' (case-insensitive)."""
    return os.environ.get("DEMO_MODE", "").lower() == "true"

# Configure CORS - allow local dev and a deployed frontend
_allowed_origins = [
    "http://localhost:5173",
    "http://localhost:5174",
]
_frontend_url = os.environ.get("FRONTEND_URL", "")
if _frontend_url:
    _allowed_origins.append(_frontend_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request/Response models
class VisitResponse(BaseModel):
    id: int
    regNumber: str
    visitDate: date
    nextVisitDate: date
    tabletDays: int
    completed: bool
    completedAt: Optional[datetime] = None
    recordedAt: datetime

class PatientResponse(BaseModel):
    regNumber: str
    totalTabletDays: int
    visitCount: int
    pendingVisits: int
    firstVisitDate: date
    lastVisitDate: date
    lastNextVisitDate: date
    latestVisit: Optional[VisitResponse] = None

class PatientHistoryResponse(PatientResponse):
    visits: List[VisitResponse]

class AddVisitRequest(BaseModel):
    regNumber: str = ""
    visitDate: Optional[date] = None
    nextVisitDate: Optional[date] = None

class ClearAllRequest(BaseModel):
    confirm: bool = False
    confirmAgain: bool = False

class SetupRequest(BaseModel):
    gatewayUrl: str


def _visit_response(visit: VisitRecord) -> VisitResponse:
    return VisitResponse(
        id=visit.id,
        regNumber=visit.registrationNumber,
        visitDate=visit.visitDate,
        nextVisitDate=visit.nextVisitDate,
        tabletDays=visit.tabletDaysGiven,
        completed=visit.completed,
        completedAt=visit.completedAt,
        recordedAt=visit.recordedAt,
    )

def _patient_response(patient: PatientRollup, with_visits: bool = False) -> PatientResponse:
    fields = dict(
        regNumber=patient.displayRegistrationNumber,
        totalTabletDays=patient.totalTabletDays,
        visitCount=len(patient.visits),
        pendingVisits=patient.pendingVisits,
        firstVisitDate=patient.firstVisitDate,
        lastVisitDate=patient.lastVisitDate,
        lastNextVisitDate=patient.lastNextVisitDate,
        latestVisit=_visit_response(patient.latestVisit) if patient.latestVisit else None,
    )
    if with_visits:
        return PatientHistoryResponse(visits=[_visit_response(v) for v in patient.visits], **fields)
    return PatientResponse(**fields)


@app.get("/")
def read_root():
    return {"message": "PT Visit Tracker API"}

@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/visits", response_model=List[VisitResponse])
def get_all_visits():
    """All visits, most recently recorded first"""
    return [_visit_response(v) for v in state.visits]

@app.post("/visits")
def create_visit(request: AddVisitRequest):
    """Record a visit and report the tablets given plus the patient's running total"""
    try:
        visit = add_visit(state, request.regNumber, request.visitDate, request.nextVisitDate)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "visit": _visit_response(visit),
        "tabletDays": visit.tabletDaysGiven,
        "patientTotalTabletDays": get_patient_total_tablets(state.rollups(), visit.registrationNumber),
        "message": "Visit recorded successfully",
        "notice": state.notice,
    }

@app.post("/visits/{visit_id}/toggle")
def toggle_visit(visit_id: int):
    visit = toggle_completed(state, visit_id)
    if not visit:
        raise HTTPException(status_code=404, detail="Visit not found")
    return {"visit": _visit_response(visit), "notice": state.notice}

@app.delete("/visits/{visit_id}")
def remove_visit(visit_id: int):
    if not delete_visit(state, visit_id):
        raise HTTPException(status_code=404, detail="Visit not found")
    return {"status": "deleted", "remaining": len(state.visits), "notice": state.notice}

@app.post("/visits/clear")
def clear_all_visits(request: ClearAllRequest):
    """Irreversible: both confirmations must be given"""
    if not (request.confirm and request.confirmAgain):
        raise HTTPException(status_code=400, detail="Clearing all data requires two confirmations")
    clear_all(state)
    return {"status": "cleared", "notice": state.notice}

@app.post("/sync")
def sync_visits():
    """Re-read visits from the configured backend"""
    visits = load_visits(state)
    return {"count": len(visits), "remote": state.gateway.remote, "notice": state.notice}


@app.get("/stats")
def get_stats():
    """Unique patient counts: total over all visits, month/day buckets over pending ones"""
    counts = state.counts()
    return {
        "total": counts.total,
        "byMonth": {str(k): v for k, v in sorted(counts.byMonth.items())},
        "byDate": {k.isoformat(): v for k, v in sorted(counts.byDate.items())},
        "totalEntries": len(state.visits),
        "pendingToday": get_pending_today_count(state.visits, date.today()),
    }

@app.get("/stats/months")
def get_month_stats():
    return month_overview(state.counts())

@app.get("/calendar/upcoming")
def get_upcoming(days: int = Query(6, ge=1, le=31)):
    return get_upcoming_days(state.counts(), date.today(), days)

@app.get("/calendar/{month_index}")
def get_month_calendar(month_index: int = Path(ge=0, le=11), year: Optional[int] = Query(None, ge=1, le=9999)):
    """Day-by-day view of one month (0 = January), computed on demand"""
    year = year or date.today().year
    return [
        {
            "date": d.date,
            "day": d.day,
            "dayName": d.dayName,
            "count": d.count,
            "patients": [_visit_response(v) for v in d.patients],
            "holiday": d.holiday,
            "isToday": d.isToday,
            "isSunday": d.isSunday,
        }
        for d in dates_for_month(state.visits, month_index, year)
    ]

@app.get("/today")
def get_today():
    today = date.today()
    return {
        "date": today,
        "patients": [_visit_response(v) for v in get_today_patients(state.visits, today)],
        "pendingCount": get_pending_today_count(state.visits, today),
    }


@app.get("/patients", response_model=List[PatientResponse])
def get_patients(q: str = ""):
    """Lookup list, most recently seen patients first"""
    return [_patient_response(p) for p in filter_patients(q, state.rollups())]

@app.get("/patients/recent", response_model=List[PatientResponse])
def get_recent_patients(limit: int = Query(RECENT_PATIENTS_LIMIT, ge=1)):
    return [_patient_response(p) for p in recent_patients(state.rollups(), limit)]

@app.get("/patients/history", response_model=PatientHistoryResponse)
def get_patient_history(regNumber: str):
    patient = patient_history(regNumber, state.rollups())
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")
    return _patient_response(patient, with_visits=True)

@app.get("/suggest", response_model=List[str])
def get_suggestions(q: str = "", limit: int = Query(DEFAULT_SUGGESTION_LIMIT, ge=0)):
    return suggest(q, state.rollups(), limit)

@app.get("/lookup/stats")
def get_lookup_stats():
    return lookup_stats(state.visits)


@app.get("/tablets/preview")
def preview_tablets(visitDate: date, nextVisitDate: date, regNumber: str = ""):
    """Live preview before submit: tablets for this visit and the resulting patient total"""
    tablet_days = tablet_days_between(visitDate, nextVisitDate)
    current_total = get_patient_total_tablets(state.rollups(), regNumber) if regNumber else 0
    return {
        "tabletDays": tablet_days,
        "valid": nextVisitDate > visitDate,
        "patientTotalTabletDays": current_total + tablet_days,
    }

@app.get("/reg-number/format")
def format_registration_number(value: str = ""):
    formatted = format_reg_number(value)
    return {"formatted": formatted, "valid": is_valid_reg_number(formatted)}


@app.get("/setup")
def get_setup():
    return {"connected": state.gateway.remote, "gatewayUrl": state.cache.get_gateway_url()}

@app.post("/setup")
def setup_gateway(request: SetupRequest):
    """Connect to the spreadsheet endpoint and load its visits"""
    try:
        visits = connect_gateway(state, request.gatewayUrl, timeout=_gateway_timeout())
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"connected": True, "count": len(visits), "notice": state.notice}


@app.get("/demo/status")
def demo_status():
    """Returns whether demo mode is enabled. Only for frontend visibility gate."""
    return {"demoMode": _is_demo_mode()}


@app.post("/demo/reset")
def demo_reset():
    """
    Reset to the demo visits. Only available when DEMO_MODE=true.
    Local only: nothing is pushed to the remote endpoint.
    """
    if not _is_demo_mode():
        raise HTTPException(status_code=404, detail="Demo reset not available")
    seed_data(state)
    return {"status": "ok", "count": len(state.visits)}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
