import logging
from datetime import datetime, timezone
from typing import Optional, List

from fastapi import (
    FastAPI,
    Depends,
    HTTPException,
    Request,
    Response,
    Query,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as OrmSession

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from .database import SessionLocal, engine
from .db_models import Base, Report, User
from .models import (
    DailySalesRequest,
    DeliveryErrorIn,
    DeliveryLogOut,
    DeliveryStatus,
    DueSchedule,
    HealthStatus,
    PeriodOut,
    ReportInfo,
    RunReportOut,
    SalesByDayOut,
    SalesReportOut,
    ScheduleCreate,
    ScheduleOut,
    Token,
    UserLogin,
)
from .auth import ROLE_ADMIN, create_access_token, decode_access_token, verify_password
from .config import settings
from .services.analytics import build_sales_by_day
from .services.audit import list_delivery_logs, record_delivery_failure
from .services.periods import period_key_for_type
from .services.report_delivery import find_and_prepare_due_schedules
from .services.report_exports import build_csv_with_summary
from .services.reporting import (
    ReportNotFoundError,
    generate_sales_report,
    get_active_report_or_raise,
)
from .services.schedules import (
    ScheduleNotFoundError,
    UnknownRecipientError,
    create_schedule,
    delete_schedule,
    get_schedule_or_raise,
    list_schedules,
)

logger = logging.getLogger(__name__)

# ============================================================
# FastAPI initialization
# ============================================================

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Sales reports on demand and on schedule, with a delivery ledger.",
    version=settings.VERSION,
)

Base.metadata.create_all(bind=engine)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiter (per client IP)
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

security = HTTPBearer(auto_error=False)

ON_DEMAND_REPORT_NAME = "Daily sales report"
ON_DEMAND_PERIODS = ("today", "last7days", "last30days")


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Storage error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal storage error"},
    )

# ============================================================
# Dependencies
# ============================================================

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_now() -> datetime:
    return datetime.now(timezone.utc)


def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: OrmSession = Depends(get_db),
) -> User:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    if user.role != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Admin privileges required")

    return user

# ============================================================
# Health
# ============================================================

@app.get("/api/health", response_model=HealthStatus)
def health(db: OrmSession = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check database ping failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "status": "error",
                "db": "error",
                "timestamp": datetime.utcnow().isoformat(),
            },
        )
    return HealthStatus(status="ok", db="ok", timestamp=datetime.utcnow())

# ============================================================
# Auth
# ============================================================

@app.post("/api/auth/login", response_model=Token)
@limiter.limit("5/minute")
def login_api(request: Request, user_in: UserLogin, db: OrmSession = Depends(get_db)):
    user = db.query(User).filter(User.username == user_in.username).first()

    # Same answer for every failure so the endpoint does not leak which part was wrong
    if (
        not user
        or not user.is_active
        or user.role != ROLE_ADMIN
        or not user.password_hash
        or not verify_password(user_in.password, user.password_hash)
    ):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return Token(access_token=create_access_token(user=user))

# ============================================================
# Reports (on demand)
# ============================================================

@app.get("/api/reports", response_model=List[ReportInfo])
def list_reports(db: OrmSession = Depends(get_db)):
    reports = (
        db.query(Report)
        .filter(Report.is_active.is_(True))
        .order_by(Report.id.asc())
        .all()
    )
    return [
        ReportInfo(
            id=r.id,
            name=r.name,
            description=r.description,
            period_type=r.period_type,
        )
        for r in reports
    ]


@app.post("/api/reports/daily-sales", response_model=SalesReportOut)
def daily_sales_report(
    payload: Optional[DailySalesRequest] = None,
    db: OrmSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """
    Ad-hoc report outside the scheduling loop. Periods other than today,
    last7days and last30days produce yesterday's report.
    """
    requested = payload.period if payload else None
    period_key = requested if requested in ON_DEMAND_PERIODS else "yesterday"

    report = generate_sales_report(db, period_key, now=now)

    return SalesReportOut(
        period=PeriodOut(**{"from": report.period.start, "to": report.period.end}),
        summary=report.summary,
        csv=build_csv_with_summary(ON_DEMAND_REPORT_NAME, report.summary, report.csv),
    )


@app.post("/api/reports/{report_id}/run", response_model=RunReportOut)
def run_report(
    report_id: int,
    db: OrmSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    try:
        definition = get_active_report_or_raise(db, report_id)
    except ReportNotFoundError:
        raise HTTPException(status_code=404, detail="Report not found or inactive")

    report = generate_sales_report(db, period_key_for_type(definition.period_type), now=now)

    return RunReportOut(
        report_name=definition.name,
        summary=report.summary,
        csv=build_csv_with_summary(definition.name, report.summary, report.csv),
    )

# ============================================================
# Schedules
# ============================================================

@app.get("/api/schedules", response_model=List[ScheduleOut])
def get_schedules(
    current_admin: User = Depends(get_current_admin),
    db: OrmSession = Depends(get_db),
):
    return list_schedules(db)


@app.post("/api/schedules", response_model=ScheduleOut, status_code=201)
def post_schedule(
    schedule_in: ScheduleCreate,
    current_admin: User = Depends(get_current_admin),
    db: OrmSession = Depends(get_db),
):
    try:
        return create_schedule(db, schedule_in)
    except ReportNotFoundError:
        raise HTTPException(status_code=404, detail="Report not found")
    except UnknownRecipientError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@app.delete("/api/schedules/{schedule_id}", status_code=204)
def remove_schedule(
    schedule_id: int,
    current_admin: User = Depends(get_current_admin),
    db: OrmSession = Depends(get_db),
):
    try:
        delete_schedule(db, schedule_id)
    except ScheduleNotFoundError:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return Response(status_code=204)


@app.post("/api/schedules/run-due", response_model=List[DueSchedule])
def run_due_schedules(
    db: OrmSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """
    Called by the messaging worker on every poll. Returns the reports that
    are due this minute together with their recipients; each one is handed
    out only once per minute.
    """
    return find_and_prepare_due_schedules(now=now, db=db)


@app.post(
    "/api/schedules/{schedule_id}/delivery-errors",
    response_model=DeliveryLogOut,
    status_code=201,
)
def report_delivery_error(
    schedule_id: int,
    error_in: DeliveryErrorIn,
    db: OrmSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    try:
        schedule = get_schedule_or_raise(db, schedule_id)
    except ScheduleNotFoundError:
        raise HTTPException(status_code=404, detail="Schedule not found")

    user = db.query(User).filter(User.id == error_in.user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    entry = record_delivery_failure(
        db,
        schedule_id=schedule.id,
        report_id=schedule.report_id,
        user_id=user.id,
        error_message=error_in.error_message,
        now=now,
    )
    return DeliveryLogOut(
        id=entry.id,
        report_id=entry.report_id,
        report_name=schedule.report.name,
        user_id=entry.user_id,
        username=user.username,
        schedule_id=entry.schedule_id,
        status=entry.status,
        sent_at=entry.sent_at,
        error_message=entry.error_message,
    )

# ============================================================
# Delivery logs
# ============================================================

@app.get("/api/logs", response_model=List[DeliveryLogOut])
def get_delivery_logs(
    report_id: Optional[int] = Query(default=None),
    user_id: Optional[int] = Query(default=None),
    status_filter: Optional[DeliveryStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=100),
    current_admin: User = Depends(get_current_admin),
    db: OrmSession = Depends(get_db),
):
    rows = list_delivery_logs(
        db,
        report_id=report_id,
        user_id=user_id,
        status=status_filter,
        limit=limit,
    )
    return [
        DeliveryLogOut(
            id=log.id,
            report_id=log.report_id,
            report_name=report_name,
            user_id=log.user_id,
            username=username,
            schedule_id=log.schedule_id,
            status=log.status,
            sent_at=log.sent_at,
            error_message=log.error_message,
        )
        for log, report_name, username in rows
    ]

# ============================================================
# Analytics
# ============================================================

@app.get("/api/analytics/sales-by-day", response_model=SalesByDayOut)
def sales_by_day(
    days: int = Query(default=7),
    db: OrmSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    return build_sales_by_day(db, days, now=now)
