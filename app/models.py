# app/models.py
from datetime import datetime
from typing import Optional, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

PeriodKey = Literal["today", "yesterday", "last7days", "last30days"]
PeriodType = Literal["DAY", "WEEK", "MONTH"]
ScheduleFrequency = Literal["DAILY", "WEEKLY"]
DeliveryStatus = Literal["SUCCESS", "ERROR"]


class SalesReportSummary(BaseModel):
    total_revenue: float
    total_orders: int
    total_quantity: int
    average_check: float


class PeriodOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: datetime = Field(..., alias="from")
    to: datetime


class DailySalesRequest(BaseModel):
    """Body of the on-demand report request; unknown periods mean yesterday."""
    period: Optional[str] = None


class SalesReportOut(BaseModel):
    period: PeriodOut
    summary: SalesReportSummary
    csv: str


class RunReportOut(BaseModel):
    report_name: str
    summary: SalesReportSummary
    csv: str


class ReportInfo(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    period_type: str


class DueRecipient(BaseModel):
    user_id: int
    telegram_id: str


class DueSchedule(BaseModel):
    """One unit of work handed to the messaging worker."""
    schedule_id: int
    report_id: int
    report_name: str
    summary: SalesReportSummary
    # Detail table already prefixed with the summary block
    csv: str
    recipients: list[DueRecipient]


class ScheduleCreate(BaseModel):
    report_id: int
    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(..., ge=0, le=59)
    frequency: ScheduleFrequency
    weekday: Optional[int] = Field(
        default=None,
        ge=0,
        le=6,
        description="0 = Sunday .. 6 = Saturday. Required for WEEKLY, ignored for DAILY.",
    )
    recipient_ids: list[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_weekday(self):
        if self.frequency == "WEEKLY" and self.weekday is None:
            raise ValueError("weekday (0..6, 0 = Sunday) is required for WEEKLY schedules")
        if self.frequency == "DAILY":
            self.weekday = None
        return self


class ScheduleReportRef(BaseModel):
    id: int
    name: str


class ScheduleRecipientOut(BaseModel):
    id: int
    username: str
    telegram_id: Optional[str] = None


class ScheduleOut(BaseModel):
    id: int
    hour: int
    minute: int
    frequency: ScheduleFrequency
    weekday: Optional[int] = None
    is_active: bool
    report: ScheduleReportRef
    recipients: list[ScheduleRecipientOut]


class DeliveryErrorIn(BaseModel):
    """Reported by the messaging worker when a send fails."""
    user_id: int
    error_message: str = Field(..., min_length=1, max_length=2000)


class DeliveryLogOut(BaseModel):
    id: int
    report_id: int
    report_name: Optional[str] = None
    user_id: int
    username: Optional[str] = None
    schedule_id: Optional[int] = None
    status: DeliveryStatus
    sent_at: datetime
    error_message: Optional[str] = None


class SalesByDayPoint(BaseModel):
    date: str
    total_revenue: float
    total_orders: int
    total_quantity: int


class SalesByDayOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: datetime = Field(..., alias="from")
    to: datetime
    days: int
    points: list[SalesByDayPoint]


class HealthStatus(BaseModel):
    status: str
    db: str
    timestamp: datetime


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserLogin(BaseModel):
    username: str
    password: str
