import json
from datetime import datetime
from decimal import Decimal
from urllib.parse import urlencode

from sqlalchemy import create_engine
from sqlalchemy.orm import Session as OrmSession, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import ROLE_ADMIN, create_access_token, get_password_hash
from app.db_models import Base, Report, Sale, Schedule, ScheduleRecipient, User


def make_session_factory() -> sessionmaker:
    # One shared connection so threadpool endpoints see the same in-memory DB
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def make_db_session() -> OrmSession:
    return make_session_factory()()


def add_user(
    db: OrmSession,
    username: str,
    *,
    telegram_id: str | None = None,
    role: str = "VIEWER",
    password: str | None = None,
    is_active: bool = True,
) -> User:
    user = User(
        username=username,
        telegram_id=telegram_id,
        role=role,
        is_active=is_active,
        password_hash=get_password_hash(password) if password else None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_admin(db: OrmSession, username: str = "admin", password: str = "s3cretpass!") -> User:
    return add_user(db, username, role=ROLE_ADMIN, password=password)


def bearer(user: User) -> dict:
    return {"authorization": f"Bearer {create_access_token(user=user)}"}


def add_report(
    db: OrmSession,
    name: str = "Daily sales report",
    period_type: str = "DAY",
    is_active: bool = True,
) -> Report:
    report = Report(name=name, period_type=period_type, is_active=is_active)
    db.add(report)
    db.commit()
    db.refresh(report)
    return report


def add_schedule(
    db: OrmSession,
    report: Report,
    hour: int,
    minute: int,
    recipients=(),
    *,
    frequency: str = "DAILY",
    weekday: int | None = None,
    is_active: bool = True,
) -> Schedule:
    schedule = Schedule(
        report_id=report.id,
        hour=hour,
        minute=minute,
        frequency=frequency,
        weekday=weekday,
        is_active=is_active,
    )
    db.add(schedule)
    db.flush()
    for user in recipients:
        db.add(ScheduleRecipient(schedule_id=schedule.id, user_id=user.id))
    db.commit()
    db.refresh(schedule)
    return schedule


def add_sale(
    db: OrmSession,
    sale_date: datetime,
    quantity: int,
    price: str,
    customer: str = "Romashka LLC",
    product: str = "Laptop X1",
) -> Sale:
    sale = Sale(
        customer=customer,
        product=product,
        quantity=quantity,
        price=Decimal(price),
        sale_date=sale_date,
    )
    db.add(sale)
    db.commit()
    return sale


class JsonASGIClient:
    """Minimal ASGI driver; enough to exercise the JSON endpoints in-process."""

    def __init__(self, app):
        self.app = app

    async def request(
        self,
        method: str,
        path: str,
        json_data: dict | None = None,
        headers: dict | None = None,
        params: dict | None = None,
    ):
        header_list: list[tuple[bytes, bytes]] = []
        if headers:
            for k, v in headers.items():
                header_list.append((k.lower().encode(), str(v).encode()))

        body = b""
        if json_data is not None:
            body = json.dumps(json_data).encode()
            header_list.extend(
                [
                    (b"content-type", b"application/json"),
                    (b"content-length", str(len(body)).encode()),
                ]
            )

        query_string = urlencode(params or {}).encode()

        scope = {
            "type": "http",
            "http_version": "1.1",
            "method": method.upper(),
            "path": path,
            "raw_path": path.encode(),
            "query_string": query_string,
            "headers": header_list,
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
            "scheme": "http",
            "root_path": "",
            "app": self.app,
        }

        messages: list[dict] = []

        async def receive():
            nonlocal body
            if body is None:
                return {"type": "http.disconnect"}
            chunk = body
            body = None
            return {"type": "http.request", "body": chunk, "more_body": False}

        async def send(message):
            messages.append(message)

        await self.app(scope, receive, send)

        status_code = 500
        body_bytes = b""
        for message in messages:
            if message["type"] == "http.response.start":
                status_code = message["status"]
            elif message["type"] == "http.response.body":
                body_bytes += message.get("body", b"")

        return status_code, json.loads(body_bytes.decode()) if body_bytes else None

    async def get_json(self, path: str, headers: dict | None = None, params: dict | None = None):
        return await self.request("GET", path, headers=headers, params=params)

    async def post_json(self, path: str, payload: dict | None = None, headers: dict | None = None):
        return await self.request("POST", path, json_data=payload, headers=headers)

    async def delete(self, path: str, headers: dict | None = None):
        return await self.request("DELETE", path, headers=headers)
