"""Seed a database with demo data for the sales report scheduler.

Creates the tables when missing, ensures an admin account and the default
report definitions exist, and replaces the sales table with random demo
sales. Safe to re-run; only the sales table is rebuilt.

Environment:
    SEED_COUNT        number of sales to create (default 50000)
    SEED_DAYS         spread sales over this many days back (default 30)
    ADMIN_USERNAME    admin login (default "admin")
    ADMIN_PASSWORD    admin password (default "admin")

Usage (from repo root):
    SECRET_KEY=... DATABASE_URL=... python scripts/seed_sales.py
"""
from __future__ import annotations

import os
import random
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from app.auth import ROLE_ADMIN, get_password_hash
from app.database import SessionLocal, engine
from app.db_models import Base, Report, Sale, User

BATCH_SIZE = 1000

CUSTOMERS = [
    "Romashka LLC",
    "Ivanov & Sons",
    "TechnoWorld LLC",
    "Megaplus LLC",
    "Petrov Trading",
    "North Construction LLC",
    "Vector LLC",
    "Smirnov Retail",
    "Alpha Trade LLC",
    "Spectrum LLC",
]

PRODUCTS = [
    ("Laptop X1", Decimal("60000.00")),
    ("Smartphone Y", Decimal("30000.00")),
    ("Tablet Z", Decimal("45000.00")),
    ('Monitor 24"', Decimal("15000.00")),
    ("Mechanical keyboard", Decimal("5000.00")),
    ("Wireless mouse", Decimal("2500.00")),
    ("Headphones", Decimal("8000.00")),
    ("SSD 1TB", Decimal("9000.00")),
]

DEFAULT_REPORTS = [
    ("Daily sales report", "Sales summary for the current day", "DAY"),
    ("Weekly sales report", "Sales summary for the last 7 days", "WEEK"),
]


def _ensure_admin(db: Session) -> None:
    username = os.getenv("ADMIN_USERNAME", "admin")
    password = os.getenv("ADMIN_PASSWORD", "admin")

    admin = db.query(User).filter(User.username == username).first()
    if admin is None:
        admin = User(username=username)
        db.add(admin)
        print(f"Creating admin user: {username}")
    else:
        print(f"Updating admin user: {username}")

    admin.password_hash = get_password_hash(password)
    admin.role = ROLE_ADMIN
    admin.is_active = True
    db.commit()


def _ensure_reports(db: Session) -> None:
    for name, description, period_type in DEFAULT_REPORTS:
        if db.query(Report).filter(Report.name == name).first():
            continue
        print(f"Creating report: {name} ({period_type})")
        db.add(
            Report(
                name=name,
                description=description,
                period_type=period_type,
                is_active=True,
            )
        )
    db.commit()


def _seed_sales(db: Session, count: int, days: int) -> None:
    print("Clearing sales ...")
    db.query(Sale).delete()
    db.commit()

    now = datetime.utcnow()
    created = 0
    while created < count:
        size = min(BATCH_SIZE, count - created)
        batch = []
        for _ in range(size):
            sale_date = (now - timedelta(days=random.randint(0, max(0, days - 1)))).replace(
                hour=random.randint(9, 18),
                minute=random.randint(0, 59),
                second=0,
                microsecond=0,
            )
            product, price = random.choice(PRODUCTS)
            batch.append(
                Sale(
                    customer=random.choice(CUSTOMERS),
                    product=product,
                    quantity=random.randint(1, 5),
                    price=price,
                    sale_date=sale_date,
                )
            )
        db.add_all(batch)
        db.commit()

        created += size
        if created % 5000 == 0 or created == count:
            print(f"  inserted {created}/{count}")


if __name__ == "__main__":
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        _ensure_admin(session)
        _ensure_reports(session)
        _seed_sales(
            session,
            count=int(os.getenv("SEED_COUNT", 50000)),
            days=int(os.getenv("SEED_DAYS", 30)),
        )
    finally:
        session.close()

    print("Seeding complete.")
