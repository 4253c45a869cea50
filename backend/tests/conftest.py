"""
Pytest configuration.

Every test gets its own SQLite file. Work is done through short-lived
sessions (one per operation, like one per request) so no test session sits on
the database write lock while the code under test needs it.
"""
import itertools
import os
import tempfile

# Point settings at a scratch location BEFORE any app imports
_SCRATCH_DIR = tempfile.mkdtemp(prefix="yogabook-tests-")
os.environ.setdefault("DATABASE_PATH", os.path.join(_SCRATCH_DIR, "default.db"))
os.environ.setdefault("YOGABOOK_LOG_DIR", os.path.join(_SCRATCH_DIR, "logs"))

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import yogabook.models  # noqa: F401
from yogabook.core.clock import utcnow
from yogabook.core.database import Base, build_engine, get_db
from yogabook.main import app
from yogabook.models import (
    CardStatusEnum,
    CardTypeEnum,
    Lesson,
    Location,
    MembershipPlan,
    Teacher,
    User,
    UserMembershipCard,
)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def run(session_factory):
    """Run fn(session) in a session of its own and close it afterwards."""

    def _run(fn):
        with session_factory() as session:
            return fn(session)

    return _run


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


class Factory:
    """Creates rows in their own committed session and hands back ids."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._seq = itertools.count(1)

    def _save(self, obj) -> int:
        with self.session_factory() as session:
            session.add(obj)
            session.commit()
            return obj.id

    def user(self, open_id: str = "openid-a", nickname: Optional[str] = None) -> int:
        return self._save(User(open_id=open_id, nickname=nickname or open_id))

    def teacher(self, name: str = "Lin") -> int:
        return self._save(Teacher(name=name))

    def location(self, name: str = "Studio 1") -> int:
        return self._save(Location(name=name, capacity=20))

    def lesson(
        self,
        max_students: int = 10,
        lesson_type: str = "team",
        start: Optional[datetime] = None,
        is_active: bool = True,
        title: str = "Morning Flow",
        teacher_id: Optional[int] = None,
        location_id: Optional[int] = None,
    ) -> int:
        start = start or (utcnow() + timedelta(days=2)).replace(hour=9, minute=0, second=0, microsecond=0)
        return self._save(Lesson(
            title=title,
            lesson_type=lesson_type,
            start_time=start,
            end_time=start + timedelta(hours=1),
            max_students=max_students,
            is_active=is_active,
            teacher_id=teacher_id,
            location_id=location_id,
        ))

    def card(
        self,
        user_id: int,
        card_type: CardTypeEnum = CardTypeEnum.COUNT_BASED,
        remaining: Optional[int] = 10,
        total: Optional[int] = None,
        expires_in_days: float = 30,
        status: CardStatusEnum = CardStatusEnum.ACTIVE,
        applicable_lesson_types=None,
        max_bookings_per_day: Optional[int] = None,
        card_number: Optional[str] = None,
    ) -> int:
        now = utcnow()
        count_based = card_type == CardTypeEnum.COUNT_BASED
        if total is None and count_based:
            total = remaining
        return self._save(UserMembershipCard(
            user_id=user_id,
            card_number=card_number or f"TEST-{next(self._seq):04d}",
            status=status,
            card_type=card_type,
            plan_name="Ten Class Pass" if count_based else "Monthly Unlimited",
            validity_days=30,
            total_classes=total if count_based else None,
            remaining_classes=remaining if count_based else None,
            applicable_lesson_types=applicable_lesson_types,
            max_bookings_per_day=max_bookings_per_day,
            purchase_price=Decimal("100.00"),
            discount_amount=Decimal("0.00"),
            actual_paid=Decimal("100.00"),
            activated_at=now - timedelta(days=1),
            expires_at=now + timedelta(days=expires_in_days),
        ))

    def plan(
        self,
        card_type: CardTypeEnum = CardTypeEnum.COUNT_BASED,
        total_classes: Optional[int] = 10,
        validity_days: int = 90,
        price: str = "800.00",
        applicable_lesson_types=None,
        is_active: bool = True,
        name: str = "Ten Class Pass",
        sort_order: int = 0,
    ) -> int:
        return self._save(MembershipPlan(
            name=name,
            card_type=card_type,
            validity_days=validity_days,
            total_classes=total_classes if card_type == CardTypeEnum.COUNT_BASED else None,
            price=Decimal(price),
            applicable_lesson_types=applicable_lesson_types,
            is_active=is_active,
            sort_order=sort_order,
        ))


@pytest.fixture
def factory(session_factory):
    return Factory(session_factory)


@pytest.fixture
def remaining(run):
    """Current remaining_classes of a card."""

    def _remaining(card_id: int) -> Optional[int]:
        return run(lambda s: s.get(UserMembershipCard, card_id).remaining_classes)

    return _remaining


@pytest.fixture
def count_rows(run):
    """Count rows of a model matching simple equality filters."""

    def _count(model, **filters) -> int:
        return run(lambda s: s.query(model).filter_by(**filters).count())

    return _count

