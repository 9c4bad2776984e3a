"""
Database abstraction for Postgres and an in-memory test implementation.

Records are plain dataclasses. Both clients expose the same small set of
table-style operations (insert/get/find/update/delete) so route handlers can
stay backend agnostic.
"""

from __future__ import annotations

import copy
import time
import typing
import uuid
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Optional, Protocol, Type, TypeVar

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.orm import Session, sessionmaker

R = TypeVar("R", bound="Record")


def new_id() -> str:
    return uuid.uuid4().hex


def now() -> float:
    return time.time()


class Record:
    """Base for stored records."""

    __tablename__: typing.ClassVar[str] = ""

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class OrganizationRecord(Record):
    __tablename__ = "organizations"

    name: str
    id: str = field(default_factory=new_id)
    timezone: str = "America/New_York"
    subscription_tier: str = "free"
    subscription_status: str = "trialing"
    trial_ends_at: Optional[float] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    current_family_code: Optional[str] = None
    family_code_generated_at: Optional[float] = None
    family_code_version: int = 1
    home_features: list = field(default_factory=list)
    special_considerations: Optional[str] = None
    has_pets: bool = False
    pet_types: list = field(default_factory=list)
    age_groups: list = field(default_factory=list)
    number_of_cars: int = 0
    number_of_bikes: int = 0
    has_pool: Optional[bool] = None
    has_fireplace: Optional[bool] = None
    has_garage: Optional[bool] = None
    property_type: Optional[str] = None
    property_data: dict = field(default_factory=dict)
    property_fetch_count: int = 0
    property_fetch_window_start: Optional[float] = None
    hub_settings: Optional[dict] = None
    created_at: float = field(default_factory=now)
    updated_at: float = field(default_factory=now)


@dataclass
class UserRecord(Record):
    __tablename__ = "users"

    organization_id: str
    name: str
    username: str
    role: str
    id: str = field(default_factory=new_id)
    email: Optional[str] = None
    avatar: str = "smile"
    color: str = "#3B82F6"
    points: int = 0
    is_account_owner: bool = False
    is_family_manager: bool = False
    password_hash: Optional[str] = None
    pin_hash: Optional[str] = None
    pin_required: bool = False
    birthday: Optional[str] = None
    coppa_consent_given: bool = False
    coppa_consent_date: Optional[float] = None
    coppa_consent_ip: Optional[str] = None
    coppa_consent_parent_email: Optional[str] = None
    invitation_token: Optional[str] = None
    invitation_token_expiry: Optional[float] = None
    invitation_status: Optional[str] = None
    created_at: float = field(default_factory=now)

    @property
    def is_manager(self) -> bool:
        return bool(self.is_account_owner or self.is_family_manager)


@dataclass
class TaskRecord(Record):
    __tablename__ = "tasks"

    organization_id: str
    name: str
    category: str
    frequency: str
    points: int
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    due_time: Optional[str] = None
    status: str = "active"
    requires_photo: bool = False
    requires_approval: bool = False
    recurrence_interval: Optional[int] = None
    recurrence_day_of_week: Optional[int] = None
    created_by: Optional[str] = None
    created_at: float = field(default_factory=now)
    updated_at: float = field(default_factory=now)


@dataclass
class TaskAssignmentRecord(Record):
    __tablename__ = "task_assignments"

    task_id: str
    user_id: str
    id: str = field(default_factory=new_id)
    is_claim: bool = False
    claim_expires_at: Optional[float] = None
    assigned_at: float = field(default_factory=now)


@dataclass
class TaskCompletionRecord(Record):
    __tablename__ = "task_completions"

    task_id: str
    user_id: str
    id: str = field(default_factory=new_id)
    completed_at: float = field(default_factory=now)
    photo_url: Optional[str] = None
    notes: Optional[str] = None
    requires_approval: bool = False
    approved: Optional[bool] = None
    approved_by: Optional[str] = None
    approved_at: Optional[float] = None
    approval_notes: Optional[str] = None
    points_awarded: int = 0


@dataclass
class RewardRecord(Record):
    __tablename__ = "rewards"

    organization_id: str
    name: str
    category: str
    points: int
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    icon: str = "🎁"
    stock_quantity: Optional[int] = None
    max_per_month: Optional[int] = None
    age_restriction: Optional[str] = None
    requires_approval: bool = True
    status: str = "active"
    created_by: Optional[str] = None
    created_at: float = field(default_factory=now)


@dataclass
class RedemptionRecord(Record):
    __tablename__ = "reward_redemptions"

    reward_id: str
    user_id: str
    organization_id: str
    points_spent: int
    id: str = field(default_factory=new_id)
    status: str = "pending"
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    requested_at: float = field(default_factory=now)
    reviewed_at: Optional[float] = None
    reviewed_by: Optional[str] = None
    fulfilled_at: Optional[float] = None


@dataclass
class RewardTemplateRecord(Record):
    __tablename__ = "reward_templates"

    name: str
    category: str
    suggested_points: int
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    icon: Optional[str] = None
    age_appropriate: list = field(default_factory=list)
    global_popularity: int = 0
    tags: list = field(default_factory=list)


@dataclass
class TaskTemplateRecord(Record):
    __tablename__ = "task_templates"

    name: str
    category: str
    default_points: int
    default_frequency: str
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    emoji: Optional[str] = None
    age_appropriate: list = field(default_factory=list)
    popularity: int = 0
    is_system: bool = True


@dataclass
class AchievementDefinitionRecord(Record):
    __tablename__ = "achievement_definitions"

    key: str
    name: str
    category: str
    tier: str
    max_progress: int
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    icon: Optional[str] = None
    points_reward: int = 0
    requirement_type: str = "tasks_completed"
    sort_order: int = 0
    is_active: bool = True


@dataclass
class UserAchievementRecord(Record):
    __tablename__ = "user_achievements"

    user_id: str
    achievement_id: str
    id: str = field(default_factory=new_id)
    progress: int = 0
    is_unlocked: bool = False
    unlocked_at: Optional[float] = None
    notified: bool = False


@dataclass
class MilestoneRecord(Record):
    __tablename__ = "user_milestones"

    user_id: str
    title: str
    milestone_type: str
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    icon: str = "🎯"
    reference_id: Optional[str] = None
    created_at: float = field(default_factory=now)


@dataclass
class CalendarIntegrationRecord(Record):
    __tablename__ = "calendar_integrations"

    user_id: str
    organization_id: str
    access_token: str
    id: str = field(default_factory=new_id)
    provider: str = "google"
    refresh_token: Optional[str] = None
    token_expiry: Optional[float] = None
    email: Optional[str] = None
    sync_enabled: bool = True
    sync_tasks_to_calendar: bool = True
    sync_calendar_to_tasks: bool = False
    calendar_name: str = "ChorePulse Tasks"
    last_sync_at: Optional[float] = None
    last_sync_status: Optional[str] = None
    last_sync_error: Optional[str] = None
    updated_at: float = field(default_factory=now)


@dataclass
class EmailPreferencesRecord(Record):
    __tablename__ = "email_preferences"

    user_id: str
    id: str = field(default_factory=new_id)
    email: Optional[str] = None
    unsubscribe_token: str = field(default_factory=new_id)
    welcome_emails: bool = True
    weekly_reports: bool = True
    tips_and_encouragement: bool = True
    achievements_notifications: bool = True
    streak_reminders: bool = True
    referral_emails: bool = True
    product_updates: bool = True
    surveys: bool = True
    unsubscribed_all: bool = False


@dataclass
class EmailQueueRecord(Record):
    __tablename__ = "email_queue"

    user_id: str
    email: str
    campaign_type: str
    subject: str
    id: str = field(default_factory=new_id)
    data: dict = field(default_factory=dict)
    scheduled_for: float = field(default_factory=now)
    priority: int = 5
    status: str = "queued"
    attempts: int = 0


@dataclass
class EmailSendHistoryRecord(Record):
    __tablename__ = "email_send_history"

    user_id: str
    campaign_type: str
    email: str
    subject: str
    status: str
    id: str = field(default_factory=new_id)
    sent_at: Optional[float] = None
    error_message: Optional[str] = None


@dataclass
class FamilyProfileRecord(Record):
    __tablename__ = "family_profiles"

    organization_id: str
    id: str = field(default_factory=new_id)
    data: dict = field(default_factory=dict)
    updated_at: float = field(default_factory=now)


@dataclass
class AiUsageLogRecord(Record):
    __tablename__ = "ai_usage_logs"

    user_id: str
    organization_id: str
    feature: str
    model: str
    id: str = field(default_factory=new_id)
    input_tokens: int = 0
    output_tokens: int = 0
    request_data: dict = field(default_factory=dict)
    response_data: dict = field(default_factory=dict)
    status: str = "success"
    created_at: float = field(default_factory=now)


RECORD_TYPES: tuple[Type[Record], ...] = (
    OrganizationRecord,
    UserRecord,
    TaskRecord,
    TaskAssignmentRecord,
    TaskCompletionRecord,
    RewardRecord,
    RedemptionRecord,
    RewardTemplateRecord,
    TaskTemplateRecord,
    AchievementDefinitionRecord,
    UserAchievementRecord,
    MilestoneRecord,
    CalendarIntegrationRecord,
    EmailPreferencesRecord,
    EmailQueueRecord,
    EmailSendHistoryRecord,
    FamilyProfileRecord,
    AiUsageLogRecord,
)


class DbClient(Protocol):
    """Interface for database access."""

    def insert(self, record: R) -> R:
        ...

    def get(self, record_type: Type[R], record_id: str) -> Optional[R]:
        ...

    def find(
        self,
        record_type: Type[R],
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        **filters: Any,
    ) -> list[R]:
        ...

    def find_one(self, record_type: Type[R], **filters: Any) -> Optional[R]:
        ...

    def count(self, record_type: Type[R], **filters: Any) -> int:
        ...

    def update(self, record_type: Type[R], record_id: str, **changes: Any) -> Optional[R]:
        ...

    def delete(self, record_type: Type[R], record_id: str) -> bool:
        ...

    def delete_where(self, record_type: Type[R], **filters: Any) -> int:
        ...

    def adjust_points(self, user_id: str, delta: int) -> Optional[int]:
        ...


def _matches(record: Record, filters: Dict[str, Any]) -> bool:
    for name, expected in filters.items():
        actual = getattr(record, name)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def _sort_key(name: str):
    def key(record: Record):
        value = getattr(record, name)
        return (value is None, value)

    return key


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.tables: Dict[str, Dict[str, Record]] = {
            record_type.__tablename__: {} for record_type in RECORD_TYPES
        }

    def _table(self, record_type: Type[Record]) -> Dict[str, Record]:
        return self.tables[record_type.__tablename__]

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        for rows in self.tables.values():
            rows.clear()

    def insert(self, record: R) -> R:
        self._table(type(record))[record.id] = copy.deepcopy(record)
        return record

    def get(self, record_type: Type[R], record_id: str) -> Optional[R]:
        stored = self._table(record_type).get(record_id)
        return copy.deepcopy(stored) if stored else None

    def find(
        self,
        record_type: Type[R],
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        **filters: Any,
    ) -> list[R]:
        rows = [r for r in self._table(record_type).values() if _matches(r, filters)]
        if order_by:
            rows.sort(key=_sort_key(order_by), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return [copy.deepcopy(r) for r in rows]

    def find_one(self, record_type: Type[R], **filters: Any) -> Optional[R]:
        rows = self.find(record_type, limit=1, **filters)
        return rows[0] if rows else None

    def count(self, record_type: Type[R], **filters: Any) -> int:
        return sum(1 for r in self._table(record_type).values() if _matches(r, filters))

    def update(self, record_type: Type[R], record_id: str, **changes: Any) -> Optional[R]:
        table = self._table(record_type)
        stored = table.get(record_id)
        if not stored:
            return None
        table[record_id] = replace(stored, **copy.deepcopy(changes))
        return copy.deepcopy(table[record_id])

    def delete(self, record_type: Type[R], record_id: str) -> bool:
        return self._table(record_type).pop(record_id, None) is not None

    def delete_where(self, record_type: Type[R], **filters: Any) -> int:
        table = self._table(record_type)
        doomed = [key for key, r in table.items() if _matches(r, filters)]
        for key in doomed:
            del table[key]
        return len(doomed)

    def adjust_points(self, user_id: str, delta: int) -> Optional[int]:
        user = self._table(UserRecord).get(user_id)
        if not user:
            return None
        user.points = (user.points or 0) + delta
        return user.points


metadata = MetaData()


def _column_type(hint: Any):
    if typing.get_origin(hint) is typing.Union:
        hint = next(arg for arg in typing.get_args(hint) if arg is not type(None))
    origin = typing.get_origin(hint) or hint
    if origin in (list, dict):
        return JSON
    if origin is bool:
        return Boolean
    if origin is int:
        return Integer
    if origin is float:
        return Float
    return String


def _build_table(record_type: Type[Record]) -> Table:
    hints = typing.get_type_hints(record_type)
    columns = []
    for f in fields(record_type):
        columns.append(
            Column(
                f.name,
                _column_type(hints[f.name]),
                primary_key=f.name == "id",
                index=f.name.endswith("_id") or f.name in ("username", "email"),
            )
        )
    return Table(record_type.__tablename__, metadata, *columns)


TABLES: Dict[Type[Record], Table] = {
    record_type: _build_table(record_type) for record_type in RECORD_TYPES
}


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        metadata.create_all(self.engine)

    @staticmethod
    def _where(table: Table, stmt, filters: Dict[str, Any]):
        for name, expected in filters.items():
            column = table.c[name]
            if isinstance(expected, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(expected)))
            elif expected is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == expected)
        return stmt

    @staticmethod
    def _to_record(record_type: Type[R], row) -> R:
        values = dict(row._mapping)
        return record_type(**{f.name: values[f.name] for f in fields(record_type)})

    def insert(self, record: R) -> R:
        table = TABLES[type(record)]
        with self.Session() as session:
            session.execute(insert(table).values(**asdict(record)))
            session.commit()
        return record

    def get(self, record_type: Type[R], record_id: str) -> Optional[R]:
        table = TABLES[record_type]
        with self.Session() as session:
            row = session.execute(
                select(table).where(table.c.id == record_id)
            ).first()
            return self._to_record(record_type, row) if row else None

    def find(
        self,
        record_type: Type[R],
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        **filters: Any,
    ) -> list[R]:
        table = TABLES[record_type]
        stmt = self._where(table, select(table), filters)
        if order_by:
            column = table.c[order_by]
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.Session() as session:
            rows = session.execute(stmt).all()
            return [self._to_record(record_type, row) for row in rows]

    def find_one(self, record_type: Type[R], **filters: Any) -> Optional[R]:
        rows = self.find(record_type, limit=1, **filters)
        return rows[0] if rows else None

    def count(self, record_type: Type[R], **filters: Any) -> int:
        table = TABLES[record_type]
        stmt = self._where(table, select(func.count()).select_from(table), filters)
        with self.Session() as session:
            return session.execute(stmt).scalar_one()

    def update(self, record_type: Type[R], record_id: str, **changes: Any) -> Optional[R]:
        table = TABLES[record_type]
        with self.Session() as session:
            if changes:
                session.execute(
                    update(table).where(table.c.id == record_id).values(**changes)
                )
                session.commit()
        return self.get(record_type, record_id)

    def delete(self, record_type: Type[R], record_id: str) -> bool:
        table = TABLES[record_type]
        with self.Session() as session:
            result = session.execute(delete(table).where(table.c.id == record_id))
            session.commit()
            return (result.rowcount or 0) > 0

    def delete_where(self, record_type: Type[R], **filters: Any) -> int:
        table = TABLES[record_type]
        with self.Session() as session:
            result = session.execute(self._where(table, delete(table), filters))
            session.commit()
            return result.rowcount or 0

    def adjust_points(self, user_id: str, delta: int) -> Optional[int]:
        table = TABLES[UserRecord]
        with self.Session() as session:
            result = session.execute(
                update(table)
                .where(table.c.id == user_id)
                .values(points=table.c.points + delta)
            )
            if not result.rowcount:
                session.rollback()
                return None
            points = session.execute(
                select(table.c.points).where(table.c.id == user_id)
            ).scalar_one()
            session.commit()
            return points
