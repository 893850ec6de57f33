"""
Naira Payroll — Submission stores
The workflow reads the whole collection, applies one transition, writes it back.
"""
import uuid
from datetime import datetime, timezone
from typing import List, Protocol

from sqlalchemy import Column, String, Integer, DateTime, JSON, Index, create_engine, select, delete
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PayrollStore(Protocol):
    def list(self) -> List: ...

    def save(self, submissions: List) -> None: ...


class InMemoryPayrollStore:
    """Process-local store, mostly for tests and previews."""

    def __init__(self, submissions=None):
        self._rows = [s.to_dict() for s in (submissions or [])]

    def list(self) -> List:
        from payroll_workflow import PayrollSubmission
        return [PayrollSubmission.from_dict(row) for row in self._rows]

    def save(self, submissions: List) -> None:
        self._rows = [s.to_dict() for s in submissions]


# ── Models ──────────────────────────────────────────────────────────────────


class PayrollSubmissionRow(Base):
    __tablename__ = "payroll_submissions"

    id = Column(String(12), primary_key=True, default=new_id)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="draft")  # draft, submitted, approved, rejected, paid, master
    position = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    data = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_payroll_period", "year", "month"),
    )


class SqlPayrollStore:
    """SQLAlchemy-backed store. save() replaces the collection in one transaction."""

    def __init__(self, database_url: str, echo: bool = False):
        self.engine = create_engine(database_url, echo=echo)
        self.session_factory = sessionmaker(self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    def list(self) -> List:
        from payroll_workflow import PayrollSubmission
        with self.session_factory() as session:
            rows = session.execute(
                select(PayrollSubmissionRow).order_by(PayrollSubmissionRow.position)
            ).scalars().all()
            return [PayrollSubmission.from_dict(row.data) for row in rows]

    def save(self, submissions: List) -> None:
        with self.session_factory() as session:
            with session.begin():
                session.execute(delete(PayrollSubmissionRow))
                for position, submission in enumerate(submissions):
                    session.add(PayrollSubmissionRow(
                        id=submission.id,
                        month=submission.month,
                        year=submission.year,
                        status=submission.status.value,
                        position=position,
                        version=submission.version,
                        data=submission.to_dict(),
                    ))

    def dispose(self) -> None:
        self.engine.dispose()
