"""
Naira Payroll — Submission workflow
One payroll run per (month, year): draft → submitted → approved/rejected → paid.
"""
import calendar
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Any

from db import PayrollStore, new_id, utcnow
from payroll_engine import PayrollEmployee, calculate_payroll_breakdown, to_decimal, ZERO
from utils import sanitize_input

logger = logging.getLogger("naira_payroll")


class PayrollStatus(Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    MASTER = "master"  # roster template, outside the monthly lifecycle


# Allowed status changes. rejected → draft/submitted only happens through an edit.
TRANSITIONS = {
    PayrollStatus.DRAFT: {PayrollStatus.SUBMITTED},
    PayrollStatus.SUBMITTED: {PayrollStatus.APPROVED, PayrollStatus.REJECTED},
    PayrollStatus.REJECTED: {PayrollStatus.DRAFT, PayrollStatus.SUBMITTED},
    PayrollStatus.APPROVED: {PayrollStatus.PAID},
    PayrollStatus.PAID: set(),
    PayrollStatus.MASTER: set(),
}

EDITABLE_STATUSES = {PayrollStatus.DRAFT, PayrollStatus.REJECTED}
DELETABLE_STATUSES = {PayrollStatus.DRAFT, PayrollStatus.REJECTED}


# ── Errors ──────────────────────────────────────────────────────────────────


class PayrollError(Exception):
    """Base class for workflow refusals."""


class PayrollValidationError(PayrollError):
    pass


class DuplicatePeriodError(PayrollValidationError):
    def __init__(self, existing: 'PayrollSubmission'):
        self.existing = existing
        super().__init__(
            f"A payroll for {existing.period_label} already exists "
            f"(status: {existing.status.value.upper()}). "
            "Only one payroll is allowed per period. Edit the existing payroll or delete it first."
        )


class InvalidTransitionError(PayrollError):
    def __init__(self, submission: 'PayrollSubmission', action: str):
        self.submission = submission
        self.action = action
        super().__init__(
            f"Cannot {action} payroll {submission.id} while it is {submission.status.value}"
        )


class SubmissionNotFoundError(PayrollError):
    def __init__(self, submission_id: str):
        self.submission_id = submission_id
        super().__init__(f"Payroll {submission_id} not found")


class ConcurrentModificationError(PayrollError):
    def __init__(self, submission: 'PayrollSubmission', expected_version: int):
        self.submission = submission
        self.expected_version = expected_version
        super().__init__(
            f"Payroll {submission.id} is at version {submission.version}, "
            f"expected {expected_version}. Reload and try again."
        )


# ── Models ──────────────────────────────────────────────────────────────────


class PayrollTotals(NamedTuple):
    total_gross: Decimal
    total_net: Decimal
    total_deductions: Decimal


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class PayrollSubmission:
    """One payroll run for a (month, year) period"""
    month: int
    year: int
    employees: List[PayrollEmployee] = field(default_factory=list)
    total_gross: Decimal = ZERO
    total_net: Decimal = ZERO
    total_deductions: Decimal = ZERO
    status: PayrollStatus = PayrollStatus.DRAFT

    # Audit
    submitted_by: str = ''
    submitted_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    approval_comments: Optional[str] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    paid_at: Optional[datetime] = None

    id: str = field(default_factory=new_id)
    version: int = 1

    @property
    def period(self):
        return (self.month, self.year)

    @property
    def period_label(self) -> str:
        if self.status == PayrollStatus.MASTER:
            return "Master payroll"
        return f"{calendar.month_name[self.month]} {self.year}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'month': self.month,
            'year': self.year,
            'employees': [e.to_dict() for e in self.employees],
            'total_gross': str(self.total_gross),
            'total_net': str(self.total_net),
            'total_deductions': str(self.total_deductions),
            'status': self.status.value,
            'submitted_by': self.submitted_by,
            'submitted_at': _iso(self.submitted_at),
            'approved_by': self.approved_by,
            'approved_at': _iso(self.approved_at),
            'approval_comments': self.approval_comments,
            'rejected_by': self.rejected_by,
            'rejected_at': _iso(self.rejected_at),
            'rejection_reason': self.rejection_reason,
            'paid_at': _iso(self.paid_at),
            'version': self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PayrollSubmission':
        return cls(
            id=data['id'],
            month=int(data['month']),
            year=int(data['year']),
            employees=[PayrollEmployee.from_dict(e) for e in data.get('employees', [])],
            total_gross=to_decimal(data.get('total_gross')),
            total_net=to_decimal(data.get('total_net')),
            total_deductions=to_decimal(data.get('total_deductions')),
            status=PayrollStatus(data.get('status', 'draft')),
            submitted_by=data.get('submitted_by') or '',
            submitted_at=_parse_dt(data.get('submitted_at')),
            approved_by=data.get('approved_by'),
            approved_at=_parse_dt(data.get('approved_at')),
            approval_comments=data.get('approval_comments'),
            rejected_by=data.get('rejected_by'),
            rejected_at=_parse_dt(data.get('rejected_at')),
            rejection_reason=data.get('rejection_reason'),
            paid_at=_parse_dt(data.get('paid_at')),
            version=int(data.get('version', 1)),
        )


# ── Aggregation & validation ────────────────────────────────────────────────


def compute_totals(employees: Iterable[PayrollEmployee]) -> PayrollTotals:
    """Sum gross, net and deductions over each employee's own breakdown."""
    total_gross = ZERO
    total_net = ZERO
    total_deductions = ZERO

    for emp in employees:
        breakdown = calculate_payroll_breakdown(emp)
        total_gross += breakdown.gross_salary
        total_net += breakdown.net_pay
        total_deductions += breakdown.total_deductions

    return PayrollTotals(total_gross, total_net, total_deductions)


def validate_employee(employee: PayrollEmployee, require_basic: bool = True) -> None:
    """
    Refuse roster entries that would produce a meaningless payslip.

    require_basic covers hand-entered employees. Unit-based staff seeded from
    the roster carry a zero basic salary and are checked with require_basic=False.
    """
    if require_basic and (not employee.name.strip() or not employee.employee_id.strip()):
        raise PayrollValidationError("Employee name and employee ID are required")

    # Finite check first: ordering comparisons on NaN raise
    for name in ('basic_salary', 'housing_allowance', 'transport_allowance', 'other_allowances',
                 'loan', 'advance', 'other_deductions'):
        amount = getattr(employee, name)
        if not amount.is_finite() or amount < 0:
            label = name.replace('_', ' ')
            raise PayrollValidationError(f"{label.capitalize()} for {employee.name or employee.employee_id} "
                                         f"must be a non-negative amount")

    if require_basic and employee.basic_salary <= 0:
        raise PayrollValidationError(
            f"Basic salary for {employee.name} must be greater than zero"
        )


def validate_period(month: int, year: int) -> None:
    if not 1 <= month <= 12:
        raise PayrollValidationError(f"Month must be between 1 and 12, got {month}")
    if year < 1:
        raise PayrollValidationError(f"Invalid year {year}")


# ── Workflow ────────────────────────────────────────────────────────────────


class PayrollWorkflow:
    """
    Owns the submission lifecycle on top of a PayrollStore.

    Each operation loads the whole collection, validates, applies a single
    change and saves the collection back. A refused operation never writes.
    """

    def __init__(self, store: PayrollStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    # ── Queries ──

    def list_submissions(self, status: Optional[PayrollStatus] = None) -> List[PayrollSubmission]:
        """Monthly payrolls. The master template only shows up when asked for by status."""
        submissions = self.store.list()
        if status is not None:
            return [s for s in submissions if s.status == status]
        return [s for s in submissions if s.status != PayrollStatus.MASTER]

    def get_master(self) -> Optional[PayrollSubmission]:
        return self._find_master(self.store.list())

    def get(self, submission_id: str) -> PayrollSubmission:
        return self._find(self.store.list(), submission_id)

    def find_active(self, month: int, year: int,
                    exclude_id: Optional[str] = None) -> Optional[PayrollSubmission]:
        """The non-rejected submission for a period, if any."""
        return self._find_active(self.store.list(), month, year, exclude_id)

    # ── Preparation ──

    def create_submission(
        self,
        month: int,
        year: int,
        employees: List[PayrollEmployee],
        prepared_by: str,
        submit: bool = False,
    ) -> PayrollSubmission:
        validate_period(month, year)
        employees = list(employees)
        self._check_roster(employees)

        submissions = self.store.list()
        duplicate = self._find_active(submissions, month, year)
        if duplicate:
            logger.warning("Refused duplicate payroll for %s (existing %s, %s)",
                           duplicate.period_label, duplicate.id, duplicate.status.value)
            raise DuplicatePeriodError(duplicate)

        totals = compute_totals(employees)
        submission = PayrollSubmission(
            month=month,
            year=year,
            employees=employees,
            total_gross=totals.total_gross,
            total_net=totals.total_net,
            total_deductions=totals.total_deductions,
            status=PayrollStatus.SUBMITTED if submit else PayrollStatus.DRAFT,
            submitted_by=sanitize_input(prepared_by or '', max_length=200),
            submitted_at=self.clock(),
        )

        submissions.append(submission)
        self.store.save(submissions)
        logger.info("Payroll %s created for %s as %s (%d employees, net %s)",
                    submission.id, submission.period_label, submission.status.value,
                    len(employees), submission.total_net)
        return submission

    def update_submission(
        self,
        submission_id: str,
        employees: List[PayrollEmployee],
        actor: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
        submit: bool = False,
        expected_version: Optional[int] = None,
    ) -> PayrollSubmission:
        """
        Edit a draft or rejected payroll. A rejected payroll re-enters
        preparation under the same id and keeps its original preparer.
        """
        submissions = self.store.list()
        current = self._find(submissions, submission_id)
        self._check_version(current, expected_version)
        if current.status not in EDITABLE_STATUSES:
            raise InvalidTransitionError(current, "edit")

        month = current.month if month is None else month
        year = current.year if year is None else year
        validate_period(month, year)
        employees = list(employees)
        self._check_roster(employees)

        # A reopened rejected payroll counts toward its period again.
        duplicate = self._find_active(submissions, month, year, exclude_id=current.id)
        if duplicate:
            logger.warning("Refused edit of %s: %s already has payroll %s",
                           current.id, duplicate.period_label, duplicate.id)
            raise DuplicatePeriodError(duplicate)

        totals = compute_totals(employees)
        status = PayrollStatus.SUBMITTED if submit else PayrollStatus.DRAFT
        changes = dict(
            month=month,
            year=year,
            employees=employees,
            total_gross=totals.total_gross,
            total_net=totals.total_net,
            total_deductions=totals.total_deductions,
            status=status,
            version=current.version + 1,
        )
        if submit:
            changes['submitted_by'] = current.submitted_by or actor
            changes['submitted_at'] = self.clock()

        updated = replace(current, **changes)
        self._store_replacing(submissions, updated)
        logger.info("Payroll %s edited by %s (%s → %s)",
                    updated.id, actor, current.status.value, updated.status.value)
        return updated

    def add_employee(self, submission_id: str, employee: PayrollEmployee, actor: str,
                     expected_version: Optional[int] = None) -> PayrollSubmission:
        validate_employee(employee)
        current = self.get(submission_id)
        return self.update_submission(
            submission_id, current.employees + [employee], actor,
            expected_version=expected_version,
        )

    def replace_employee(self, submission_id: str, employee: PayrollEmployee, actor: str,
                         expected_version: Optional[int] = None) -> PayrollSubmission:
        validate_employee(employee)
        current = self.get(submission_id)
        if not any(e.entry_id == employee.entry_id for e in current.employees):
            raise PayrollValidationError(f"Employee entry {employee.entry_id} is not on payroll {submission_id}")
        employees = [employee if e.entry_id == employee.entry_id else e for e in current.employees]
        return self.update_submission(submission_id, employees, actor, expected_version=expected_version)

    def remove_employee(self, submission_id: str, entry_id: str, actor: str,
                        expected_version: Optional[int] = None) -> PayrollSubmission:
        current = self.get(submission_id)
        employees = [e for e in current.employees if e.entry_id != entry_id]
        if len(employees) == len(current.employees):
            raise PayrollValidationError(f"Employee entry {entry_id} is not on payroll {submission_id}")
        return self.update_submission(submission_id, employees, actor, expected_version=expected_version)

    # ── Master template ──

    def save_master(self, employees: List[PayrollEmployee], actor: str,
                    expected_version: Optional[int] = None) -> PayrollSubmission:
        """
        Create or replace the master payroll, the standing roster that new
        monthly payrolls are copied from. There is at most one per store.
        """
        employees = list(employees)
        self._check_roster(employees)

        submissions = self.store.list()
        current = self._find_master(submissions)
        if current is not None:
            self._check_version(current, expected_version)

        totals = compute_totals(employees)
        changes = dict(
            employees=employees,
            total_gross=totals.total_gross,
            total_net=totals.total_net,
            total_deductions=totals.total_deductions,
        )

        if current is None:
            master = PayrollSubmission(
                month=0,
                year=0,
                status=PayrollStatus.MASTER,
                submitted_by=sanitize_input(actor or '', max_length=200),
                submitted_at=self.clock(),
                **changes,
            )
            submissions.append(master)
            self.store.save(submissions)
        else:
            master = replace(current, version=current.version + 1, **changes)
            self._store_replacing(submissions, master)

        logger.info("Master payroll %s saved by %s (%d employees)", master.id, actor, len(employees))
        return master

    def create_from_master(self, month: int, year: int, actor: str,
                           submit: bool = False) -> PayrollSubmission:
        """New monthly payroll seeded with a copy of the master roster."""
        master = self.get_master()
        if master is None:
            raise PayrollValidationError("No master payroll has been set up")

        # Fresh entry ids so edits to the month never touch the template
        employees = [replace(e, entry_id=new_id()) for e in master.employees]
        return self.create_submission(month, year, employees, prepared_by=actor, submit=submit)

    def assign_month_from_master(self, actor: str) -> Optional[PayrollSubmission]:
        """
        Draft the current month's payroll from the master, unless the month
        already has an active payroll or no master exists.
        """
        now = self.clock()
        if self.find_active(now.month, now.year) is not None:
            logger.info("Payroll for %s already exists, nothing assigned",
                        f"{calendar.month_name[now.month]} {now.year}")
            return None
        if self.get_master() is None:
            logger.info("No master payroll found, nothing assigned")
            return None
        return self.create_from_master(now.month, now.year, actor)

    # ── Transitions ──

    def submit(self, submission_id: str, actor: str,
               expected_version: Optional[int] = None) -> PayrollSubmission:
        def apply(current):
            self._check_roster(current.employees)
            return dict(
                submitted_by=current.submitted_by or actor,
                submitted_at=self.clock(),
            )

        return self._transition(submission_id, PayrollStatus.SUBMITTED, "submit", actor, apply,
                                expected_version)

    def approve(self, submission_id: str, approver: str, comments: Optional[str] = None,
                expected_version: Optional[int] = None) -> PayrollSubmission:
        def apply(current):
            return dict(
                approved_by=approver,
                approved_at=self.clock(),
                approval_comments=sanitize_input(comments) if comments else None,
            )

        return self._transition(submission_id, PayrollStatus.APPROVED, "approve", approver, apply,
                                expected_version)

    def reject(self, submission_id: str, approver: str, reason: Optional[str],
               expected_version: Optional[int] = None) -> PayrollSubmission:
        reason = sanitize_input(reason or '')

        def apply(current):
            if not reason:
                raise PayrollValidationError("A rejection reason is required")
            return dict(
                rejected_by=approver,
                rejected_at=self.clock(),
                rejection_reason=reason,
            )

        return self._transition(submission_id, PayrollStatus.REJECTED, "reject", approver, apply,
                                expected_version)

    def mark_paid(self, submission_id: str, actor: str,
                  expected_version: Optional[int] = None) -> PayrollSubmission:
        def apply(current):
            return dict(paid_at=self.clock())

        return self._transition(submission_id, PayrollStatus.PAID, "mark as paid", actor, apply,
                                expected_version)

    def delete(self, submission_id: str, actor: str,
               expected_version: Optional[int] = None) -> None:
        submissions = self.store.list()
        current = self._find(submissions, submission_id)
        self._check_version(current, expected_version)
        if current.status not in DELETABLE_STATUSES:
            raise InvalidTransitionError(current, "delete")

        self.store.save([s for s in submissions if s.id != submission_id])
        logger.info("Payroll %s for %s deleted by %s", current.id, current.period_label, actor)

    # ── Internals ──

    def _transition(self, submission_id, target, action, actor, apply, expected_version):
        submissions = self.store.list()
        current = self._find(submissions, submission_id)
        self._check_version(current, expected_version)

        if target not in TRANSITIONS[current.status] or current.status == PayrollStatus.REJECTED:
            logger.warning("Refused %s on payroll %s (%s) by %s",
                           action, current.id, current.status.value, actor)
            raise InvalidTransitionError(current, action)

        changes = apply(current)
        updated = replace(current, status=target, version=current.version + 1, **changes)
        self._store_replacing(submissions, updated)
        logger.info("Payroll %s %s → %s by %s",
                    updated.id, current.status.value, target.value, actor)
        return updated

    def _store_replacing(self, submissions, updated):
        self.store.save([updated if s.id == updated.id else s for s in submissions])

    @staticmethod
    def _find(submissions, submission_id) -> PayrollSubmission:
        for submission in submissions:
            if submission.id == submission_id:
                return submission
        raise SubmissionNotFoundError(submission_id)

    @staticmethod
    def _find_active(submissions, month, year, exclude_id=None) -> Optional[PayrollSubmission]:
        for submission in submissions:
            if submission.id == exclude_id:
                continue
            if submission.status in (PayrollStatus.REJECTED, PayrollStatus.MASTER):
                continue
            if submission.period == (month, year):
                return submission
        return None

    @staticmethod
    def _find_master(submissions) -> Optional[PayrollSubmission]:
        for submission in submissions:
            if submission.status == PayrollStatus.MASTER:
                return submission
        return None

    @staticmethod
    def _check_roster(employees):
        if not employees:
            raise PayrollValidationError("Add at least one employee to the payroll")
        for emp in employees:
            validate_employee(emp, require_basic=False)

    @staticmethod
    def _check_version(current, expected_version):
        if expected_version is not None and current.version != expected_version:
            raise ConcurrentModificationError(current, expected_version)
