"""
Naira Payroll - Test Configuration

Pytest fixtures shared across the test modules.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from db import InMemoryPayrollStore
from payroll_engine import PayrollEmployee
from payroll_workflow import PayrollWorkflow


class FixedClock:
    """Deterministic clock that advances one minute per call."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        now = self.current
        self.current = now + timedelta(minutes=1)
        return now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 25, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> InMemoryPayrollStore:
    return InMemoryPayrollStore()


@pytest.fixture
def workflow(store, clock) -> PayrollWorkflow:
    return PayrollWorkflow(store, clock=clock)


@pytest.fixture
def engineer() -> PayrollEmployee:
    """Field engineer below the PAYE threshold."""
    return PayrollEmployee(
        employee_id="ATM-0001",
        name="Ngozi Adeyemi",
        department="Operations",
        position="Field Engineer",
        basic_salary=Decimal("200000"),
        housing_allowance=Decimal("50000"),
        transport_allowance=Decimal("30000"),
        other_allowances=Decimal("0"),
    )


@pytest.fixture
def manager() -> PayrollEmployee:
    """Manager with a loan, well into the PAYE bands."""
    return PayrollEmployee(
        employee_id="ATM-0002",
        name="Chidi Okafor",
        department="Finance",
        position="Finance Manager",
        basic_salary=Decimal("900000"),
        housing_allowance=Decimal("300000"),
        transport_allowance=Decimal("150000"),
        other_allowances=Decimal("100000"),
        loan=Decimal("25000"),
        other_deductions=Decimal("7500"),
    )


@pytest.fixture
def roster(engineer, manager):
    return [engineer, manager]
