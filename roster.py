"""
Naira Payroll — Roster seeding
Maps active employee records from the HR roster into payroll entries.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from payroll_engine import PayrollEmployee
from utils import parse_number

logger = logging.getLogger("naira_payroll")

KOBO = Decimal('0.01')
HUNDRED = Decimal('100')
MONTHS_PER_YEAR = Decimal('12')

PERMANENT = "permanent"

AMOUNT_FIELDS = (
    "annual_gross", "atm_count", "rate_per_atm",
    "basic_percent", "housing_percent", "transport_percent", "others_percent",
    "loan", "hmo",
)


class RosterRecord(BaseModel):
    """One employee record as exported by the HR roster (camelCase JSON)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    employee_id: str = Field("", alias="employeeId")
    name: str = ""
    department: str = ""
    role: str = ""
    status: str = ""  # only "active" records are seeded
    employee_type: str = Field(PERMANENT, alias="employeeType")

    # Permanent staff: annual gross split by percentage
    annual_gross: Decimal = Field(Decimal('0'), alias="annualGross")
    basic_percent: Decimal = Field(Decimal('0'), alias="basicPercent")
    housing_percent: Decimal = Field(Decimal('0'), alias="housingPercent")
    transport_percent: Decimal = Field(Decimal('0'), alias="transportPercent")
    others_percent: Decimal = Field(Decimal('0'), alias="othersPercent")

    # Unit-based staff: paid per ATM serviced
    atm_count: Decimal = Field(Decimal('0'), alias="atmCount")
    rate_per_atm: Decimal = Field(Decimal('0'), alias="ratePerAtm")

    loan: Decimal = Decimal('0')
    hmo: Decimal = Decimal('0')

    @field_validator("id", "employee_id", "name", "department", "role", "status", "employee_type",
                     mode="before")
    @classmethod
    def blank_text(cls, value):
        return "" if value is None else str(value).strip()

    @field_validator(*AMOUNT_FIELDS, mode="before")
    @classmethod
    def parse_amount(cls, value):
        if value is None or value == "":
            return Decimal('0')
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return value
        parsed = parse_number(value)
        if parsed is None:
            raise ValueError(f"not a valid amount: {value!r}")
        return parsed

    @property
    def is_permanent(self) -> bool:
        return self.employee_type.lower() == PERMANENT

    @property
    def is_active(self) -> bool:
        return self.status.lower() == "active"

    @property
    def monthly_gross(self) -> Decimal:
        if self.is_permanent:
            return self.annual_gross / MONTHS_PER_YEAR
        return self.atm_count * self.rate_per_atm


def _kobo(amount: Decimal) -> Decimal:
    return amount.quantize(KOBO, rounding=ROUND_HALF_UP)


def to_payroll_employee(record: RosterRecord) -> PayrollEmployee:
    """Split a roster record's monthly gross into the four payroll earnings fields."""
    monthly_gross = record.monthly_gross

    if record.is_permanent:
        split = (record.basic_percent + record.housing_percent
                 + record.transport_percent + record.others_percent)
        if split != HUNDRED:
            logger.warning("Salary split for %s adds up to %s%%, not 100%%",
                           record.employee_id or record.name, split)
        basic = _kobo(monthly_gross * record.basic_percent / HUNDRED)
        housing = _kobo(monthly_gross * record.housing_percent / HUNDRED)
        transport = _kobo(monthly_gross * record.transport_percent / HUNDRED)
        others = _kobo(monthly_gross * record.others_percent / HUNDRED)
    else:
        # Unit-based pay has no basic/housing/transport split
        basic = housing = transport = Decimal('0')
        others = _kobo(monthly_gross)

    return PayrollEmployee(
        employee_id=record.employee_id,
        name=record.name,
        department=record.department,
        position=record.role,
        basic_salary=basic,
        housing_allowance=housing,
        transport_allowance=transport,
        other_allowances=others,
        loan=record.loan,
        advance=Decimal('0'),
        other_deductions=record.hmo,
    )


def seed_roster(records: Iterable[Union[RosterRecord, dict]]) -> List[PayrollEmployee]:
    """Payroll entries for every active record, in roster order."""
    employees = []
    for raw in records:
        record = raw if isinstance(raw, RosterRecord) else RosterRecord.model_validate(raw)
        if not record.is_active:
            continue
        employees.append(to_payroll_employee(record))

    logger.info("Seeded %d payroll entries from roster", len(employees))
    return employees
