"""
Nigerian Payroll Engine
Monthly payroll breakdown: CRA, pension, NHF and progressive PAYE
"""

import calendar
import functools
from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from dataclasses import dataclass, field, asdict
from typing import Dict, Any

from db import new_id
from utils import fmt

ZERO = Decimal('0')
WHOLE_NAIRA = Decimal('1')
NAN = Decimal('NaN')

# Calculator arithmetic: wide precision, nothing trapped, so bad input ends up NaN
CALC_CONTEXT = Context(prec=64, rounding=ROUND_HALF_UP, traps=[])

# PAYE bands: (band width, rate). None = unbounded top band.
TAX_BANDS = [
    (Decimal('300000'), Decimal('0.07')),     # First ₦300k: 7%
    (Decimal('300000'), Decimal('0.11')),     # Next ₦300k: 11%
    (Decimal('500000'), Decimal('0.15')),     # Next ₦500k: 15%
    (Decimal('500000'), Decimal('0.19')),     # Next ₦500k: 19%
    (Decimal('1600000'), Decimal('0.21')),    # Next ₦1.6M: 21%
    (None, Decimal('0.24')),                  # Above ₦3.2M: 24%
]

# Consolidated Relief Allowance
CRA_FIXED_AMOUNT = Decimal('200000')
CRA_GROSS_RATE = Decimal('0.20')
CRA_MINIMUM_RATE = Decimal('0.01')

PENSION_EMPLOYEE_RATE = Decimal('0.08')  # 8%
PENSION_EMPLOYER_RATE = Decimal('0.10')  # 10%
NHF_RATE = Decimal('0.025')  # 2.5% of basic

AMOUNT_FIELDS = (
    'basic_salary', 'housing_allowance', 'transport_allowance', 'other_allowances',
    'loan', 'advance', 'other_deductions',
)


def to_decimal(value) -> Decimal:
    """Coerce int/float/str/Decimal to Decimal. None counts as zero, junk as NaN."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        return NAN


def round_naira(amount: Decimal) -> Decimal:
    """Round to whole Naira, half away from zero. NaN and infinity pass through."""
    if not amount.is_finite():
        return amount
    return amount.quantize(WHOLE_NAIRA, rounding=ROUND_HALF_UP, context=CALC_CONTEXT.copy())


def calculator(func):
    """Run func under CALC_CONTEXT so it never raises on numeric input."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        with localcontext(CALC_CONTEXT):
            return func(*args, **kwargs)
    return wrapper


@dataclass
class PayrollEmployee:
    """One roster entry for a pay period"""
    employee_id: str
    name: str
    department: str = ''
    position: str = ''
    basic_salary: Decimal = ZERO
    housing_allowance: Decimal = ZERO
    transport_allowance: Decimal = ZERO
    other_allowances: Decimal = ZERO

    # Deductions
    loan: Decimal = ZERO
    advance: Decimal = ZERO
    other_deductions: Decimal = ZERO

    entry_id: str = field(default_factory=new_id)

    def __post_init__(self):
        for name in AMOUNT_FIELDS:
            setattr(self, name, to_decimal(getattr(self, name)))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for name in AMOUNT_FIELDS:
            data[name] = str(data[name])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PayrollEmployee':
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass(frozen=True)
class PayrollBreakdown:
    """Itemized monthly payroll for one employee"""
    # Earnings
    basic_salary: Decimal
    housing_allowance: Decimal
    transport_allowance: Decimal
    other_allowances: Decimal
    gross_salary: Decimal

    # Statutory Deductions
    pension_employee: Decimal  # 8%
    pension_employer: Decimal  # 10%, employer cost only
    nhf: Decimal  # 2.5% of basic
    cra: Decimal
    paye: Decimal

    # Other Deductions
    loan: Decimal
    advance: Decimal
    other_deductions: Decimal
    total_deductions: Decimal

    # Net Pay
    net_pay: Decimal

    taxable_income: Decimal


@calculator
def calculate_cra(gross_income) -> Decimal:
    """
    Consolidated Relief Allowance:
    higher of (₦200,000 + 20% of gross) or 1% of gross. Not rounded.
    """
    gross = to_decimal(gross_income)
    if gross.is_nan():
        return gross
    option1 = CRA_FIXED_AMOUNT + CRA_GROSS_RATE * gross
    option2 = CRA_MINIMUM_RATE * gross
    return max(option1, option2)


@calculator
def calculate_paye(taxable_income) -> Decimal:
    """
    PAYE over the progressive bands.
    Each band value is the band WIDTH applied to successive slices of income.
    """
    remaining_income = to_decimal(taxable_income)
    if remaining_income.is_nan():
        return remaining_income
    if remaining_income <= 0:
        return ZERO

    total_tax = ZERO
    for band_width, tax_rate in TAX_BANDS:
        if remaining_income <= 0:
            break
        taxable_in_band = remaining_income if band_width is None else min(remaining_income, band_width)
        total_tax += taxable_in_band * tax_rate
        remaining_income -= taxable_in_band

    return round_naira(total_tax)


@calculator
def calculate_payroll_breakdown(employee: PayrollEmployee) -> PayrollBreakdown:
    """
    Calculate complete payroll for an employee.
    CRA and taxable income are left unrounded; pension, NHF and PAYE are rounded.
    """
    # 1. Gross salary
    basic = to_decimal(employee.basic_salary)
    housing = to_decimal(employee.housing_allowance)
    transport = to_decimal(employee.transport_allowance)
    other = to_decimal(employee.other_allowances)
    gross = basic + housing + transport + other

    # 2. Pensionable income excludes other allowances
    pensionable_income = basic + housing + transport

    # 3. Pension contributions
    pension_employee = round_naira(pensionable_income * PENSION_EMPLOYEE_RATE)
    pension_employer = round_naira(pensionable_income * PENSION_EMPLOYER_RATE)

    # 4. NHF
    nhf = round_naira(basic * NHF_RATE)

    # 5. CRA
    cra = calculate_cra(gross)

    # 6. Taxable income
    taxable_income = gross - pension_employee - nhf - cra

    # 7. PAYE
    paye = calculate_paye(taxable_income)

    # 8. Total deductions (employer pension excluded)
    loan = to_decimal(employee.loan)
    advance = to_decimal(employee.advance)
    other_deductions = to_decimal(employee.other_deductions)
    total_deductions = pension_employee + nhf + paye + loan + advance + other_deductions

    # 9. Net pay
    net_pay = gross - total_deductions

    return PayrollBreakdown(
        basic_salary=basic,
        housing_allowance=housing,
        transport_allowance=transport,
        other_allowances=other,
        gross_salary=gross,
        pension_employee=pension_employee,
        pension_employer=pension_employer,
        nhf=nhf,
        cra=cra,
        paye=paye,
        loan=loan,
        advance=advance,
        other_deductions=other_deductions,
        total_deductions=total_deductions,
        net_pay=net_pay,
        taxable_income=taxable_income,
    )


def generate_payslip(employee: PayrollEmployee, month: int, year: int) -> Dict[str, Any]:
    """Payslip data for one employee and period"""
    breakdown = calculate_payroll_breakdown(employee)

    return {
        'employee': {
            'id': employee.employee_id,
            'name': employee.name,
            'department': employee.department,
            'position': employee.position,
        },
        'period': f"{calendar.month_name[month]} {year}",
        'earnings': {
            'basic': breakdown.basic_salary,
            'housing': breakdown.housing_allowance,
            'transport': breakdown.transport_allowance,
            'others': breakdown.other_allowances,
            'gross': breakdown.gross_salary,
        },
        'deductions': {
            'pension': breakdown.pension_employee,
            'nhf': breakdown.nhf,
            'paye': breakdown.paye,
            'loan': breakdown.loan,
            'advance': breakdown.advance,
            'others': breakdown.other_deductions,
            'total': breakdown.total_deductions,
        },
        'net_pay': breakdown.net_pay,
        'employer_contributions': {
            'pension': breakdown.pension_employer,
        },
    }


def render_payslip(payslip: Dict[str, Any]) -> str:
    """Generate formatted payslip"""
    emp = payslip['employee']
    earnings = payslip['earnings']
    deductions = payslip['deductions']

    lines = [
        "=" * 60,
        f"PAYSLIP - {emp['name']}",
        f"Employee ID: {emp['id']}",
        f"Department: {emp['department'] or 'N/A'}",
        f"Position: {emp['position'] or 'N/A'}",
        f"Period: {payslip['period']}",
        "=" * 60,
        "",
        "EARNINGS:",
        f"  Basic Salary:           {fmt(earnings['basic'])}",
        f"  Housing Allowance:      {fmt(earnings['housing'])}",
        f"  Transport Allowance:    {fmt(earnings['transport'])}",
        f"  Other Allowances:       {fmt(earnings['others'])}",
        f"  {'─' * 58}",
        f"  GROSS SALARY:           {fmt(earnings['gross'])}",
        "",
        "DEDUCTIONS:",
        f"  Pension (8%):           {fmt(deductions['pension'])}",
        f"  NHF (2.5%):             {fmt(deductions['nhf'])}",
        f"  PAYE Tax:               {fmt(deductions['paye'])}",
    ]

    # Loan/advance lines only when present
    if deductions['loan']:
        lines.append(f"  Loan:                   {fmt(deductions['loan'])}")
    if deductions['advance']:
        lines.append(f"  Advance:                {fmt(deductions['advance'])}")
    if deductions['others']:
        lines.append(f"  Other Deductions:       {fmt(deductions['others'])}")

    lines.extend([
        f"  {'─' * 58}",
        f"  TOTAL DEDUCTIONS:       {fmt(deductions['total'])}",
        "",
        "=" * 60,
        f"NET PAY:                  {fmt(payslip['net_pay'])}",
        "=" * 60,
        "",
        "EMPLOYER CONTRIBUTIONS:",
        f"  Pension (10%):          {fmt(payslip['employer_contributions']['pension'])}",
    ])

    return "\n".join(lines)


# Example usage
if __name__ == "__main__":
    employee = PayrollEmployee(
        employee_id="EMP001",
        name="Ngozi Adeyemi",
        department="Operations",
        position="Field Engineer",
        basic_salary=Decimal('200000'),
        housing_allowance=Decimal('50000'),
        transport_allowance=Decimal('30000'),
    )

    print(render_payslip(generate_payslip(employee, 1, 2026)))
