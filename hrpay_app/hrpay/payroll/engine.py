from dataclasses import dataclass, fields, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from hrpay.core.config import settings
from hrpay.core.errors import InvalidInput
from hrpay.tax.payroll import HUNDRED, StatutoryRates, TaxBracket, calculate_progressive_tax, to_decimal

CENTS = Decimal("0.01")

@dataclass(frozen=True)
class CompensationInput:
    """One employee's pay components for a period. Amounts must be finite and non-negative."""
    base_salary: Decimal
    housing_allowance: Decimal = Decimal("0")
    transport_allowance: Decimal = Decimal("0")
    lunch_allowance: Decimal = Decimal("0")
    other_allowances: Decimal = Decimal("0")
    bonuses: Decimal = Decimal("0")
    other_deductions: Decimal = Decimal("0")

    def __post_init__(self):
        for f in fields(self):
            amount = to_decimal(getattr(self, f.name), f.name, error=InvalidInput)
            if not amount.is_finite():
                raise InvalidInput(f"{f.name} must be a finite amount", payload={"field": f.name})
            if amount < 0:
                raise InvalidInput(f"{f.name} cannot be negative ({amount})", payload={"field": f.name})
            object.__setattr__(self, f.name, amount)

@dataclass(frozen=True)
class PayrollCalculation:
    base_salary: Decimal
    housing_allowance: Decimal
    transport_allowance: Decimal
    lunch_allowance: Decimal
    other_allowances: Decimal
    total_allowances: Decimal
    bonuses: Decimal
    gross_pay: Decimal
    napsa_employee: Decimal
    napsa_employer: Decimal
    nhima_employee: Decimal
    nhima_employer: Decimal
    taxable_income: Decimal
    paye: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    def to_dict(self) -> Dict[str, Decimal]:
        return asdict(self)

def calculate_payroll(comp: CompensationInput, rates: StatutoryRates, brackets: List[TaxBracket]) -> PayrollCalculation:
    total_allowances = (comp.housing_allowance + comp.transport_allowance
                        + comp.lunch_allowance + comp.other_allowances)
    gross = comp.base_salary + total_allowances + comp.bonuses

    napsa_employee = gross * rates.napsa_employee / HUNDRED
    napsa_employer = gross * rates.napsa_employer / HUNDRED
    nhima_employee = gross * rates.nhima_employee / HUNDRED
    nhima_employer = gross * rates.nhima_employer / HUNDRED

    # only the employee pension contribution is pre-tax
    taxable = gross - napsa_employee
    paye = calculate_progressive_tax(taxable, brackets)

    deductions = napsa_employee + nhima_employee + paye + comp.other_deductions
    return PayrollCalculation(
        base_salary=comp.base_salary,
        housing_allowance=comp.housing_allowance,
        transport_allowance=comp.transport_allowance,
        lunch_allowance=comp.lunch_allowance,
        other_allowances=comp.other_allowances,
        total_allowances=total_allowances,
        bonuses=comp.bonuses,
        gross_pay=gross,
        napsa_employee=napsa_employee,
        napsa_employer=napsa_employer,
        nhima_employee=nhima_employee,
        nhima_employer=nhima_employer,
        taxable_income=taxable,
        paye=paye,
        other_deductions=comp.other_deductions,
        total_deductions=deductions,
        net_pay=gross - deductions,
    )

def format_currency(amount, symbol: Optional[str] = None) -> str:
    value = to_decimal(amount, "amount").quantize(CENTS, rounding=ROUND_HALF_UP)
    symbol = settings.CURRENCY_SYMBOL if symbol is None else symbol
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"
