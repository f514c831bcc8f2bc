"""
Statutory tax tables and the progressive PAYE calculation.

Brackets follow the strict-lower / inclusive-upper convention: an income
equal to a bracket's ``min_amount`` is taxed in the bracket below it.
"""
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

from hrpay.core.config import settings
from hrpay.core.errors import InvalidConfiguration, InvalidInput

HUNDRED = Decimal("100")

def to_decimal(value, field_name: str = "value", error=InvalidConfiguration) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise error(f"{field_name} is not a number: {value!r}", payload={"field": field_name})

def _check_rate(name: str, rate: Decimal):
    if not rate.is_finite() or rate < 0 or rate > HUNDRED:
        raise InvalidConfiguration(f"{name} must be a percentage between 0 and 100, got {rate}",
                                   payload={"field": name, "rate": str(rate)})

@dataclass(frozen=True)
class TaxBracket:
    min_amount: Decimal
    max_amount: Optional[Decimal]
    rate: Decimal
    fixed_amount: Decimal = Decimal("0")

    def __post_init__(self):
        object.__setattr__(self, "min_amount", to_decimal(self.min_amount, "min_amount"))
        if self.max_amount is not None:
            object.__setattr__(self, "max_amount", to_decimal(self.max_amount, "max_amount"))
        object.__setattr__(self, "rate", to_decimal(self.rate, "rate"))
        object.__setattr__(self, "fixed_amount", to_decimal(self.fixed_amount, "fixed_amount"))

    @property
    def upper(self) -> Decimal:
        return self.max_amount if self.max_amount is not None else Decimal("Infinity")

    def contains(self, amount: Decimal) -> bool:
        return self.min_amount < amount <= self.upper

    def tax_for(self, amount: Decimal) -> Decimal:
        return self.fixed_amount + (amount - self.min_amount) * self.rate / HUNDRED

@dataclass(frozen=True)
class StatutoryRates:
    """Contribution percentages applied to gross pay."""
    napsa_employee: Decimal
    napsa_employer: Decimal
    nhima_employee: Decimal
    nhima_employer: Decimal

    def __post_init__(self):
        for f in fields(self):
            rate = to_decimal(getattr(self, f.name), f.name)
            _check_rate(f.name, rate)
            object.__setattr__(self, f.name, rate)

    @classmethod
    def names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def defaults(cls) -> "StatutoryRates":
        return cls(
            napsa_employee=settings.NAPSA_EMPLOYEE_RATE,
            napsa_employer=settings.NAPSA_EMPLOYER_RATE,
            nhima_employee=settings.NHIMA_EMPLOYEE_RATE,
            nhima_employer=settings.NHIMA_EMPLOYER_RATE,
        )

def default_brackets() -> List[TaxBracket]:
    return [TaxBracket(lo, hi, rate, fixed) for lo, hi, rate, fixed in settings.PAYE_BRACKETS]

def calculate_progressive_tax(taxable_income, brackets: Iterable[TaxBracket]) -> Decimal:
    """
    Tax owed on ``taxable_income`` under a progressive bracket table.

    The matching bracket contributes its fixed amount plus its marginal rate on
    the portion above its minimum. Income above every bounded bracket uses the
    highest bracket; income at or below the lowest minimum is untaxed.

    Raises:
        InvalidConfiguration: if ``brackets`` is empty.
        InvalidInput: if ``taxable_income`` is not a finite number.
    """
    ordered = sorted(brackets, key=lambda b: b.min_amount)
    if not ordered:
        raise InvalidConfiguration("No PAYE brackets configured", code="NO_TAX_BRACKETS")
    income = to_decimal(taxable_income, "taxable_income", error=InvalidInput)
    if not income.is_finite():
        raise InvalidInput(f"taxable_income must be finite, got {income}", payload={"field": "taxable_income"})

    for bracket in ordered:
        if bracket.contains(income):
            return bracket.tax_for(income)

    highest = ordered[-1]
    if income > highest.min_amount:
        return highest.tax_for(income)
    return Decimal("0")

def validate_brackets(brackets: Iterable[TaxBracket]) -> List[TaxBracket]:
    """Check a bracket table is contiguous and well formed; returns it sorted."""
    ordered = sorted(brackets, key=lambda b: b.min_amount)
    if not ordered:
        raise InvalidConfiguration("No PAYE brackets configured", code="NO_TAX_BRACKETS")

    for i, bracket in enumerate(ordered):
        _check_rate("rate", bracket.rate)
        if bracket.min_amount < 0 or bracket.fixed_amount < 0:
            raise InvalidConfiguration(f"Bracket {i + 1} has a negative amount",
                                       payload={"bracket": i + 1})
        is_last = i == len(ordered) - 1
        if bracket.max_amount is None:
            if not is_last:
                raise InvalidConfiguration(f"Only the top bracket may be unbounded (bracket {i + 1})",
                                           payload={"bracket": i + 1})
            continue
        if bracket.max_amount <= bracket.min_amount:
            raise InvalidConfiguration(f"Bracket {i + 1} max must exceed its min",
                                       payload={"bracket": i + 1})
        if not is_last and ordered[i + 1].min_amount != bracket.max_amount:
            raise InvalidConfiguration(
                f"Brackets {i + 1} and {i + 2} are not contiguous "
                f"({bracket.max_amount} != {ordered[i + 1].min_amount})",
                payload={"bracket": i + 1},
            )
    return ordered
