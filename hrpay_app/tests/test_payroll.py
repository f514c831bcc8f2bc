import dataclasses
import itertools
import pytest
from decimal import Decimal

from hrpay.core.errors import InvalidConfiguration, InvalidInput
from hrpay.payroll.engine import CompensationInput, calculate_payroll, format_currency
from hrpay.tax.payroll import StatutoryRates

RATES = StatutoryRates(napsa_employee=5, napsa_employer=5, nhima_employee=1, nhima_employer=1)
ALLOWANCES = ["housing_allowance", "transport_allowance", "lunch_allowance", "other_allowances"]

def test_full_breakdown(brackets):
    comp = CompensationInput(base_salary=10000, housing_allowance=2000, transport_allowance=1000,
                             lunch_allowance=500, other_allowances=0, bonuses=0, other_deductions=0)
    calc = calculate_payroll(comp, RATES, brackets)
    assert calc.total_allowances == Decimal("3500")
    assert calc.gross_pay == Decimal("13500")
    assert calc.napsa_employee == Decimal("675")
    assert calc.napsa_employer == Decimal("675")
    assert calc.nhima_employee == Decimal("135")
    assert calc.nhima_employer == Decimal("135")
    assert calc.taxable_income == Decimal("12825")
    assert calc.paye == Decimal("2371.25")
    assert calc.total_deductions == Decimal("3181.25")
    assert calc.net_pay == Decimal("10318.75")
    assert calc.net_pay == calc.gross_pay - (calc.napsa_employee + calc.nhima_employee + calc.paye)

def test_base_only_gross_equals_base(brackets):
    calc = calculate_payroll(CompensationInput(base_salary=7000), RATES, brackets)
    assert calc.gross_pay == Decimal("7000")
    assert calc.total_deductions == calc.napsa_employee + calc.nhima_employee + calc.paye

def test_allowance_total_is_independent_of_order(brackets):
    amounts = [Decimal("1234.5678"), Decimal("0.0001"), Decimal("98765.43"), Decimal("17.05")]
    expected = Decimal("1234.5678") + Decimal("0.0001") + Decimal("98765.43") + Decimal("17.05")
    for order in itertools.permutations(amounts):
        comp = CompensationInput(base_salary=1000, **dict(zip(ALLOWANCES, order)))
        calc = calculate_payroll(comp, RATES, brackets)
        assert calc.total_allowances == expected == Decimal("100017.0479")
        assert calc.gross_pay == Decimal("1000") + expected

def test_bonuses_count_towards_gross_not_allowances(brackets):
    calc = calculate_payroll(CompensationInput(base_salary=5000, housing_allowance=500, bonuses=1000),
                             RATES, brackets)
    assert calc.total_allowances == Decimal("500")
    assert calc.gross_pay == Decimal("6500")

def test_employer_contributions_do_not_reduce_net(brackets):
    comp = CompensationInput(base_salary=8000)
    low = calculate_payroll(comp, RATES, brackets)
    high = calculate_payroll(comp, StatutoryRates(5, 20, 1, 10), brackets)
    assert high.napsa_employer > low.napsa_employer
    assert high.net_pay == low.net_pay

def test_other_deductions_can_make_net_negative(brackets):
    calc = calculate_payroll(CompensationInput(base_salary=3000, other_deductions=5000), RATES, brackets)
    assert calc.paye == 0
    assert calc.total_deductions == Decimal("5180")
    assert calc.net_pay == Decimal("-2180")

def test_no_intermediate_rounding(brackets):
    calc = calculate_payroll(CompensationInput(base_salary="1234.567"), RATES, brackets)
    assert calc.napsa_employee == Decimal("61.72835")
    assert calc.nhima_employee == Decimal("12.34567")

def test_empty_brackets_propagate():
    with pytest.raises(InvalidConfiguration):
        calculate_payroll(CompensationInput(base_salary=10000), RATES, [])

@pytest.mark.parametrize("field, value", [
    ("base_salary", -1),
    ("housing_allowance", "-0.01"),
    ("bonuses", float("nan")),
    ("other_deductions", float("inf")),
    ("lunch_allowance", "abc"),
])
def test_invalid_compensation_rejected(field, value):
    kwargs = {"base_salary": 1000, field: value}
    with pytest.raises(InvalidInput):
        CompensationInput(**kwargs)

def test_calculation_is_immutable(brackets):
    calc = calculate_payroll(CompensationInput(base_salary=1000), RATES, brackets)
    with pytest.raises(dataclasses.FrozenInstanceError):
        calc.net_pay = Decimal("0")

def test_calculation_to_dict(brackets):
    data = calculate_payroll(CompensationInput(base_salary=1000), RATES, brackets).to_dict()
    assert data["gross_pay"] == Decimal("1000")
    assert "taxable_income" in data

def test_format_currency():
    assert format_currency(Decimal("1234.5")) == "K1,234.50"
    assert format_currency(Decimal("-1234.567")) == "-K1,234.57"
    assert format_currency(0) == "K0.00"
    assert format_currency(Decimal("0.005")) == "K0.01"
    assert format_currency(10, symbol="ZMW ") == "ZMW 10.00"
