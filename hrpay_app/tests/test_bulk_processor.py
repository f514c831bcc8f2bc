import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy.exc import SQLAlchemyError

from hrpay.core.errors import InvalidConfiguration, InvalidInput
from hrpay.db.models import PayrollRecord
from hrpay.employees.manager import EmployeeManager
from hrpay.payroll.bulk_processor import PayrollRunProcessor
from hrpay.payroll.engine import CompensationInput, calculate_payroll
from hrpay.tax.config_manager import StatutoryConfigManager
from hrpay.tax.payroll import StatutoryRates

@pytest.fixture
def staff(db, company, brackets):
    StatutoryConfigManager(db).replace_brackets(brackets, effective_from=date(2024, 1, 1))
    em = EmployeeManager(db, company.id)
    alice = em.add_employee("Alice", "Banda", position="Manager")
    em.add_contract(alice.id, "Manager", date(2024, 1, 1), 10000,
                    housing_allowance=2000, transport_allowance=1000, lunch_allowance=500)
    bob = em.add_employee("Bob", "Mwale", position="Clerk", salary=4000)
    carol = em.add_employee("Carol", "Sakala")
    return {"alice": alice, "bob": bob, "carol": carol}

def _record(db, employee):
    return db.query(PayrollRecord).filter_by(employee_id=employee.id).one()

def test_run_payroll_persists_records(db, company, staff, january):
    result = PayrollRunProcessor(db, company.id).run_payroll(*january)
    assert result.success
    assert len(result.records) == 2
    assert [s["employee_id"] for s in result.skipped] == [staff["carol"].id]
    assert result.errors == [] and result.warnings == []

    alice = _record(db, staff["alice"])
    assert alice.gross_pay == Decimal("13500")
    assert alice.napsa_employee == Decimal("675")
    assert alice.nhima_employee == Decimal("135")
    assert alice.paye == Decimal("2371.25")
    assert alice.tax == alice.paye
    assert alice.deductions == Decimal("3181.25")
    assert alice.net_pay == Decimal("10318.75")
    assert alice.payment_status == "pending"
    assert alice.pay_period_end == date(2025, 1, 31)

    bob = _record(db, staff["bob"])
    assert bob.base_salary == Decimal("4000")
    assert bob.paye == 0
    assert bob.net_pay == Decimal("3760")

    assert result.summary["total_employees"] == 2
    assert result.summary["totals"]["gross"] == Decimal("17500")

def test_preview_does_not_persist(db, company, staff):
    preview = PayrollRunProcessor(db, company.id).preview()
    assert preview == {"employees": 2, "total_gross": Decimal("17500"), "total_net": Decimal("14078.75")}
    assert db.query(PayrollRecord).count() == 0

def test_run_for_selected_employees(db, company, staff, january):
    result = PayrollRunProcessor(db, company.id).run_payroll(*january, employee_ids=[staff["bob"].id])
    assert [r.employee_id for r in result.records] == [staff["bob"].id]

def test_negative_net_pay_is_kept_and_flagged(db, company, staff, january):
    adjustments = {staff["bob"].id: {"other_deductions": 5000}}
    result = PayrollRunProcessor(db, company.id).run_payroll(*january, adjustments=adjustments)
    assert [w["employee_id"] for w in result.warnings] == [staff["bob"].id]
    assert _record(db, staff["bob"]).net_pay == Decimal("-1240")

def test_bad_adjustment_only_skips_that_employee(db, company, staff, january):
    adjustments = {staff["alice"].id: {"bonuses": -100}}
    result = PayrollRunProcessor(db, company.id).run_payroll(*january, adjustments=adjustments)
    assert result.success
    assert [e["employee_id"] for e in result.errors] == [staff["alice"].id]
    assert [r.employee_id for r in result.records] == [staff["bob"].id]

def test_missing_brackets_abort_run(db, company, january):
    em = EmployeeManager(db, company.id)
    em.add_employee("Bob", "Mwale", salary=4000)
    with pytest.raises(InvalidConfiguration):
        PayrollRunProcessor(db, company.id).run_payroll(*january)
    assert db.query(PayrollRecord).count() == 0

def test_inverted_period_rejected(db, company, staff):
    with pytest.raises(InvalidInput):
        PayrollRunProcessor(db, company.id).run_payroll(date(2025, 1, 31), date(2025, 1, 1))

def test_insert_failure_rolls_back(db, company, staff, january, monkeypatch):
    def boom():
        raise SQLAlchemyError("insert failed")
    monkeypatch.setattr(db, "commit", boom)
    result = PayrollRunProcessor(db, company.id).run_payroll(*january)
    assert not result.success
    assert "insert failed" in result.error
    assert result.records == []
    monkeypatch.undo()
    assert db.query(PayrollRecord).count() == 0

def test_status_updates_and_stats(db, company, staff, january):
    processor = PayrollRunProcessor(db, company.id)
    processor.run_payroll(*january)
    alice = _record(db, staff["alice"])
    assert processor.mark_paid([alice.id], payment_date=date(2025, 2, 1)) == 1
    assert alice.payment_status == "paid"
    assert alice.payment_date == date(2025, 2, 1)
    with pytest.raises(InvalidInput):
        processor.update_status([alice.id], "cancelled")

    stats = processor.get_stats()
    assert stats["pending"] == 1 and stats["paid"] == 1
    assert stats["total_payroll"] == Decimal("14078.75")

    assert [r.id for r in processor.list_records(status="paid")] == [alice.id]
    assert [r.employee_id for r in processor.list_records(search="mwale")] == [staff["bob"].id]

def test_stored_amounts_keep_full_precision(db, company, brackets, january):
    StatutoryConfigManager(db).replace_brackets(brackets)
    employee = EmployeeManager(db, company.id).add_employee("Dora", "Phiri", salary=Decimal("1234.567"))
    PayrollRunProcessor(db, company.id).run_payroll(*january)

    expected = calculate_payroll(CompensationInput(base_salary=Decimal("1234.567")),
                                 StatutoryRates.defaults(), brackets)
    db.expire_all()
    record = _record(db, employee)
    assert record.napsa_employee == expected.napsa_employee == Decimal("61.72835")
    assert record.nhima_employee == expected.nhima_employee
    assert record.net_pay == expected.net_pay == Decimal("1160.49298")
