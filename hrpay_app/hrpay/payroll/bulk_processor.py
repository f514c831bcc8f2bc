"""
Payroll runs: calculate and persist one payroll record per selected employee.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Any, Optional, Iterable
from datetime import date

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..core.errors import InvalidConfiguration, InvalidInput
from ..core.utils import setup_logging, audit_log
from ..db.models import Employee, PayrollRecord
from ..employees.manager import EmployeeManager
from ..tax.config_manager import StatutoryConfigManager
from .engine import PayrollCalculation, calculate_payroll

PAYMENT_STATUSES = ('pending', 'processing', 'paid')

@dataclass
class PayrollRunResult:
    success: bool
    period_start: date
    period_end: date
    records: List[PayrollRecord] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'period_start': self.period_start.isoformat(),
            'period_end': self.period_end.isoformat(),
            'records_created': len(self.records),
            'skipped': self.skipped,
            'errors': self.errors,
            'warnings': self.warnings,
            'summary': self.summary,
            'error': self.error,
        }

class PayrollRunProcessor:
    """Sequential payroll processing for one company."""

    def __init__(self, session, company_id: str, actor: str = "system"):
        self.session = session
        self.company_id = company_id
        self.actor = actor
        self.logger = setup_logging(company_id)
        self.employee_manager = EmployeeManager(session, company_id, actor)
        self.config_manager = StatutoryConfigManager(session, actor)

    def _calculate(
        self,
        employee_ids: Optional[Iterable[str]],
        adjustments: Optional[Dict[str, Dict[str, Any]]],
        as_of: Optional[date] = None
    ):
        """Yield (employee, calculation, problem) for each selected employee."""
        # configuration errors propagate and abort the whole run
        rates = self.config_manager.get_active_rates(as_of)
        brackets = self.config_manager.get_active_brackets()
        if not brackets:
            raise InvalidConfiguration("No active PAYE brackets configured", code="NO_TAX_BRACKETS")

        employees = self.employee_manager.list_employees(employee_ids)
        contracts = self.employee_manager.get_active_contracts([e.id for e in employees])
        adjustments = adjustments or {}

        for employee in employees:
            extra = adjustments.get(employee.id, {})
            try:
                comp = self.employee_manager.resolve_compensation(
                    employee,
                    contracts.get(employee.id),
                    bonuses=extra.get('bonuses', 0),
                    other_deductions=extra.get('other_deductions', 0),
                )
            except InvalidInput as e:
                yield employee, None, {'reason': 'invalid_input', 'message': e.message}
                continue
            if comp is None:
                yield employee, None, {'reason': 'no_salary', 'message': 'No contract or salary on file'}
                continue
            yield employee, calculate_payroll(comp, rates, brackets), None

    def preview(
        self,
        employee_ids: Optional[Iterable[str]] = None,
        adjustments: Optional[Dict[str, Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Totals for a prospective run without persisting anything."""
        total_gross = total_net = Decimal("0")
        count = 0
        for _, calc, problem in self._calculate(employee_ids, adjustments):
            if problem:
                continue
            total_gross += calc.gross_pay
            total_net += calc.net_pay
            count += 1
        return {'employees': count, 'total_gross': total_gross, 'total_net': total_net}

    def run_payroll(
        self,
        period_start: date,
        period_end: date,
        employee_ids: Optional[Iterable[str]] = None,
        adjustments: Optional[Dict[str, Dict[str, Any]]] = None
    ) -> PayrollRunResult:
        """
        Calculate and persist payroll for the selected employees.

        Args:
            period_start: First day of the pay period
            period_end: Last day of the pay period
            employee_ids: Employees to include; all company employees when None
            adjustments: Optional {employee_id: {'bonuses': x, 'other_deductions': y}}

        Raises:
            InvalidConfiguration: when no usable PAYE brackets or rates are configured
            InvalidInput: when the pay period is inverted
        """
        if period_end < period_start:
            raise InvalidInput("Pay period end is before its start",
                               payload={"start": period_start.isoformat(), "end": period_end.isoformat()})

        result = PayrollRunResult(success=False, period_start=period_start, period_end=period_end)
        self.logger.info("Payroll run %s to %s started by %s", period_start, period_end, self.actor)

        for employee, calc, problem in self._calculate(employee_ids, adjustments, as_of=period_end):
            if problem:
                entry = {'employee_id': employee.id, 'name': employee.full_name, **problem}
                if problem['reason'] == 'no_salary':
                    result.skipped.append(entry)
                else:
                    result.errors.append(entry)
                self.logger.warning("Employee %s skipped: %s", employee.id, problem['message'])
                continue

            if calc.net_pay < 0:
                result.warnings.append({
                    'employee_id': employee.id,
                    'name': employee.full_name,
                    'message': f"Negative net pay {calc.net_pay}",
                })
                self.logger.warning("Employee %s has negative net pay %s", employee.id, calc.net_pay)

            result.records.append(self._build_record(employee, calc, period_start, period_end))

        if not result.records:
            result.success = True
            result.summary = self._generate_payroll_summary([], period_start, period_end)
            self.logger.info("Payroll run produced no records")
            return result

        try:
            self.session.add_all(result.records)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            self.logger.exception("Payroll run insert failed")
            result.error = str(e)
            result.records = []
            return result

        result.success = True
        result.summary = self._generate_payroll_summary(result.records, period_start, period_end)
        self.logger.info("Payroll processed for %d employees", len(result.records))
        audit_log(self.company_id, self.actor, "run", "payroll",
                  f"{period_start.isoformat()}_{period_end.isoformat()}",
                  {'records': [r.id for r in result.records], 'skipped': len(result.skipped),
                   'errors': len(result.errors), 'totals': result.summary['totals']})
        return result

    def _build_record(self, employee: Employee, calc: PayrollCalculation, start: date, end: date) -> PayrollRecord:
        return PayrollRecord(
            company_id=self.company_id,
            employee_id=employee.id,
            pay_period_start=start,
            pay_period_end=end,
            base_salary=calc.base_salary,
            housing_allowance=calc.housing_allowance,
            transport_allowance=calc.transport_allowance,
            lunch_allowance=calc.lunch_allowance,
            other_allowances=calc.other_allowances,
            bonuses=calc.bonuses,
            gross_pay=calc.gross_pay,
            napsa_employee=calc.napsa_employee,
            napsa_employer=calc.napsa_employer,
            nhima_employee=calc.nhima_employee,
            nhima_employer=calc.nhima_employer,
            paye=calc.paye,
            other_deductions=calc.other_deductions,
            deductions=calc.total_deductions,
            tax=calc.paye,
            net_pay=calc.net_pay,
            payment_status='pending',
        )

    def _generate_payroll_summary(self, records: List[PayrollRecord], start: date, end: date) -> Dict[str, Any]:
        """Totals and averages for a run."""
        period = f"{start.isoformat()} - {end.isoformat()}"
        if not records:
            return {'period': period, 'total_employees': 0, 'totals': {}}

        def total(attr):
            return sum((Decimal(getattr(r, attr) or 0) for r in records), Decimal("0"))

        totals = {
            'gross': total('gross_pay'),
            'napsa_employee': total('napsa_employee'),
            'napsa_employer': total('napsa_employer'),
            'nhima_employee': total('nhima_employee'),
            'nhima_employer': total('nhima_employer'),
            'paye': total('paye'),
            'deductions': total('deductions'),
            'net': total('net_pay'),
        }
        count = len(records)
        return {
            'period': period,
            'total_employees': count,
            'totals': totals,
            'averages': {
                'gross': totals['gross'] / count,
                'net': totals['net'] / count,
            },
        }

    def update_status(self, record_ids: Iterable[str], status: str, payment_date: Optional[date] = None) -> int:
        if status not in PAYMENT_STATUSES:
            raise InvalidInput(f"Unknown payment status: {status}", payload={"allowed": list(PAYMENT_STATUSES)})
        ids = list(record_ids)
        records = (
            self.session.query(PayrollRecord)
            .filter(PayrollRecord.company_id == self.company_id, PayrollRecord.id.in_(ids))
            .all()
        )
        for record in records:
            record.payment_status = status
            if status == 'paid':
                record.payment_date = payment_date or date.today()
        self.session.commit()

        self.logger.info("%d payroll records marked %s", len(records), status)
        audit_log(self.company_id, self.actor, "update_status", "payroll_record", ",".join(r.id for r in records),
                  {'status': status, 'payment_date': payment_date})
        return len(records)

    def mark_paid(self, record_ids: Iterable[str], payment_date: Optional[date] = None) -> int:
        return self.update_status(record_ids, 'paid', payment_date)

    def list_records(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50
    ) -> List[PayrollRecord]:
        """Recent payroll records, newest period first."""
        query = (
            self.session.query(PayrollRecord)
            .join(Employee, PayrollRecord.employee_id == Employee.id)
            .filter(PayrollRecord.company_id == self.company_id)
        )
        if status and status != 'all':
            query = query.filter(PayrollRecord.payment_status == status)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(Employee.first_name.ilike(pattern), Employee.last_name.ilike(pattern)))
        return (
            query.order_by(PayrollRecord.pay_period_end.desc(), PayrollRecord.created_at.desc())
            .limit(limit)
            .all()
        )

    def get_stats(self, limit: int = 50) -> Dict[str, Any]:
        records = self.list_records(limit=limit)
        total = sum((Decimal(r.net_pay) for r in records), Decimal("0"))
        counts = {
            status: self.session.query(PayrollRecord)
            .filter(PayrollRecord.company_id == self.company_id, PayrollRecord.payment_status == status)
            .count()
            for status in ('pending', 'paid')
        }
        return {
            'total_payroll': total,
            'pending': counts['pending'],
            'paid': counts['paid'],
            'average_net': total / len(records) if records else Decimal("0"),
        }
