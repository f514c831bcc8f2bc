"""
Employee management: profiles, departments, employment contracts and payroll input resolution.
"""
import pandas as pd
from typing import Dict, List, Any, Optional, Iterable
from datetime import date
from decimal import Decimal

from ..core.errors import InvalidInput
from ..core.utils import setup_logging, audit_log
from ..db.models import Department, Employee, EmployeeContract
from ..payroll.engine import CompensationInput
from ..tax.payroll import to_decimal

ALLOWANCE_FIELDS = ['housing_allowance', 'transport_allowance', 'lunch_allowance', 'other_allowances']

def _amount(value) -> Decimal:
    amount = to_decimal(value, error=InvalidInput) if value is not None else Decimal("0")
    if not amount.is_finite():
        raise InvalidInput(f"Amount must be finite, got {value!r}")
    return amount

def _missing(value) -> bool:
    return value is None or (not isinstance(value, str) and pd.isna(value))

def _text(value) -> Optional[str]:
    if _missing(value):
        return None
    return str(value).strip() or None

class EmployeeManager:
    """Employee master data for one company, plus resolution of pay inputs for payroll runs."""

    def __init__(self, session, company_id: str, actor: str = "system"):
        self.session = session
        self.company_id = company_id
        self.actor = actor
        self.logger = setup_logging(company_id)

    def add_department(self, name: str, description: Optional[str] = None) -> Department:
        if not name or not name.strip():
            raise InvalidInput("Department name is required")
        dept = Department(company_id=self.company_id, name=name.strip(), description=description)
        self.session.add(dept)
        self.session.commit()
        audit_log(self.company_id, self.actor, "create", "department", dept.id, {"name": dept.name})
        return dept

    def add_employee(
        self,
        first_name: str,
        last_name: str,
        email: Optional[str] = None,
        position: Optional[str] = None,
        salary=None,
        department_id: Optional[str] = None
    ) -> Employee:
        salary = _amount(salary) if salary is not None else None
        if salary is not None and salary < 0:
            raise InvalidInput("Salary cannot be negative", payload={"field": "salary"})

        employee = Employee(
            company_id=self.company_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            position=position,
            salary=salary,
            department_id=department_id,
        )
        self.session.add(employee)
        self.session.commit()
        self.logger.info("Employee %s added (%s)", employee.id, employee.full_name)
        audit_log(self.company_id, self.actor, "create", "employee", employee.id,
                  {"name": employee.full_name, "position": position})
        return employee

    def add_contract(
        self,
        employee_id: str,
        job_title: str,
        start_date: date,
        base_salary,
        contract_type: str = "permanent",
        end_date: Optional[date] = None,
        department_id: Optional[str] = None,
        allowances_description: Optional[str] = None,
        notes: Optional[str] = None,
        **allowances
    ) -> EmployeeContract:
        """
        Create an active employment contract.

        Args:
            employee_id: Employee the contract belongs to (must be in this company)
            job_title: Required
            start_date: Required contract start
            base_salary: Required monthly base pay
            **allowances: housing_allowance, transport_allowance, lunch_allowance, other_allowances
        """
        employee = self.get_employee(employee_id)
        if not job_title or start_date is None or base_salary in (None, ""):
            raise InvalidInput("Job title, start date and base salary are required")
        unknown = set(allowances) - set(ALLOWANCE_FIELDS)
        if unknown:
            raise InvalidInput(f"Unknown allowance fields: {', '.join(sorted(unknown))}")
        if end_date is not None and end_date < start_date:
            raise InvalidInput("Contract end date is before its start date")

        amounts = {name: _amount(allowances.get(name)) for name in ALLOWANCE_FIELDS}
        amounts['base_salary'] = _amount(base_salary)
        negative = [name for name, value in amounts.items() if value < 0]
        if negative:
            raise InvalidInput(f"Contract amounts cannot be negative: {', '.join(negative)}",
                               payload={"fields": negative})

        contract = EmployeeContract(
            employee_id=employee.id,
            department_id=department_id or employee.department_id,
            contract_type=contract_type,
            job_title=job_title,
            start_date=start_date,
            end_date=end_date,
            allowances_description=allowances_description,
            notes=notes,
            status="active",
            **amounts,
        )
        self.session.add(contract)
        self.session.commit()
        self.logger.info("Contract %s created for employee %s", contract.id, employee.id)
        audit_log(self.company_id, self.actor, "create", "employee_contract", contract.id,
                  {"employee_id": employee.id, "base_salary": str(amounts['base_salary'])})
        return contract

    def get_employee(self, employee_id: str) -> Employee:
        employee = (
            self.session.query(Employee)
            .filter_by(id=employee_id, company_id=self.company_id)
            .one_or_none()
        )
        if employee is None:
            raise InvalidInput(f"Employee not found: {employee_id}", payload={"employee_id": employee_id})
        return employee

    def list_employees(self, employee_ids: Optional[Iterable[str]] = None) -> List[Employee]:
        query = self.session.query(Employee).filter(Employee.company_id == self.company_id)
        if employee_ids is not None:
            query = query.filter(Employee.id.in_(list(employee_ids)))
        return query.order_by(Employee.last_name, Employee.first_name).all()

    def get_active_contracts(self, employee_ids: Optional[Iterable[str]] = None) -> Dict[str, EmployeeContract]:
        """Active contract per employee; the latest start date wins when several are active."""
        query = (
            self.session.query(EmployeeContract)
            .join(Employee, EmployeeContract.employee_id == Employee.id)
            .filter(Employee.company_id == self.company_id, EmployeeContract.status == "active")
        )
        if employee_ids is not None:
            query = query.filter(EmployeeContract.employee_id.in_(list(employee_ids)))

        contracts = {}
        for contract in query.order_by(EmployeeContract.start_date, EmployeeContract.created_at).all():
            contracts[contract.employee_id] = contract
        return contracts

    def resolve_compensation(
        self,
        employee: Employee,
        contract: Optional[EmployeeContract] = None,
        bonuses=0,
        other_deductions=0
    ) -> Optional[CompensationInput]:
        """Pay inputs from the active contract, falling back to the profile salary. None if unpaid."""
        base = _amount(contract.base_salary) if contract is not None else Decimal("0")
        if not base:
            base = _amount(employee.salary)
        if base <= 0:
            return None

        allowances = {
            name: _amount(getattr(contract, name)) if contract is not None else Decimal("0")
            for name in ALLOWANCE_FIELDS
        }
        return CompensationInput(
            base_salary=base,
            bonuses=bonuses or 0,
            other_deductions=other_deductions or 0,
            **allowances,
        )

    def import_employees(self, df: pd.DataFrame) -> Dict[str, Any]:
        """Bulk import employee profiles from a DataFrame (first_name, last_name, email, position, salary)."""
        df = df.rename(columns=lambda c: str(c).strip().lower())
        if 'first_name' not in df.columns and 'last_name' not in df.columns:
            raise InvalidInput("Employee sheet needs first_name or last_name columns")

        created = 0
        errors = []
        for idx, row in df.iterrows():
            first_name = _text(row.get('first_name'))
            last_name = _text(row.get('last_name'))
            email = _text(row.get('email'))
            try:
                self.add_employee(
                    first_name=first_name.title() if first_name else None,
                    last_name=last_name.title() if last_name else None,
                    email=email.lower() if email else None,
                    position=_text(row.get('position')),
                    salary=None if _missing(row.get('salary')) else row.get('salary'),
                )
                created += 1
            except InvalidInput as e:
                self.session.rollback()
                errors.append({'row': int(idx) + 1, 'error': e.message})

        self.logger.info("Employee import: %d created, %d rejected", created, len(errors))
        return {'success': not errors, 'created': created, 'errors': errors}
