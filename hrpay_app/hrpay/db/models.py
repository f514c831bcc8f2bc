from sqlalchemy import (
    Column, String, ForeignKey, Date, DateTime, Boolean, Numeric, Text
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator
from datetime import datetime
from decimal import Decimal
import uuid

from hrpay.db.session import Base

def _uuid():
    return str(uuid.uuid4())

class Money(TypeDecorator):
    """
    Exact Decimal amounts and rates.

    SQLite has no decimal storage and would hand values back as rounded
    floats, so they are kept as text there. Other backends use an
    unconstrained NUMERIC.
    """
    impl = Numeric
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String())
        return dialect.type_descriptor(Numeric(asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return str(value) if dialect.name == "sqlite" else value

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, Decimal):
            return value
        return Decimal(str(value))

class Company(Base):
    __tablename__ = "companies"
    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False, unique=True)
    address = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    tax_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    departments = relationship("Department", back_populates="company")
    employees = relationship("Employee", back_populates="company")

class Department(Base):
    __tablename__ = "departments"
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    company = relationship("Company", back_populates="departments")
    employees = relationship("Employee", back_populates="department")

class Employee(Base):
    __tablename__ = "employees"
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    department_id = Column(String, ForeignKey("departments.id"), nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    email = Column(String, nullable=True, index=True)
    position = Column(String, nullable=True)
    salary = Column(Money, nullable=True)  # fallback when no active contract
    created_at = Column(DateTime, default=datetime.utcnow)

    company = relationship("Company", back_populates="employees")
    department = relationship("Department", back_populates="employees")
    contracts = relationship("EmployeeContract", back_populates="employee")
    payroll_records = relationship("PayrollRecord", back_populates="employee")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

class EmployeeContract(Base):
    __tablename__ = "employee_contracts"
    id = Column(String, primary_key=True, default=_uuid)
    employee_id = Column(String, ForeignKey("employees.id"), nullable=False, index=True)
    department_id = Column(String, ForeignKey("departments.id"), nullable=True)
    contract_type = Column(String, nullable=False, default="permanent")
    job_title = Column(String, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    base_salary = Column(Money, nullable=False, default=0)
    housing_allowance = Column(Money, nullable=True, default=0)
    transport_allowance = Column(Money, nullable=True, default=0)
    lunch_allowance = Column(Money, nullable=True, default=0)
    other_allowances = Column(Money, nullable=True, default=0)
    allowances_description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="active")  # 'active' / 'expired' / 'terminated'
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employee = relationship("Employee", back_populates="contracts")

class StatutorySetting(Base):
    __tablename__ = "statutory_settings"
    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False, index=True)  # napsa_employee, nhima_employer, ...
    rate = Column(Money, nullable=False)
    description = Column(Text, nullable=True)
    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class PayeBracket(Base):
    __tablename__ = "paye_brackets"
    id = Column(String, primary_key=True, default=_uuid)
    min_amount = Column(Money, nullable=False)
    max_amount = Column(Money, nullable=True)  # NULL on the top bracket
    rate = Column(Money, nullable=False)
    fixed_amount = Column(Money, nullable=False, default=0)
    effective_from = Column(Date, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class PayrollRecord(Base):
    __tablename__ = "payroll_records"
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    employee_id = Column(String, ForeignKey("employees.id"), nullable=False, index=True)
    pay_period_start = Column(Date, nullable=False)
    pay_period_end = Column(Date, nullable=False)
    base_salary = Column(Money, nullable=False)
    housing_allowance = Column(Money, default=0)
    transport_allowance = Column(Money, default=0)
    lunch_allowance = Column(Money, default=0)
    other_allowances = Column(Money, default=0)
    bonuses = Column(Money, default=0)
    gross_pay = Column(Money, nullable=False)
    napsa_employee = Column(Money, default=0)
    napsa_employer = Column(Money, default=0)
    nhima_employee = Column(Money, default=0)
    nhima_employer = Column(Money, default=0)
    paye = Column(Money, default=0)
    other_deductions = Column(Money, default=0)
    deductions = Column(Money, default=0)  # total deductions
    tax = Column(Money, default=0)
    net_pay = Column(Money, nullable=False)
    payment_status = Column(String, default="pending")  # 'pending' / 'processing' / 'paid'
    payment_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    employee = relationship("Employee", back_populates="payroll_records")
