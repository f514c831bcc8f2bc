import re
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

import pandas as pd

from hrpay.core.config import settings
from hrpay.db.models import PayrollRecord
from hrpay.payroll.engine import format_currency

REPORT_COLUMNS = ["Employee", "Position", "Department", "Period", "Base Salary",
                  "Bonuses", "Deductions", "Net Pay", "Status"]

EARNING_LINES = [
    ("Housing Allowance", "housing_allowance"),
    ("Transport Allowance", "transport_allowance"),
    ("Lunch Allowance", "lunch_allowance"),
    ("Other Allowances", "other_allowances"),
    ("Bonuses", "bonuses"),
]

def company_info(company=None) -> Dict[str, str]:
    """Letterhead for reports; company fields override the configured defaults."""
    info = {
        "name": settings.COMPANY_NAME,
        "address": settings.COMPANY_ADDRESS,
        "phone": settings.COMPANY_PHONE,
        "email": settings.COMPANY_EMAIL,
        "tax_id": settings.COMPANY_TAX_ID,
    }
    if company is not None:
        for key in info:
            value = getattr(company, key, None)
            if value:
                info[key] = value
    return info

def _money(value) -> Decimal:
    return Decimal(value) if value is not None else Decimal("0")

def _employee_name(record: PayrollRecord) -> str:
    employee = record.employee
    return (employee.full_name if employee else "") or "Unknown"

def _period(record: PayrollRecord) -> str:
    start, end = record.pay_period_start, record.pay_period_end
    return f"{start:%b} {start.day} - {end:%b} {end.day}, {end:%Y}"

def record_gross(record: PayrollRecord) -> Decimal:
    if record.gross_pay is not None:
        return _money(record.gross_pay)
    return _money(record.base_salary) + sum((_money(getattr(record, attr)) for _, attr in EARNING_LINES), Decimal("0"))

def record_other_deductions(record: PayrollRecord) -> Decimal:
    if record.other_deductions is not None:
        return _money(record.other_deductions)
    return (_money(record.deductions) - _money(record.napsa_employee)
            - _money(record.nhima_employee) - _money(record.paye))

def build_payslip(record: PayrollRecord, company=None) -> Dict[str, Any]:
    """Payslip content for one payroll record, with amounts formatted for display."""
    employee = record.employee
    department = employee.department.name if employee and employee.department else "N/A"

    earnings = [("Base Salary", _money(record.base_salary))]
    for label, attr in EARNING_LINES:
        amount = _money(getattr(record, attr))
        if amount:
            earnings.append((label, amount))

    deductions = []
    for label, amount in [("NAPSA", _money(record.napsa_employee)),
                          ("NHIMA", _money(record.nhima_employee)),
                          ("PAYE", _money(record.paye)),
                          ("Other Deductions", record_other_deductions(record))]:
        if amount > 0:
            deductions.append((label, amount))

    gross = record_gross(record)
    total_deductions = _money(record.deductions)
    return {
        "company": company_info(company),
        "employee": {
            "name": _employee_name(record),
            "position": (employee.position if employee else None) or "N/A",
            "department": department,
        },
        "period": _period(record),
        "payment_date": record.payment_date.strftime("%B %d, %Y") if record.payment_date else "Pending",
        "earnings": [{"description": d, "amount": format_currency(a)} for d, a in earnings],
        "deductions": [{"description": d, "amount": format_currency(a)} for d, a in deductions],
        "gross_pay": format_currency(gross),
        "total_deductions": format_currency(total_deductions),
        "net_pay": format_currency(record.net_pay),
        "negative_net_pay": _money(record.net_pay) < 0,
    }

def report_summary(records: List[PayrollRecord]) -> Dict[str, Any]:
    return {
        "records": len(records),
        "total_base": sum((_money(r.base_salary) for r in records), Decimal("0")),
        "total_bonuses": sum((_money(r.bonuses) for r in records), Decimal("0")),
        "total_deductions": sum((_money(r.deductions) for r in records), Decimal("0")),
        "net_payroll": sum((_money(r.net_pay) for r in records), Decimal("0")),
    }

def payroll_report_frame(records: List[PayrollRecord]) -> pd.DataFrame:
    rows = []
    for r in records:
        employee = r.employee
        rows.append({
            "Employee": _employee_name(r),
            "Position": (employee.position if employee else None) or "N/A",
            "Department": employee.department.name if employee and employee.department else "N/A",
            "Period": _period(r),
            "Base Salary": format_currency(r.base_salary),
            "Bonuses": format_currency(r.bonuses or 0),
            "Deductions": format_currency(r.deductions or 0),
            "Net Pay": format_currency(r.net_pay),
            "Status": (r.payment_status or "pending").upper(),
        })
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)

def _write_frame(df: pd.DataFrame, path: Union[str, Path], sheet_name: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".csv":
        df.to_csv(path, index=False)
    else:
        df.to_excel(path, index=False, sheet_name=sheet_name)
    return path

def export_payroll_report(records: List[PayrollRecord], path: Union[str, Path]) -> Path:
    """Write the payroll report table to Excel (or CSV by extension)."""
    return _write_frame(payroll_report_frame(records), path, "Payroll Report")

def export_payslip(record: PayrollRecord, path: Union[str, Path], company=None) -> Path:
    slip = build_payslip(record, company)
    rows = [{"Section": "Earnings", **line} for line in slip["earnings"]]
    rows += [{"Section": "Deductions", **line} for line in slip["deductions"]]
    rows += [
        {"Section": "Totals", "description": "Gross Pay", "amount": slip["gross_pay"]},
        {"Section": "Totals", "description": "Total Deductions", "amount": slip["total_deductions"]},
        {"Section": "Totals", "description": "Net Pay", "amount": slip["net_pay"]},
    ]
    df = pd.DataFrame(rows).rename(columns={"description": "Description", "amount": "Amount"})
    return _write_frame(df, path, "Payslip")

def report_filename(on: Optional[date] = None, ext: str = "xlsx") -> str:
    return f"Payroll_Report_{(on or date.today()).isoformat()}.{ext}"

def payslip_filename(record: PayrollRecord, ext: str = "xlsx") -> str:
    name = re.sub(r"\s+", "_", _employee_name(record))
    return f"Payslip_{name}_{record.pay_period_end:%Y-%m}.{ext}"
