
import streamlit as st
import pandas as pd
import tempfile
from pathlib import Path
from datetime import date
from calendar import monthrange

from hrpay.core.config import settings
from hrpay.core.errors import PayrollError
from hrpay.core.utils import audit_trail
from hrpay.db.session import SessionLocal, init_db
from hrpay.db.models import Company
from hrpay.employees.manager import EmployeeManager
from hrpay.tax.config_manager import StatutoryConfigManager
from hrpay.tax.payroll import StatutoryRates
from hrpay.payroll.bulk_processor import PayrollRunProcessor, PAYMENT_STATUSES
from hrpay.payroll.engine import format_currency
from hrpay.reports.payslips import (
    build_payslip, report_summary, payroll_report_frame, export_payroll_report,
    report_filename,
)

st.set_page_config(page_title=f"{settings.APP_NAME} | Payroll", layout="wide", page_icon="💼")

if settings.DB_URL.startswith("sqlite:///"):
    Path(settings.DB_URL.replace("sqlite:///", "")).parent.mkdir(parents=True, exist_ok=True)
init_db()

def get_session():
    if "db" not in st.session_state:
        db = SessionLocal()
        StatutoryConfigManager(db).seed_defaults()
        st.session_state["db"] = db
    return st.session_state["db"]

def select_company(db):
    companies = db.query(Company).order_by(Company.name).all()
    with st.sidebar.expander("➕ New company", expanded=not companies):
        name = st.text_input("Company name", key="new_company_name")
        if st.button("Create company") and name.strip():
            db.add(Company(name=name.strip()))
            db.commit()
            st.rerun()
    if not companies:
        st.info("Create a company to get started.")
        return None
    names = {c.name: c for c in companies}
    return names[st.sidebar.selectbox("🏢 Company", list(names))]

def show_employees(db, company):
    st.subheader("Employees")
    em = EmployeeManager(db, company.id)
    employees = em.list_employees()
    contracts = em.get_active_contracts()
    st.dataframe(pd.DataFrame([{
        "Name": e.full_name or "Unknown",
        "Position": e.position,
        "Salary": format_currency(contracts[e.id].base_salary if e.id in contracts else (e.salary or 0)),
        "Source": "Contract" if e.id in contracts else "Profile",
    } for e in employees]), use_container_width=True)

    with st.form("add_employee"):
        st.markdown("#### Add employee")
        c1, c2 = st.columns(2)
        first = c1.text_input("First name")
        last = c2.text_input("Last name")
        email = c1.text_input("Email")
        position = c2.text_input("Position")
        salary = st.number_input("Salary", min_value=0.0, step=500.0)
        if st.form_submit_button("Add"):
            try:
                em.add_employee(first, last, email or None, position or None, salary or None)
                st.success(f"{first} {last} added")
                st.rerun()
            except PayrollError as e:
                st.error(e.message)

    if employees:
        with st.form("add_contract"):
            st.markdown("#### Add contract")
            by_name = {f"{e.full_name} ({e.id[:8]})": e for e in employees}
            who = by_name[st.selectbox("Employee", list(by_name))]
            title = st.text_input("Job title")
            start = st.date_input("Start date", value=date.today())
            c1, c2, c3 = st.columns(3)
            base = c1.number_input("Base salary", min_value=0.0, step=500.0)
            housing = c2.number_input("Housing allowance", min_value=0.0, step=100.0)
            transport = c3.number_input("Transport allowance", min_value=0.0, step=100.0)
            lunch = c1.number_input("Lunch allowance", min_value=0.0, step=100.0)
            other = c2.number_input("Other allowances", min_value=0.0, step=100.0)
            if st.form_submit_button("Create contract"):
                try:
                    em.add_contract(who.id, title, start, base, housing_allowance=housing,
                                    transport_allowance=transport, lunch_allowance=lunch,
                                    other_allowances=other)
                    st.success("Contract created")
                except PayrollError as e:
                    st.error(e.message)

def show_statutory(db):
    st.subheader("Statutory Settings")
    cm = StatutoryConfigManager(db)
    rates = cm.get_active_rates()
    cols = st.columns(4)
    for col, name in zip(cols, StatutoryRates.names()):
        col.metric(name.replace("_", " ").upper(), f"{getattr(rates, name)}%")

    with st.form("rate_form"):
        name = st.selectbox("Rate", StatutoryRates.names())
        rate = st.number_input("Percentage", min_value=0.0, max_value=100.0, step=0.5)
        if st.form_submit_button("Update rate"):
            try:
                cm.set_statutory_rate(name, rate)
                st.success(f"{name} updated")
                st.rerun()
            except PayrollError as e:
                st.error(e.message)

    st.markdown("#### PAYE brackets")
    try:
        brackets = cm.get_active_brackets()
    except PayrollError as e:
        st.error(e.message)
        brackets = []
    st.dataframe(pd.DataFrame([cm.bracket_row(b) for b in brackets]), use_container_width=True)
    st.download_button("Download template", cm.get_template().to_csv(index=False), "paye_brackets.csv", "text/csv")
    upload = st.file_uploader("Upload bracket table (CSV/Excel)", type=["csv", "xlsx"])
    if upload is not None and st.button("Replace active brackets"):
        df = pd.read_csv(upload) if upload.name.endswith(".csv") else pd.read_excel(upload)
        try:
            result = cm.import_brackets(df)
            st.success(f"{result['created']} brackets active, {result['retired']} retired")
        except PayrollError as e:
            st.error(e.message)

def show_run_payroll(db, company):
    st.subheader("Run Payroll")
    processor = PayrollRunProcessor(db, company.id)
    employees = processor.employee_manager.list_employees()
    today = date.today()
    c1, c2 = st.columns(2)
    start = c1.date_input("Pay period start", value=today.replace(day=1))
    end = c2.date_input("Pay period end", value=today.replace(day=monthrange(today.year, today.month)[1]))

    by_name = {f"{e.full_name or 'Unknown'} ({e.id[:8]})": e.id for e in employees}
    selected = st.multiselect("Employees", list(by_name), default=list(by_name))
    ids = [by_name[n] for n in selected]
    if not ids:
        st.warning("Select at least one employee")
        return

    try:
        preview = processor.preview(ids)
    except PayrollError as e:
        st.error(e.message)
        return
    c1, c2, c3 = st.columns(3)
    c1.metric("Employees", preview["employees"])
    c2.metric("Total Gross", format_currency(preview["total_gross"]))
    c3.metric("Total Net", format_currency(preview["total_net"]))

    if st.button(f"Process Payroll for {len(ids)} Employees"):
        try:
            result = processor.run_payroll(start, end, ids)
        except PayrollError as e:
            st.error(e.message)
            return
        if result.success:
            st.success(f"Payroll processed for {len(result.records)} employees")
        else:
            st.error(result.error)
        for issue in result.skipped + result.errors + result.warnings:
            st.warning(f"{issue['name'] or issue['employee_id']}: {issue['message']}")

def show_records(db, company):
    st.subheader("Payroll Records")
    processor = PayrollRunProcessor(db, company.id)
    stats = processor.get_stats()
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total Payroll", format_currency(stats["total_payroll"]))
    c2.metric("Pending", stats["pending"])
    c3.metric("Paid", stats["paid"])
    c4.metric("Average Net", format_currency(stats["average_net"]))

    c1, c2 = st.columns(2)
    search = c1.text_input("Search employee")
    status = c2.selectbox("Status", ("all",) + PAYMENT_STATUSES)
    records = processor.list_records(status=status, search=search or None)
    if not records:
        st.info("No payroll records found")
        return

    st.dataframe(payroll_report_frame(records), use_container_width=True)
    summary = report_summary(records)
    st.caption(f"Base {format_currency(summary['total_base'])} | Deductions "
               f"{format_currency(summary['total_deductions'])} | Net {format_currency(summary['net_payroll'])}")

    labels = {f"{r.employee.full_name} {r.pay_period_end:%Y-%m} ({r.payment_status})": r for r in records}
    chosen = labels[st.selectbox("Payslip", list(labels))]
    slip = build_payslip(chosen, company)
    c1, c2 = st.columns(2)
    c1.table(pd.DataFrame(slip["earnings"]))
    c2.table(pd.DataFrame(slip["deductions"]))
    st.markdown(f"**Gross:** {slip['gross_pay']} | **Deductions:** {slip['total_deductions']} | **NET PAY:** {slip['net_pay']}")
    if slip["negative_net_pay"]:
        st.error("Deductions exceed gross pay for this payslip")
    if chosen.payment_status != "paid" and st.button("Mark as paid"):
        processor.mark_paid([chosen.id])
        st.rerun()

    with tempfile.TemporaryDirectory() as tmp:
        path = export_payroll_report(records, Path(tmp) / report_filename())
        st.download_button("📥 Export report", path.read_bytes(), file_name=path.name)

    with st.expander("🕑 Audit trail"):
        trail = audit_trail(company.id, limit=20)
        st.dataframe(pd.DataFrame([{
            "When": e["at"],
            "Actor": e["actor"],
            "Action": e["action"],
            "Object": e["object"]["type"],
        } for e in trail]), use_container_width=True)

def main():
    db = get_session()
    st.title(f"💼 {settings.APP_NAME}")
    company = select_company(db)
    if company is None:
        return
    tab = st.sidebar.radio("🧭 Navigation", ["👥 Employees", "⚖️ Statutory", "🧮 Run Payroll", "📄 Records"])
    if tab == "👥 Employees":
        show_employees(db, company)
    elif tab == "⚖️ Statutory":
        show_statutory(db)
    elif tab == "🧮 Run Payroll":
        show_run_payroll(db, company)
    elif tab == "📄 Records":
        show_records(db, company)

if __name__ == "__main__":
    main()
