import os
import tempfile

os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("AUDIT_LOG_PATH", tempfile.mkdtemp(prefix="hrpay-logs-"))

import pytest
from datetime import date
from sqlalchemy.orm import sessionmaker

from hrpay.db.session import make_engine, init_db
from hrpay.db.models import Company
from hrpay.tax.payroll import TaxBracket

# Zambia 2024 monthly PAYE table
ZM_BRACKETS = [
    TaxBracket(0, 5100, 0, 0),
    TaxBracket(5100, 7100, 20, 0),
    TaxBracket(7100, 9200, 30, 400),
    TaxBracket(9200, None, 37, 1030),
]

@pytest.fixture
def db():
    engine = make_engine("sqlite://")
    init_db(engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()
    engine.dispose()

@pytest.fixture
def company(db):
    c = Company(name="Kalyotex Ltd", address="Lusaka")
    db.add(c)
    db.commit()
    return c

@pytest.fixture
def brackets():
    return list(ZM_BRACKETS)

@pytest.fixture
def january():
    return date(2025, 1, 1), date(2025, 1, 31)
