import pytest
import pandas as pd
from datetime import date
from decimal import Decimal

from hrpay.core.errors import InvalidConfiguration
from hrpay.db.models import PayeBracket, StatutorySetting
from hrpay.tax.config_manager import StatutoryConfigManager
from hrpay.tax.payroll import TaxBracket

def test_missing_rates_fall_back_to_defaults(db):
    rates = StatutoryConfigManager(db).get_active_rates()
    assert rates.napsa_employee == 5 and rates.nhima_employer == 1

def test_set_rate_replaces_active_row(db):
    cm = StatutoryConfigManager(db)
    cm.set_statutory_rate("napsa_employee", 6, effective_from=date(2024, 1, 1))
    cm.set_statutory_rate("napsa_employee", "6.5", effective_from=date(2024, 6, 1))
    rates = cm.get_active_rates(as_of=date(2024, 7, 1))
    assert rates.napsa_employee == Decimal("6.5")
    assert rates.napsa_employer == 5
    active = db.query(StatutorySetting).filter_by(name="napsa_employee", is_active=True).count()
    assert active == 1

def test_future_rate_not_applied_early(db):
    cm = StatutoryConfigManager(db)
    cm.set_statutory_rate("nhima_employee", 2, effective_from=date(2099, 1, 1))
    assert cm.get_active_rates(as_of=date(2025, 1, 1)).nhima_employee == 1
    assert cm.get_active_rates(as_of=date(2099, 6, 1)).nhima_employee == 2

def test_unknown_or_invalid_rate_rejected(db):
    cm = StatutoryConfigManager(db)
    with pytest.raises(InvalidConfiguration):
        cm.set_statutory_rate("pension", 5)
    with pytest.raises(InvalidConfiguration):
        cm.set_statutory_rate("napsa_employee", 101)

def test_no_brackets_configured(db):
    assert StatutoryConfigManager(db).get_active_brackets() == []

def test_replace_brackets_keeps_one_active_set(db, brackets):
    cm = StatutoryConfigManager(db)
    assert cm.replace_brackets(brackets) == {"created": 4, "retired": 0}
    result = cm.replace_brackets([TaxBracket(0, 4000, 0, 0), TaxBracket(4000, None, 25, 0)])
    assert result == {"created": 2, "retired": 4}
    active = cm.get_active_brackets()
    assert [(b.min_amount, b.max_amount, b.rate) for b in active] == [(0, 4000, 0), (4000, None, 25)]
    assert db.query(PayeBracket).count() == 6

def test_invalid_table_leaves_active_set(db, brackets):
    cm = StatutoryConfigManager(db)
    cm.replace_brackets(brackets)
    with pytest.raises(InvalidConfiguration):
        cm.replace_brackets([TaxBracket(0, 4000, 0, 0), TaxBracket(5000, None, 25, 0)])
    assert len(cm.get_active_brackets()) == 4

def test_import_brackets_from_frame(db):
    df = pd.DataFrame({
        "Min_Amount": [0, 5100, 7100, 9200],
        "max_amount": [5100, 7100, 9200, None],
        "rate": [0, 20, 30, 37],
        "fixed_amount": [0, 0, 400, 1030],
    })
    cm = StatutoryConfigManager(db)
    result = cm.import_brackets(df)
    assert result["success"] and result["created"] == 4
    top = cm.get_active_brackets()[-1]
    assert top.max_amount is None and top.fixed_amount == 1030

def test_import_requires_columns(db):
    with pytest.raises(InvalidConfiguration):
        StatutoryConfigManager(db).import_brackets(pd.DataFrame({"rate": [10]}))

def test_template_matches_default_table(db):
    df = StatutoryConfigManager(db).get_template()
    assert list(df.columns) == ["min_amount", "max_amount", "rate", "fixed_amount"]
    assert len(df) == 4

def test_seed_defaults_is_idempotent(db):
    cm = StatutoryConfigManager(db)
    assert cm.seed_defaults() == {"rates": 4, "brackets": 4}
    assert cm.seed_defaults() == {"rates": 0, "brackets": 0}
    assert len(cm.get_active_brackets()) == 4
