"""
Statutory configuration management: contribution rates and the active PAYE bracket table.
"""
import pandas as pd
from typing import Dict, List, Any, Optional
from datetime import date

from sqlalchemy import or_

from ..core.errors import InvalidConfiguration
from ..core.utils import setup_logging, audit_log
from ..db.models import StatutorySetting, PayeBracket
from .payroll import StatutoryRates, TaxBracket, default_brackets, validate_brackets, to_decimal

RATE_DESCRIPTIONS = {
    'napsa_employee': 'NAPSA pension contribution (employee)',
    'napsa_employer': 'NAPSA pension contribution (employer)',
    'nhima_employee': 'NHIMA health insurance (employee)',
    'nhima_employer': 'NHIMA health insurance (employer)',
}

BRACKET_COLUMNS = ['min_amount', 'max_amount', 'rate', 'fixed_amount']

class StatutoryConfigManager:
    """Reads and maintains the statutory rates and tax brackets the payroll engine consumes."""

    def __init__(self, session, actor: str = "system"):
        self.session = session
        self.actor = actor
        self.logger = setup_logging("statutory")

    def get_active_rates(self, as_of: Optional[date] = None) -> StatutoryRates:
        """Active statutory rates for ``as_of``; missing rates fall back to the documented defaults."""
        as_of = as_of or date.today()
        rows = (
            self.session.query(StatutorySetting)
            .filter(
                StatutorySetting.is_active.is_(True),
                StatutorySetting.effective_from <= as_of,
                or_(StatutorySetting.effective_to.is_(None), StatutorySetting.effective_to >= as_of),
            )
            .order_by(StatutorySetting.effective_from)
            .all()
        )
        defaults = StatutoryRates.defaults()
        values = {name: None for name in StatutoryRates.names()}
        for row in rows:
            if row.name in values:
                # later effective_from wins
                values[row.name] = row.rate
            else:
                self.logger.debug("Ignoring unknown statutory setting %s", row.name)

        for name, value in values.items():
            if value is None:
                values[name] = getattr(defaults, name)
                self.logger.warning("Statutory rate %s not configured, using default %s%%", name, values[name])
        return StatutoryRates(**values)

    def set_statutory_rate(
        self,
        name: str,
        rate,
        effective_from: Optional[date] = None,
        description: Optional[str] = None
    ) -> StatutorySetting:
        """Replace the active rate for ``name`` with a new row."""
        if name not in StatutoryRates.names():
            raise InvalidConfiguration(f"Unknown statutory rate: {name}", payload={"name": name})
        rate = to_decimal(rate, name)
        if not rate.is_finite() or rate < 0 or rate > 100:
            raise InvalidConfiguration(f"{name} must be between 0 and 100", payload={"name": name})

        effective_from = effective_from or date.today()
        previous = (
            self.session.query(StatutorySetting)
            .filter(StatutorySetting.name == name, StatutorySetting.is_active.is_(True))
            .all()
        )
        for row in previous:
            row.is_active = False
            row.effective_to = effective_from

        setting = StatutorySetting(
            name=name,
            rate=rate,
            description=description or RATE_DESCRIPTIONS.get(name),
            effective_from=effective_from,
            is_active=True,
        )
        self.session.add(setting)
        self.session.commit()

        self.logger.info("Statutory rate %s set to %s%% from %s", name, rate, effective_from)
        audit_log("statutory", self.actor, "update", "statutory_setting", name,
                  {"rate": str(rate), "effective_from": effective_from.isoformat()})
        return setting

    def get_active_brackets(self) -> List[TaxBracket]:
        """Active PAYE brackets sorted by min_amount. Empty when none are configured."""
        # amounts are text on SQLite, so ordering happens in validate_brackets
        rows = self.session.query(PayeBracket).filter(PayeBracket.is_active.is_(True)).all()
        if not rows:
            self.logger.warning("No active PAYE brackets configured")
            return []
        brackets = [
            TaxBracket(
                min_amount=row.min_amount,
                max_amount=row.max_amount,
                rate=row.rate,
                fixed_amount=row.fixed_amount or 0,
            )
            for row in rows
        ]
        return validate_brackets(brackets)

    def replace_brackets(self, brackets: List[TaxBracket], effective_from: Optional[date] = None) -> Dict[str, int]:
        """Make ``brackets`` the single active bracket set."""
        ordered = validate_brackets(brackets)
        effective_from = effective_from or date.today()

        retired = 0
        for row in self.session.query(PayeBracket).filter(PayeBracket.is_active.is_(True)).all():
            row.is_active = False
            retired += 1

        for bracket in ordered:
            self.session.add(PayeBracket(
                min_amount=bracket.min_amount,
                max_amount=bracket.max_amount,
                rate=bracket.rate,
                fixed_amount=bracket.fixed_amount,
                effective_from=effective_from,
                is_active=True,
            ))
        self.session.commit()

        self.logger.info("PAYE bracket table replaced: %d active, %d retired", len(ordered), retired)
        audit_log("statutory", self.actor, "replace", "paye_brackets", effective_from.isoformat(),
                  {"brackets": [self.bracket_row(b) for b in ordered], "retired": retired})
        return {"created": len(ordered), "retired": retired}

    def get_template(self) -> pd.DataFrame:
        """Bracket upload template pre-filled with the default PAYE table."""
        return pd.DataFrame([self.bracket_row(b) for b in default_brackets()], columns=BRACKET_COLUMNS)

    def brackets_from_frame(self, df: pd.DataFrame) -> List[TaxBracket]:
        """Build brackets from a DataFrame with min_amount, max_amount, rate and fixed_amount columns."""
        df = df.rename(columns=lambda c: str(c).strip().lower())
        missing = [c for c in ('min_amount', 'rate') if c not in df.columns]
        if missing:
            raise InvalidConfiguration(f"Bracket table is missing columns: {', '.join(missing)}",
                                       payload={"missing": missing})

        brackets = []
        for _, row in df.iterrows():
            max_amount = row.get('max_amount')
            if max_amount is None or pd.isna(max_amount) or str(max_amount).strip() == '':
                max_amount = None
            fixed_amount = row.get('fixed_amount')
            if fixed_amount is None or pd.isna(fixed_amount):
                fixed_amount = 0
            brackets.append(TaxBracket(
                min_amount=row['min_amount'],
                max_amount=max_amount,
                rate=row['rate'],
                fixed_amount=fixed_amount,
            ))
        return brackets

    def import_brackets(self, df: pd.DataFrame, effective_from: Optional[date] = None) -> Dict[str, Any]:
        """Bulk import a bracket table from a DataFrame (e.g. an uploaded CSV/Excel sheet)."""
        brackets = self.brackets_from_frame(df)
        result = self.replace_brackets(brackets, effective_from)
        return {'success': True, 'rows': len(df), **result}

    def seed_defaults(self) -> Dict[str, int]:
        """Insert default rates and brackets where none are configured yet."""
        seeded = {'rates': 0, 'brackets': 0}
        defaults = StatutoryRates.defaults()
        for name in StatutoryRates.names():
            exists = self.session.query(StatutorySetting).filter(StatutorySetting.name == name).first()
            if not exists:
                self.set_statutory_rate(name, getattr(defaults, name), effective_from=date(2024, 1, 1))
                seeded['rates'] += 1
        if not self.session.query(PayeBracket).first():
            seeded['brackets'] = self.replace_brackets(default_brackets(), effective_from=date(2024, 1, 1))['created']
        return seeded

    @staticmethod
    def bracket_row(bracket: TaxBracket) -> Dict[str, Any]:
        return {
            'min_amount': float(bracket.min_amount),
            'max_amount': float(bracket.max_amount) if bracket.max_amount is not None else None,
            'rate': float(bracket.rate),
            'fixed_amount': float(bracket.fixed_amount),
        }
