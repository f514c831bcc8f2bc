from decimal import Decimal
from typing import List, Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = Field("HRPay", description="Logger namespace and console title")
    DB_URL: str = Field("sqlite:///./data/hrpay.db", description="Database URL")
    LOG_LEVEL: str = "INFO"
    AUDIT_LOG_PATH: str = "./data/logs"

    CURRENCY_CODE: str = "ZMW"
    CURRENCY_SYMBOL: str = "K"

    # Statutory defaults (Zambia), used when a rate is missing from the settings table
    NAPSA_EMPLOYEE_RATE: Decimal = Decimal("5")
    NAPSA_EMPLOYER_RATE: Decimal = Decimal("5")
    NHIMA_EMPLOYEE_RATE: Decimal = Decimal("1")
    NHIMA_EMPLOYER_RATE: Decimal = Decimal("1")

    # PAYE (Zambia 2024 monthly): (min, max, rate %, fixed amount)
    PAYE_BRACKETS: List[Tuple[Decimal, Optional[Decimal], Decimal, Decimal]] = [
        (Decimal("0"), Decimal("5100"), Decimal("0"), Decimal("0")),
        (Decimal("5100"), Decimal("7100"), Decimal("20"), Decimal("0")),
        (Decimal("7100"), Decimal("9200"), Decimal("30"), Decimal("400")),
        (Decimal("9200"), None, Decimal("37"), Decimal("1030")),
    ]

    # Report letterhead
    COMPANY_NAME: str = "Kalyotex HR System"
    COMPANY_ADDRESS: str = "Plot 123 Great East Road, Lusaka, Zambia"
    COMPANY_PHONE: str = "+260 211 123 456"
    COMPANY_EMAIL: str = "payroll@kalyotex.co.zm"
    COMPANY_TAX_ID: str = "TPIN: 1234567890"

settings = Settings()
