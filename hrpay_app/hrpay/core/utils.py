"""
Logging and the payroll audit trail.

Each tenant (a company id, or ``statutory`` for the shared tax tables) gets
its own rotating log file and its own JSON-lines audit file under
``settings.AUDIT_LOG_PATH``.
"""
import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from hrpay.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(tenant)s] %(name)s: %(message)s"

def mkdir_safe(path) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path

class _TenantFilter(logging.Filter):
    def __init__(self, tenant_id: str):
        super().__init__()
        self.tenant_id = tenant_id

    def filter(self, record):
        record.tenant = self.tenant_id
        return True

def setup_logging(tenant_id: str = "system", *, log_level: str = None) -> logging.Logger:
    """Logger for one payroll tenant. Safe to call repeatedly."""
    logger = logging.getLogger(f"{settings.APP_NAME}.{tenant_id}")
    if logger.handlers:
        return logger
    logger.setLevel((log_level or settings.LOG_LEVEL).upper())

    formatter = logging.Formatter(LOG_FORMAT)
    handlers = [RotatingFileHandler(
        mkdir_safe(settings.AUDIT_LOG_PATH) / f"{tenant_id}.log",
        maxBytes=5_000_000, backupCount=3, encoding="utf-8",
    )]
    if os.getenv("DEV", "").lower() in ("1", "true", "yes"):
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(_TenantFilter(tenant_id))
        logger.addHandler(handler)
    logger.propagate = False
    return logger

def _audit_path(tenant_id: str) -> Path:
    return mkdir_safe(settings.AUDIT_LOG_PATH) / f"{tenant_id}_audit.jsonl"

def _jsonable(value):
    # amounts keep their exact digits in the trail
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)

def audit_log(
    tenant_id: str,
    actor: str,
    action: str,
    obj_type: str,
    obj_id: str,
    diff: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Append one audit entry (who changed which payroll object, and how) and return it."""
    entry = {
        "at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "tenant": tenant_id,
        "actor": actor,
        "action": action,
        "object": {"type": obj_type, "id": obj_id},
        "changes": diff or {},
    }
    with open(_audit_path(tenant_id), "a", encoding="utf-8") as f:
        f.write(json.dumps(entry, default=_jsonable) + "\n")
    return entry

def audit_trail(tenant_id: str, obj_type: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
    """Most recent audit entries for a tenant, newest first."""
    path = _audit_path(tenant_id)
    if not path.exists():
        return []
    entries = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            entry = json.loads(line)
            if obj_type is None or entry["object"]["type"] == obj_type:
                entries.append(entry)
    return entries[::-1][:limit]
