"""Dependency injection singletons for Credit-Ledger."""

from credit_ledger.access.service import AccessService
from credit_ledger.codes.service import CodeService
from credit_ledger.common.config import get_settings
from credit_ledger.common.database import DatabaseManager
from credit_ledger.credits.service import CreditService

_db: DatabaseManager | None = None
_access: AccessService | None = None
_codes: CodeService | None = None
_credits: CreditService | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_access_service() -> AccessService:
    global _access
    if _access is None:
        _access = AccessService(get_settings())
    return _access


def get_code_service() -> CodeService:
    global _codes
    if _codes is None:
        _codes = CodeService(get_settings())
    return _codes


def get_credit_service() -> CreditService:
    global _credits
    if _credits is None:
        _credits = CreditService(get_settings(), get_access_service())
    return _credits


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _access, _codes, _credits
    _db = None
    _access = None
    _codes = None
    _credits = None
