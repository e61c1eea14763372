"""Credit-Ledger: credits, license codes and access grants for content platforms."""

from credit_ledger.client import LedgerClient
from credit_ledger.codes.generator import generate_batch, generate_code, normalize_code

__all__ = [
    "LedgerClient",
    "generate_batch",
    "generate_code",
    "normalize_code",
]
__version__ = "0.1.0"
