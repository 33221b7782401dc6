"""
Balance tables and canonical encoding for the farm ledger
"""

from .balances import BalanceTable
from .canonical import canonical_json_bytes, domain_sep_bytes, sha256_hex

__all__ = [
    "BalanceTable",
    "canonical_json_bytes",
    "domain_sep_bytes",
    "sha256_hex",
]
