"""
Core ledger algorithms (pure, integer-only)
"""
