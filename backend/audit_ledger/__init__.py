"""
Audit Ledger — tamper-evident, hash-chained audit trail with verifiable exports.
"""
__version__ = "1.0.0"
