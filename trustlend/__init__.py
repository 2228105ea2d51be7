"""TrustLend — peer-to-peer lending core with autonomous scheduled repayment.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
