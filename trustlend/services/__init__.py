"""Services — loan lifecycle orchestration over core rules and infrastructure.

Invariants:
    - Services never let a ledger exception escape; failures become LoanOutcomes
    - Collaborators are passed in explicitly (see create_lending_service)
"""
