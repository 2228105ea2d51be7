"""Core — pure domain logic: types, errors, credit rules, loan state machine.

Invariants:
    - Nothing in core performs IO or awaits
    - Services and infrastructure depend on core, never the reverse
"""
