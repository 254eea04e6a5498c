"""
Tax return lifecycle state machine.

    draft -> calculated -> validated -> filed -> accepted | rejected

``amended`` and ``cancelled`` are reachable from every non-terminal state.
Recalculation and revalidation are allowed from draft, calculated and
validated; a validated return that fails revalidation drops back.
"""

from __future__ import annotations

from taxbook_modules.tax.models import TaxReturnStatus

_EXITS = frozenset({TaxReturnStatus.AMENDED, TaxReturnStatus.CANCELLED})

ALLOWED_TRANSITIONS: dict[TaxReturnStatus, frozenset[TaxReturnStatus]] = {
    TaxReturnStatus.DRAFT: frozenset(
        {TaxReturnStatus.CALCULATED, TaxReturnStatus.VALIDATED}
    ) | _EXITS,
    TaxReturnStatus.CALCULATED: frozenset(
        {TaxReturnStatus.CALCULATED, TaxReturnStatus.VALIDATED}
    ) | _EXITS,
    TaxReturnStatus.VALIDATED: frozenset(
        {
            TaxReturnStatus.DRAFT,
            TaxReturnStatus.CALCULATED,
            TaxReturnStatus.VALIDATED,
            TaxReturnStatus.FILED,
        }
    ) | _EXITS,
    TaxReturnStatus.FILED: frozenset(
        {TaxReturnStatus.ACCEPTED, TaxReturnStatus.REJECTED}
    ) | _EXITS,
    TaxReturnStatus.ACCEPTED: frozenset(),  # Terminal
    TaxReturnStatus.REJECTED: frozenset(),  # Terminal
    TaxReturnStatus.AMENDED: frozenset(),  # Terminal
    TaxReturnStatus.CANCELLED: frozenset(),  # Terminal
}

TERMINAL_STATES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def validate_transition(current: TaxReturnStatus | str, target: TaxReturnStatus | str) -> bool:
    """Check if a status transition is valid."""
    return TaxReturnStatus(target) in ALLOWED_TRANSITIONS.get(
        TaxReturnStatus(current), frozenset()
    )


def is_terminal(status: TaxReturnStatus | str) -> bool:
    return TaxReturnStatus(status) in TERMINAL_STATES
