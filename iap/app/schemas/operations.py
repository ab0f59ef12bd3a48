"""
Operation vocabulary shared by the dispatcher, the registry and engines.

Each value doubles as the attribute name an engine uses to implement the
operation, so the enum is the single place where operation names live.
"""

from __future__ import annotations

from enum import Enum


class Operation(str, Enum):
    """
    The five receipt lifecycle operations.

    NOTE:
    VERIFY_PAYMENT is mandatory for every engine. All other entries are
    optional capabilities probed through ``supports()``.
    """

    VERIFY_PAYMENT = "verify_payment"
    CANCEL_SUBSCRIPTION = "cancel_subscription"
    IS_CANCELLED = "is_cancelled"
    IS_EXPIRED = "is_expired"
    ACKNOWLEDGE = "acknowledge"

    @property
    def mandatory(self) -> bool:
        return self is Operation.VERIFY_PAYMENT


OPTIONAL_OPERATIONS = frozenset(op for op in Operation if not op.mandatory)
