"""Maps gateway failure codes to the recovery actions offered to the shopper."""

from enum import Enum


class RecoveryAction(Enum):
    RETRY = "retry"
    CHANGE_PAYMENT_METHOD = "change_payment_method"
    CONTACT_BANK = "contact_bank"
    CONTACT_SUPPORT = "contact_support"


_CARD_PROBLEM = (RecoveryAction.CHANGE_PAYMENT_METHOD, RecoveryAction.CONTACT_BANK)
_ISSUER_BLOCK = (RecoveryAction.CONTACT_BANK,)
_TRANSIENT = (RecoveryAction.RETRY,)

RECOVERY_ACTIONS: dict[str, tuple[RecoveryAction, ...]] = {
    "card_declined": _CARD_PROBLEM,
    "generic_decline": _CARD_PROBLEM,
    "insufficient_funds": _CARD_PROBLEM,
    "expired_card": _CARD_PROBLEM,
    "incorrect_number": _CARD_PROBLEM,
    "do_not_honor": _ISSUER_BLOCK,
    "call_issuer": _ISSUER_BLOCK,
    "transaction_not_allowed": _ISSUER_BLOCK,
    "lost_card": _ISSUER_BLOCK,
    "stolen_card": _ISSUER_BLOCK,
    "incorrect_cvc": _TRANSIENT,
    "processing_error": _TRANSIENT,
    "authentication_required": _TRANSIENT,
    "rate_limit": _TRANSIENT,
    "payment_intent_unexpected_state": (RecoveryAction.CONTACT_SUPPORT,),
}

DEFAULT_ACTIONS = (RecoveryAction.RETRY, RecoveryAction.CONTACT_SUPPORT)


def recovery_actions_for(code: str | None) -> tuple[str, ...]:
    """Return action values for ``code``, primary action first."""
    actions = RECOVERY_ACTIONS.get((code or "").strip().lower(), DEFAULT_ACTIONS)
    return tuple(action.value for action in actions)
