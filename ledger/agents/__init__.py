"""AI agents package."""

from ledger.agents.coach import (
    APOLOGY_FALLBACK,
    CULTURE_CRUNCH_SYSTEM_INSTRUCTION,
    EMPTY_REPLY_FALLBACK,
    FinancialCoach,
    build_coach_prompt,
    format_transaction_context,
)

__all__ = [
    "APOLOGY_FALLBACK",
    "CULTURE_CRUNCH_SYSTEM_INSTRUCTION",
    "EMPTY_REPLY_FALLBACK",
    "FinancialCoach",
    "build_coach_prompt",
    "format_transaction_context",
]
