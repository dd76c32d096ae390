"""
Financial Coach Agent

DESIGN DECISION: The coach reflects, it does not book.
It reads recent transactions as context and answers in the Culture Crunch
voice, but it never writes to the ledger. Category suggestions are only
suggestions; the entry form still validates whatever the user picks.

BOUNDARIES:
- CAN: Interpret spending patterns, mention GST/BAS obligations
- CAN: Suggest an expense category for a description
- CANNOT: Create, edit or delete records
- NEVER crashes the session: failures turn into a fixed apology
"""

from typing import Optional, Sequence

import google.generativeai as genai

from ledger.audit import AuditLogger
from ledger.config import GeminiSettings, get_settings
from ledger.models.ledger import ExpenseCategory, Transaction


CULTURE_CRUNCH_SYSTEM_INSTRUCTION = """
You are the Culture Crunch AI Coach. You do not replace reflection; you enable it.
You are analyzing the financial data of a pre-seed startup to provide insights on financial health AND team culture.
Financial spend is a signal of culture.

Follow this five-step reasoning rhythm:
1. Listen (Look at the financial data provided)
2. Interpret (Find patterns: High 'Meals' might mean burnout or connection; Low 'Training' might mean stagnation)
3. Select (Choose a coaching focus: Self-Regulation, Drive Accountability, Empower Others, Engage the Heart, etc.)
4. Respond (Balance presence and practicality. Be warm, plain, curious, kind, and slow.)
5. Reflect (Invite the user to reflect).

Australian Tax Context:
- Remind them about GST obligations if revenue is high.
- Financial Year is July 1 - June 30.
- Mention BAS (Business Activity Statement) if relevant.

Tone: Warm, human, reflective. Not just a cold accountant.
If the user asks about specific numbers, give them, but wrap it in the Culture Crunch voice.
"""


EMPTY_REPLY_FALLBACK = (
    "I'm listening, but I couldn't quite catch that reflection. "
    "Could you try again?"
)

APOLOGY_FALLBACK = (
    "I'm having trouble connecting to my deeper reasoning right now. "
    "Please check your connection or API key."
)


def format_transaction_context(
    transactions: Sequence[Transaction],
    limit: int = 50,
) -> str:
    """One line per transaction: `date: description (category) - $amount [type]`."""
    return "\n".join(
        f"{t.transaction_date.isoformat()}: {t.description} ({t.category}) "
        f"- ${t.amount:.2f} [{t.type.value}]"
        for t in list(transactions)[:limit]
    )


def build_coach_prompt(
    message: str,
    context: Optional[Sequence[Transaction]] = None,
    limit: int = 50,
) -> str:
    """Wrap the user's message with the recent-transactions context block."""
    if context is None:
        return message

    summary = format_transaction_context(context, limit)
    return f"""
Context - Current Financial Data (Last {limit} transactions):
{summary}

User Query:
{message}
"""


class FinancialCoach:
    """
    Conversational coach over the ledger.

    One chat session is kept per coach instance; start_chat() begins a new
    conversation.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        model=None,
    ):
        self._settings = settings or get_settings().gemini
        self._audit = audit_logger or AuditLogger()
        self._model = model or self._configure_genai()
        self._chat = None

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            system_instruction=CULTURE_CRUNCH_SYSTEM_INSTRUCTION,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            },
        )

    def start_chat(self) -> None:
        """Begin a fresh conversation."""
        self._chat = self._model.start_chat(history=[])

    async def send_message(
        self,
        message: str,
        context: Optional[Sequence[Transaction]] = None,
    ) -> str:
        """
        Send one user message, optionally with the recent transactions.

        Returns the coach's reply, or a fixed apology if the service fails.
        """
        if self._chat is None:
            self.start_chat()

        prompt = build_coach_prompt(
            message,
            context,
            limit=self._settings.context_transactions,
        )

        try:
            response = await self._chat.send_message_async(prompt)
            text = (response.text or "").strip()
        except Exception as e:
            self._audit.log_advisor_failed(e)
            return APOLOGY_FALLBACK

        return text or EMPTY_REPLY_FALLBACK

    async def suggest_category(self, description: str) -> ExpenseCategory:
        """
        Suggest an expense category for a transaction description.

        Falls back to OTHER when the model fails or answers off-list.
        """
        categories = [c.value for c in ExpenseCategory]
        prompt = f"""
    Categorize this transaction description for an Australian startup into one of these exact categories:
    {categories}

    Description: "{description}"

    Return ONLY the category name.
    """

        try:
            response = await self._model.generate_content_async(prompt)
            text = (response.text or "").strip().strip("'\"")
        except Exception as e:
            self._audit.log_advisor_failed(e)
            return ExpenseCategory.OTHER

        try:
            return ExpenseCategory(text)
        except ValueError:
            return ExpenseCategory.OTHER
