"""Tests for the financial coach, with a fake generative model."""

import pytest
from datetime import date

from ledger.agents import (
    APOLOGY_FALLBACK,
    EMPTY_REPLY_FALLBACK,
    FinancialCoach,
    build_coach_prompt,
    format_transaction_context,
)
from ledger.config import GeminiSettings
from ledger.models.audit import AuditEventType
from ledger.models.ledger import ExpenseCategory, TransactionType
from tests.helpers import make_transaction


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeChat:
    def __init__(self, replies):
        self.replies = list(replies)
        self.prompts = []

    async def send_message_async(self, prompt):
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return FakeResponse(reply)


class FakeModel:
    def __init__(self, replies=(), generated=()):
        self.chat = FakeChat(replies)
        self.generated = list(generated)
        self.histories = []

    def start_chat(self, history):
        self.histories.append(history)
        return self.chat

    async def generate_content_async(self, prompt):
        reply = self.generated.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return FakeResponse(reply)


@pytest.fixture
def gemini_settings() -> GeminiSettings:
    return GeminiSettings(api_key="test-key", context_transactions=50)


class TestPromptFormatting:
    """Tests for the transaction context block."""

    def test_context_line_format(self):
        t = make_transaction(
            description="Team lunch",
            amount="84.5",
            category=ExpenseCategory.TEAM_CULTURE.value,
            transaction_date=date(2024, 3, 8),
        )
        assert format_transaction_context([t]) == (
            "2024-03-08: Team lunch (Team Culture) - $84.50 [EXPENSE]"
        )

    def test_context_is_capped(self):
        transactions = [make_transaction(description=f"t{i}") for i in range(60)]
        lines = format_transaction_context(transactions, limit=50).splitlines()
        assert len(lines) == 50
        assert "t0" in lines[0]

    def test_prompt_wraps_query(self):
        prompt = build_coach_prompt("How are we tracking?", [make_transaction()])
        assert "Context - Current Financial Data (Last 50 transactions):" in prompt
        assert prompt.rstrip().endswith("User Query:\nHow are we tracking?")

    def test_prompt_without_context_is_the_message(self):
        assert build_coach_prompt("hello") == "hello"


class TestFinancialCoach:
    """Tests for the conversation flow."""

    @pytest.mark.asyncio
    async def test_reply(self, gemini_settings, audit):
        model = FakeModel(replies=["  Spending on training is low. What's holding it back?  "])
        coach = FinancialCoach(settings=gemini_settings, audit_logger=audit, model=model)

        reply = await coach.send_message(
            "Thoughts?",
            context=[make_transaction(type=TransactionType.EXPENSE)],
        )

        assert reply == "Spending on training is low. What's holding it back?"
        assert "User Query:\nThoughts?" in model.chat.prompts[0]
        assert model.histories == [[]]

    @pytest.mark.asyncio
    async def test_empty_reply_gets_fallback(self, gemini_settings, audit):
        coach = FinancialCoach(settings=gemini_settings, audit_logger=audit, model=FakeModel([""]))
        assert await coach.send_message("hi") == EMPTY_REPLY_FALLBACK

    @pytest.mark.asyncio
    async def test_failure_returns_apology_and_is_logged(self, gemini_settings, audit):
        model = FakeModel([RuntimeError("quota exceeded")])
        coach = FinancialCoach(settings=gemini_settings, audit_logger=audit, model=model)

        assert await coach.send_message("hi") == APOLOGY_FALLBACK
        assert audit.events[-1].event_type == AuditEventType.ADVISOR_FAILED
        assert audit.events[-1].error_message == "quota exceeded"

    @pytest.mark.asyncio
    async def test_conversation_continues_on_same_chat(self, gemini_settings, audit):
        model = FakeModel(["one", "two"])
        coach = FinancialCoach(settings=gemini_settings, audit_logger=audit, model=model)
        await coach.send_message("a")
        await coach.send_message("b")
        assert len(model.histories) == 1

    @pytest.mark.asyncio
    async def test_suggest_category(self, gemini_settings, audit):
        model = FakeModel(generated=['"Travel & Meals"', "Spaceships", RuntimeError("down")])
        coach = FinancialCoach(settings=gemini_settings, audit_logger=audit, model=model)

        assert await coach.suggest_category("Qantas SYD-MEL") == ExpenseCategory.TRAVEL
        assert await coach.suggest_category("Rocket") == ExpenseCategory.OTHER
        assert await coach.suggest_category("Anything") == ExpenseCategory.OTHER
