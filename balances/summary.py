import logging
from decimal import Decimal
from typing import Optional

from groq import Groq

from .config import config
from .models import GroupExpensesResponse, SummarySource

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You summarise shared expenses for a group of friends.
You are given the group's name, each member's net balance and the list of
who owes whom after netting. Write two to four short, friendly sentences:
who is owed the most, who owes the most, and which repayments would settle
the group. Use the member names and the currency exactly as given.
Do not invent amounts. Return plain text only."""


class SpendingSummarizer:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client=None):
        self.api_key = api_key or config.GROQ_API_KEY
        self.model = model or config.GROQ_MODEL
        self.client = client

        if self.client is None and self.api_key:
            self.client = Groq(api_key=self.api_key)

    @property
    def is_available(self) -> bool:
        return self.client is not None

    def summarize(self, report: GroupExpensesResponse, currency: Optional[str] = None) -> tuple[str, SummarySource]:
        currency = currency or config.CURRENCY
        facts = self._describe(report, currency)
        if self.client:
            text = self._summarize_with_groq(report.group.name, facts)
            if text:
                return text, SummarySource.LLM
        return self._summarize_locally(report.group.name, facts), SummarySource.LOCAL

    def _summarize_with_groq(self, group_name: str, facts: list[str]) -> Optional[str]:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": f"Group: {group_name}\n" + "\n".join(facts)}
                ],
                temperature=0.3,
                max_tokens=300
            )
            return (response.choices[0].message.content or "").strip() or None
        except Exception as e:
            logger.warning("Groq summary failed, falling back to local summary: %s", e)
            return None

    def _describe(self, report: GroupExpensesResponse, currency: str) -> list[str]:
        names = {member_id: member.name for member_id, member in report.user_lookup_map.items()}
        facts = []
        for balance in report.balances:
            name = names.get(balance.id, balance.id)
            if balance.total_balance > 0:
                facts.append(f"{name} is owed {_fmt(balance.total_balance, currency)} in total.")
            elif balance.total_balance < 0:
                facts.append(f"{name} owes {_fmt(-balance.total_balance, currency)} in total.")
            else:
                facts.append(f"{name} is settled up.")
        for balance in report.balances:
            for debt in balance.owes:
                facts.append(
                    f"{names.get(balance.id, balance.id)} owes "
                    f"{names.get(debt.to, debt.to)} {_fmt(debt.amount, currency)}."
                )
        return facts

    def _summarize_locally(self, group_name: str, facts: list[str]) -> str:
        if not facts:
            return f"{group_name} has no members with balances yet."
        return f"{group_name}: " + " ".join(facts)


def _fmt(amount: Decimal, currency: str) -> str:
    return f"{currency} {amount:,.{config.MINOR_UNIT_DIGITS}f}"
