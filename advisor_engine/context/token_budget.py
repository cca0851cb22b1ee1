"""Token budget management for the assembled system prompt.

Uses tiktoken for token counting. The prompt is fitted to the budget by
cutting the most disposable material first:
1. oldest conversation turns (one at a time)
2. the knowledge base block
3. the CRM data block (truncated to whatever allowance is left)
Base instructions, the profile block and role guidance are never cut.
"""

from typing import Protocol

import tiktoken

from advisor_engine.context.models import TokenAllocation, TokenBudgetResult

TRUNCATION_SUFFIX = "..."


class TokenEncoder(Protocol):
    def encode(self, text: str) -> list[int]: ...

    def decode(self, tokens: list[int]) -> str: ...


class TokenBudgetManager:
    """
    Counts tokens and records how prompt sections were fitted to the budget.

    Sections are kept in priority order (lower = more important). The
    assembler decides what to drop; this class does the accounting.
    """

    TOTAL_BUDGET = 6_000

    # Lower = kept first
    SECTION_PRIORITY: dict[str, int] = {
        "base_instructions": 1,
        "profile": 2,
        "role_guidance": 3,
        "crm_data": 4,
        "knowledge_base": 5,
        "conversation_history": 6,
    }

    PROTECTED_SECTIONS = frozenset({"base_instructions", "profile", "role_guidance"})

    def __init__(self, total_budget: int | None = None, encoder: TokenEncoder | None = None):
        """Initialize budget manager.

        Args:
            total_budget: Override total budget (default 6K)
            encoder: Token encoder override (default tiktoken cl100k_base)
        """
        self.total_budget = total_budget or self.TOTAL_BUDGET
        self._encoder = encoder or tiktoken.get_encoding("cl100k_base")

    def count_tokens(self, text: str) -> int:
        """Count tokens in text."""
        if not text:
            return 0
        return len(self._encoder.encode(text))

    def fits(self, text: str) -> bool:
        return self.count_tokens(text) <= self.total_budget

    def truncate_text(self, text: str, max_tokens: int) -> str:
        """Truncate text to fit within token limit.

        Returns:
            Truncated text ending in "...", or "" when not even the suffix fits
        """
        if not text:
            return text

        tokens = self._encoder.encode(text)
        if len(tokens) <= max_tokens:
            return text

        keep = max_tokens - len(self._encoder.encode(TRUNCATION_SUFFIX))
        if keep < 1:
            return ""
        return self._encoder.decode(tokens[:keep]) + TRUNCATION_SUFFIX

    def report(
        self,
        requested: dict[str, str],
        kept: dict[str, str],
        turns_dropped: int = 0,
        total_used: int | None = None,
    ) -> TokenBudgetResult:
        """
        Build the allocation report for a fitted prompt.

        Args:
            requested: Section name -> text before fitting
            kept: Section name -> text that made it into the prompt
            turns_dropped: How many history turns were removed
            total_used: Token count of the final prompt (computed from kept when omitted)
        """
        names = sorted(requested, key=lambda n: self.SECTION_PRIORITY.get(n, 99))
        allocations = []
        for name in names:
            before = self.count_tokens(requested[name])
            after = self.count_tokens(kept.get(name, ""))
            allocations.append(
                TokenAllocation(
                    component=name,
                    requested=before,
                    allocated=after,
                    truncated=after < before,
                )
            )

        if total_used is None:
            total_used = sum(a.allocated for a in allocations)

        return TokenBudgetResult(
            allocations=allocations,
            total_used=total_used,
            total_budget=self.total_budget,
            turns_dropped=turns_dropped,
            within_budget=total_used <= self.total_budget,
        )

    def format_budget_report(self, result: TokenBudgetResult) -> str:
        """Format a human-readable budget report."""
        lines = ["Prompt Token Budget", "=" * 40]

        for alloc in result.allocations:
            status = " [TRUNCATED]" if alloc.truncated else ""
            lines.append(
                f"  {alloc.component}: {alloc.allocated:,} / {alloc.requested:,}{status}"
            )

        lines.append("-" * 40)
        lines.append(f"  Total Used: {result.total_used:,}")
        lines.append(f"  Budget: {result.total_budget:,}")
        lines.append(f"  Turns Dropped: {result.turns_dropped}")
        lines.append(f"  Within Budget: {result.within_budget}")

        return "\n".join(lines)
