"""Renders a portfolio snapshot into a bounded text context for the LLM."""

from decimal import Decimal
from typing import List, Optional, Sequence, Set, Tuple

from insurepulse.core.config import MIN_CONTEXT_CHARS, settings
from insurepulse.schemas.records import AggregateSnapshot, DimensionAggregate
from insurepulse.utils.exceptions import ConfigurationError
from insurepulse.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Keeps the summary block bounded however many dimensions exist
SUMMARY_KEY_LIMIT = 5


def _money(amount: Decimal, currency: str) -> str:
    return f"{amount:,.2f} {currency}"


def _percent(value: Decimal) -> str:
    return f"{value * 100:.1f}%"


def _key_list(rows: Sequence[DimensionAggregate]) -> str:
    """Count plus the first few keys in snapshot order, e.g. "3 (SA, BH, +1 more)"."""
    if not rows:
        return "0"
    names = [row.key for row in rows[:SUMMARY_KEY_LIMIT]]
    hidden = len(rows) - len(names)
    if hidden:
        names.append(f"+{hidden} more")
    return f"{len(rows)} ({', '.join(names)})"


class ContextBuilder:
    """Fixed-layout text report over an ``AggregateSnapshot``.

    Sections are the summary, then one line per country, then one line per
    line of business, in snapshot order. When the text exceeds
    ``max_chars``, the lowest-premium dimension lines are dropped first
    (later-discovered first on ties) and the affected section gets an
    "N more omitted" line.
    """

    def __init__(self, max_chars: Optional[int] = None, currency: Optional[str] = None):
        self.max_chars = settings.context_max_chars if max_chars is None else max_chars
        if self.max_chars < MIN_CONTEXT_CHARS:
            raise ConfigurationError(
                f"Context budget must be at least {MIN_CONTEXT_CHARS} characters, got {self.max_chars}"
            )
        self.currency = (currency or settings.pipeline.reporting_currency).upper()

    def render_context(self, snapshot: AggregateSnapshot) -> str:
        """Render the snapshot within the character budget.

        Args:
            snapshot: Metrics to describe

        Returns:
            str: Context text no longer than ``max_chars``
        """
        entries: List[Tuple[int, DimensionAggregate]] = list(
            enumerate([*snapshot.by_country, *snapshot.by_line_of_business])
        )
        kept: Set[int] = {position for position, _ in entries}

        text = self._render(snapshot, kept)
        if len(text) <= self.max_chars:
            return text

        drop_order = sorted(entries, key=lambda entry: (entry[1].total_premium, -entry[0]))
        for position, _ in drop_order:
            kept.discard(position)
            text = self._render(snapshot, kept)
            if len(text) <= self.max_chars:
                break

        LOGGER.info(
            "Portfolio context truncated to fit budget",
            extra={
                "tenant_id": snapshot.tenant_id,
                "max_chars": self.max_chars,
                "omitted": len(entries) - len(kept),
            },
        )
        return text[: self.max_chars]

    def _render(self, snapshot: AggregateSnapshot, kept: Set[int]) -> str:
        country_count = len(snapshot.by_country)
        lines = self._summary_lines(snapshot)

        lines.append("")
        lines.append("By Country:")
        lines.extend(self._section_lines(snapshot.by_country, kept, offset=0))

        lines.append("")
        lines.append("By Line of Business:")
        lines.extend(self._section_lines(snapshot.by_line_of_business, kept, offset=country_count))

        return "\n".join(lines) + "\n"

    def _summary_lines(self, snapshot: AggregateSnapshot) -> List[str]:
        return [
            "Portfolio Summary:",
            f"- Total Policies: {snapshot.policy_count}",
            f"- Total Premium: {_money(snapshot.total_premium, self.currency)}",
            f"- Average Premium: {_money(snapshot.average_premium, self.currency)}",
            f"- Incurred Losses: {_money(snapshot.incurred_losses, self.currency)}",
            f"- Loss Ratio: {_percent(snapshot.loss_ratio)}",
            f"- Combined Ratio: {_percent(snapshot.combined_ratio)}",
            f"- Takaful Mix: {_percent(snapshot.takaful_percentage)}",
            f"- Countries: {_key_list(snapshot.by_country)}",
            f"- Lines of Business: {_key_list(snapshot.by_line_of_business)}",
        ]

    def _section_lines(
        self,
        rows: Sequence[DimensionAggregate],
        kept: Set[int],
        offset: int,
    ) -> List[str]:
        if not rows:
            return ["- none"]

        lines = [
            self._dimension_line(row)
            for position, row in enumerate(rows, start=offset)
            if position in kept
        ]
        omitted = len(rows) - len(lines)
        if omitted:
            lines.append(f"- ... {omitted} more omitted")
        return lines

    def _dimension_line(self, row: DimensionAggregate) -> str:
        return (
            f"- {row.key}: {row.policy_count} policies, "
            f"{_money(row.total_premium, self.currency)} premium, "
            f"{_percent(row.loss_ratio)} loss ratio, "
            f"{_percent(row.takaful_percentage)} Takaful"
        )
