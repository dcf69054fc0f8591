"""
Commentary
==========
Natural-language summaries of an analysis. The summarizer is optional: its
absence or failure leaves every numeric field untouched.
"""

from abc import ABC, abstractmethod
from typing import List
import logging

logger = logging.getLogger(__name__)


class NaturalLanguageSummarizer(ABC):
    """Turns a prompt into commentary text (typically an LLM call)."""

    @abstractmethod
    def summarize(self, prompt: str, max_tokens: int = 800) -> str:
        ...


class TemplateSummarizer(NaturalLanguageSummarizer):
    """Offline summarizer: echoes the prompt's headline lines, truncated to a word limit."""

    def summarize(self, prompt: str, max_tokens: int = 800) -> str:
        lines = [line.strip() for line in prompt.splitlines() if line.strip().startswith('-')]
        words = ' '.join(lines).split()
        if len(words) > max_tokens:
            words = words[:max_tokens] + ['...']
        return ' '.join(words)


def build_prompt(report) -> str:
    """Compact plain-text digest of an AnalysisReport for a summarizer."""
    lines: List[str] = [f"Market analysis ({report.timeframe}) for {len(report.symbols)} symbols:"]
    for symbol, analysis in report.symbols.items():
        agg = analysis.aggregated
        if agg is None:
            lines.append(f"- {symbol}: no consensus ({', '.join(analysis.errors) or 'no data'})")
            continue
        risk = analysis.risk
        risk_text = f", volatility {risk.volatility:.1%}, max drawdown {risk.max_drawdown:.1%}" if risk else ""
        lines.append(f"- {symbol}: {agg.direction.name} score {agg.score:+.2f} "
                     f"confidence {agg.confidence:.0f}% from {agg.signal_count} signals{risk_text}")
    if report.regime is not None:
        lines.append(f"- Regime: {report.regime.regime.value} ({report.regime.confidence}% confidence)")
    if report.yield_curve is not None:
        lines.append(f"- Yield curve: {report.yield_curve.shape}")
    for pair in report.arbitrage:
        if pair.is_opportunity:
            lines.append(f"- Pair {pair.asset_a}/{pair.asset_b}: {pair.signal.value} z={pair.zscore:.2f}")
    lines.append("Summarize the market condition, the best opportunities and the main risks.")
    return '\n'.join(lines)
