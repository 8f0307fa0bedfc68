"""
Finsight — Market News Synthesizer
───────────────────────────────────
Turns the aggregated list into tier-appropriate narrative text for the
chat prompt, plus metadata that does not depend on the LLM:

  filter      starter → nothing, standard → fred + brave_search, premium → all
  prompt      four fixed headings, ≤800 words, temperature 0.3
  key events  fixed rules over raw indicator values (FEDFUNDS > 5,
              CPIAUCSL index > 300, MORTGAGE30US > 7)
  sources     de-duplicated `source` values of the filtered list

If the Claude call fails the synthesizer raises SynthesisFailure; the
manager leaves the stored context untouched for that cycle.
"""

import asyncio
import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import List

from anthropic import Anthropic

from market_engine.models.market_data import UserTier
from market_engine.models.news import ECONOMIC_INDICATOR, MarketNewsDatum

log = logging.getLogger("fs.news.synthesizer")

ANTHROPIC_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
SYNTH_MODEL   = os.environ.get("SYNTH_MODEL", "claude-sonnet-4-20250514")
TEMPERATURE   = 0.3
MAX_TOKENS    = 1500

STANDARD_SOURCES = {"fred", "brave_search"}

STARTER_TEXT = "No market context available for Starter tier. Focus on personal financial analysis."

TIER_CONTEXT = {
    UserTier.STARTER:  "No market context available - focus on personal financial analysis",
    UserTier.STANDARD: "Basic economic indicators and general market trends from FRED and web search",
    UserTier.PREMIUM:  ("Comprehensive market intelligence including index ETF moves, live rates, "
                        "economic indicators and current financial news"),
}


class SynthesisFailure(Exception):
    """The LLM could not produce context text this cycle."""


@dataclass
class MarketNewsContext:
    tier:         UserTier
    context_text: str
    data_sources: List[str]
    key_events:   List[str]
    raw_data:     List[dict] = field(default_factory=list)
    last_update:  datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        d = asdict(self)
        d["tier"] = self.tier.value
        d["last_update"] = self.last_update.isoformat()
        return d


def filter_data_for_tier(data: List[MarketNewsDatum], tier: UserTier) -> List[MarketNewsDatum]:
    if tier is UserTier.STARTER:
        return []
    if tier is UserTier.STANDARD:
        return [d for d in data if d.source in STANDARD_SOURCES]
    return list(data)


def extract_key_events(data: List[MarketNewsDatum]) -> List[str]:
    events = []
    for item in data:
        if item.type != ECONOMIC_INDICATOR:
            continue
        series, value = item.data.series, item.data.value
        if series == "FEDFUNDS" and value > 5:
            events.append(f"Federal Reserve rate at {value:g}% - high interest rate environment")
        if series == "CPIAUCSL" and value > 300:
            events.append(f"Inflation rate elevated at {value:g} - cost of living concerns")
        if series == "MORTGAGE30US" and value > 7:
            events.append(f"Mortgage rates high at {value:g}% - housing market impact")
    return events


def unique_sources(data: List[MarketNewsDatum]) -> List[str]:
    return list(dict.fromkeys(d.source for d in data))


def build_synthesis_prompt(data: List[MarketNewsDatum], tier: UserTier) -> str:
    lines = "\n".join(f"- {d.source}: {json.dumps(asdict(d.data))}" for d in data)
    return f"""You are a financial market analyst. Synthesize the following market data into a clear, actionable market context summary.

TIER CONTEXT: {TIER_CONTEXT[tier]}

AVAILABLE DATA:
{lines}

INSTRUCTIONS:
- Create a concise but comprehensive market summary (max 800 words)
- Focus on the most relevant and impactful market developments
- Include specific numbers, rates, and trends where available
- Highlight any significant changes or emerging patterns
- Use clear, professional language suitable for financial advice
- Avoid speculation - stick to factual information from the data

OUTPUT FORMAT:
ECONOMIC INDICATORS:
[Summary of economic data]

MARKET TRENDS:
[Current market trends and movements]

KEY DEVELOPMENTS:
[Most important recent developments]

MARKET OUTLOOK:
[Brief outlook based on current data]"""


class MarketNewsSynthesizer:

    def __init__(self, client=None, model: str = SYNTH_MODEL):
        if client is None and ANTHROPIC_KEY:
            client = Anthropic(api_key=ANTHROPIC_KEY)
        self.client = client
        self.model  = model

    async def synthesize_market_context(self, data: List[MarketNewsDatum], tier) -> MarketNewsContext:
        tier      = UserTier.coerce(tier)
        tier_data = filter_data_for_tier(data, tier)
        sources   = unique_sources(tier_data)
        events    = extract_key_events(tier_data)
        raw       = [d.to_dict() for d in tier_data]

        if tier is UserTier.STARTER:
            return MarketNewsContext(tier, STARTER_TEXT, sources, events, raw)

        text = await self._complete(build_synthesis_prompt(tier_data, tier))
        log.info(f"{tier.value}: synthesized {len(text)} chars from {len(tier_data)} items")
        return MarketNewsContext(tier, text, sources, events, raw)

    async def _complete(self, prompt: str) -> str:
        if self.client is None:
            raise SynthesisFailure("ANTHROPIC_API_KEY not set")
        try:
            loop = asyncio.get_event_loop()
            response = await loop.run_in_executor(None, lambda: self.client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
                messages=[{"role": "user", "content": prompt}],
            ))
            text = response.content[0].text.strip()
        except Exception as e:
            log.error(f"Claude API error: {e}")
            raise SynthesisFailure(str(e)) from e
        if not text:
            raise SynthesisFailure("empty completion")
        return text
