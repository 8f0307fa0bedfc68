"""
Finsight — Data Source Registry
────────────────────────────────
Which market data sources each subscription tier may use.

The orchestrator derives TierAccess from this registry, and the
tier-aware context uses it to explain what an upgrade would unlock.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from market_engine.models.market_data import UserTier

_STD_UP  = (UserTier.STANDARD, UserTier.PREMIUM)
_PREMIUM = (UserTier.PREMIUM,)


@dataclass(frozen=True)
class DataSourceConfig:
    id:              str
    name:            str
    description:     str
    tiers:           tuple
    category:        str      # "economic" | "external"
    provider:        str      # "fred" | "alpha_vantage" | "polygon" | "brave"
    cache_duration:  int      # seconds
    is_live:         bool
    rate_limit:      int = 0  # requests/minute, 0 = not limited here
    upgrade_benefit: str = ""


@dataclass(frozen=True)
class TierAccess:
    tier:                  UserTier
    has_economic_context:  bool
    has_live_data:         bool
    has_scenario_planning: bool
    has_search_context:    bool


# ── Registry ──────────────────────────────────────────────────
DATA_SOURCES: Dict[str, DataSourceConfig] = {s.id: s for s in [
    DataSourceConfig(
        "fred-cpi", "Consumer Price Index", "Inflation rate tracking via CPI data",
        _STD_UP, "economic", "fred", 24 * 3600, False,
        upgrade_benefit="Track inflation impact on your savings",
    ),
    DataSourceConfig(
        "fred-fed-rate", "Federal Reserve Rate", "Current Federal Funds Rate",
        _STD_UP, "economic", "fred", 24 * 3600, False,
        upgrade_benefit="Understand how Fed policy affects your loans and savings",
    ),
    DataSourceConfig(
        "fred-mortgage-rate", "Mortgage Rates", "Current 30-year fixed mortgage rates",
        _STD_UP, "economic", "fred", 24 * 3600, False,
        upgrade_benefit="Compare mortgage rates for refinancing decisions",
    ),
    DataSourceConfig(
        "fred-credit-card-apr", "Credit Card APR", "Average credit card interest rates",
        _STD_UP, "economic", "fred", 24 * 3600, False,
        upgrade_benefit="Understand credit card costs and debt management",
    ),
    DataSourceConfig(
        "alpha-vantage-cd-rates", "CD Rates", "Current certificate of deposit rates and APY",
        _PREMIUM, "external", "alpha_vantage", 300, True, rate_limit=5,
        upgrade_benefit="Find the best CD rates to maximize your savings",
    ),
    DataSourceConfig(
        "alpha-vantage-treasury-yields", "Treasury Yields",
        "Current Treasury bond yields across all maturities",
        _PREMIUM, "external", "alpha_vantage", 300, True, rate_limit=5,
        upgrade_benefit="Compare Treasury yields for safe investment options",
    ),
    DataSourceConfig(
        "alpha-vantage-mortgage-rates", "Live Mortgage Rates",
        "Real-time mortgage rates from multiple lenders",
        _PREMIUM, "external", "alpha_vantage", 300, True, rate_limit=5,
        upgrade_benefit="Get real-time mortgage rates for home buying decisions",
    ),
    DataSourceConfig(
        "polygon-market-data", "Stock Market Data", "Index ETF prices and daily moves",
        _PREMIUM, "external", "polygon", 60, True, rate_limit=5,
        upgrade_benefit="Track your investments with real-time market data",
    ),
    DataSourceConfig(
        "brave-search", "Real-time Financial Search",
        "Search for current financial information and rates",
        _STD_UP, "external", "brave", 1800, True,
        upgrade_benefit="Get real-time financial information and current rates",
    ),
]}


def sources_for_tier(tier: UserTier) -> List[DataSourceConfig]:
    return [s for s in DATA_SOURCES.values() if tier in s.tiers]


def unavailable_sources_for_tier(tier: UserTier) -> List[DataSourceConfig]:
    return [s for s in DATA_SOURCES.values() if tier not in s.tiers]


def tier_access(tier: UserTier) -> TierAccess:
    available = sources_for_tier(tier)
    providers = {s.provider for s in available}
    return TierAccess(
        tier                  = tier,
        has_economic_context  = "fred" in providers,
        has_live_data         = "alpha_vantage" in providers,
        has_scenario_planning = tier is UserTier.PREMIUM,
        has_search_context    = "brave" in providers,
    )


def upgrade_hints(tier: UserTier) -> List[dict]:
    """One hint per locked source: what it gives and the first tier that has it."""
    return [
        {
            "feature":       s.name,
            "benefit":       s.upgrade_benefit or s.description,
            "required_tier": s.tiers[0].value,
        }
        for s in unavailable_sources_for_tier(tier)
    ]


def next_tier(tier: UserTier) -> Optional[UserTier]:
    if tier is UserTier.STARTER:
        return UserTier.STANDARD
    if tier is UserTier.STANDARD:
        return UserTier.PREMIUM
    return None


def upgrade_suggestions(tier: UserTier) -> List[str]:
    """Plain-language upsell lines, grouped by the tier that unlocks them."""
    locked = unavailable_sources_for_tier(tier)
    standard = [s.name for s in locked if UserTier.STANDARD in s.tiers]
    premium  = [s.name for s in locked if UserTier.PREMIUM in s.tiers]

    if tier is UserTier.STARTER:
        out = []
        if standard:
            out.append(f"Upgrade to Standard to access economic indicators like {', '.join(standard)}")
        if premium:
            out.append(f"Upgrade to Premium for live market data including {', '.join(premium)}")
        return out
    if tier is UserTier.STANDARD and premium:
        return [f"Upgrade to Premium for real-time market data including {', '.join(premium)}"]
    return []


def tier_limitations(tier: UserTier) -> List[str]:
    if tier is UserTier.STARTER:
        return [
            "No economic indicators or live market data",
            "No real-time financial search",
        ]
    if tier is UserTier.STANDARD:
        return ["No live CD, treasury or mortgage rate feeds"]
    return []
