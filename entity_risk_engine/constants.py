"""
Core Constants Module

Centralized definitions for risk categories, tiers, alert severities and
other engine vocabulary. Keeps literal strings out of the scoring code.
"""

# Risk Category Constants
# =======================
# Canonical risk categories scored by the default configuration.
# Additional categories can be added through configuration alone.

FINANCIAL = 'financial'
OPERATIONAL = 'operational'
MARKET = 'market'
COMPLIANCE = 'compliance'
GEOPOLITICAL = 'geopolitical'
ESG = 'esg'

DEFAULT_CATEGORIES = (
    FINANCIAL,
    OPERATIONAL,
    MARKET,
    COMPLIANCE,
    GEOPOLITICAL,
    ESG,
)

CATEGORY_DISPLAY_NAMES = {
    FINANCIAL: 'Financial Health',
    OPERATIONAL: 'Operational Excellence',
    MARKET: 'Market Position',
    COMPLIANCE: 'Compliance & Governance',
    GEOPOLITICAL: 'Geopolitical Exposure',
    ESG: 'ESG Performance',
}

# Metric Orientation
# ==================

HIGHER_IS_BETTER = 'higher_is_better'
LOWER_IS_BETTER = 'lower_is_better'

VALID_ORIENTATIONS = {HIGHER_IS_BETTER, LOWER_IS_BETTER}

# Risk Tiers
# ==========
# Ordered from healthiest to riskiest.

TIER_LOW = 'low'
TIER_MEDIUM = 'medium'
TIER_HIGH = 'high'
TIER_EXTREME = 'extreme'

RISK_TIERS = (TIER_LOW, TIER_MEDIUM, TIER_HIGH, TIER_EXTREME)

# Alert Severities
# ================

SEVERITY_CRITICAL = 'critical'
SEVERITY_HIGH = 'high'
SEVERITY_MEDIUM = 'medium'
SEVERITY_LOW = 'low'

SEVERITY_ORDER = {
    SEVERITY_CRITICAL: 0,
    SEVERITY_HIGH: 1,
    SEVERITY_MEDIUM: 2,
    SEVERITY_LOW: 3,
}

# Tier -> severity of the composite alert it raises (low raises none)
TIER_TO_SEVERITY = {
    TIER_EXTREME: SEVERITY_CRITICAL,
    TIER_HIGH: SEVERITY_HIGH,
    TIER_MEDIUM: SEVERITY_MEDIUM,
}

# Alert Types
# ===========

COMPOSITE_ALERT = 'composite'

CATEGORY_ALERT_TYPES = {
    FINANCIAL: 'credit',
    OPERATIONAL: 'operational',
    MARKET: 'market',
    COMPLIANCE: 'compliance',
    GEOPOLITICAL: 'geopolitical',
    ESG: 'esg',
}

# Trend Labels
# ============

TREND_IMPROVING = 'improving'
TREND_STABLE = 'stable'
TREND_DECLINING = 'declining'

# Profile Status
# ==============

STATUS_SCORED = 'scored'
STATUS_UNSCORED = 'unscored'

# VaR / ES confidence levels
# ==========================

VAR_CONFIDENCE_LEVELS = (0.95, 0.99, 0.999)
ES_CONFIDENCE_LEVELS = (0.95, 0.99)


def get_category_display_name(category: str) -> str:
    """Get human-readable display name for a risk category."""
    return CATEGORY_DISPLAY_NAMES.get(category, category.replace('_', ' ').title())


def get_category_alert_type(category: str) -> str:
    """Map a risk category to the alert type it raises."""
    return CATEGORY_ALERT_TYPES.get(category, category)


def confidence_key(level: float) -> str:
    """Stable dict key for a confidence level, e.g. 0.999 -> '99.9'."""
    return f"{level * 100:g}"
