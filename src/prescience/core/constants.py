"""Application-wide constants.

These are fixed values that don't change between environments.
For configurable values (thresholds, quotas, TTLs), see config.py Settings.
"""

# ─────────────────────────────────────────────────────────────
# API URL Defaults (used as defaults in Settings)
# ─────────────────────────────────────────────────────────────
DEFAULT_POLYMARKET_GAMMA_API_URL = "https://gamma-api.polymarket.com"
DEFAULT_POLYMARKET_DATA_API_URL = "https://data-api.polymarket.com"
DEFAULT_SITE_URL = "https://prescience.markets"
DEFAULT_SIGNALS_DIR = "data/signals"

# ─────────────────────────────────────────────────────────────
# Message Limits (platform constraints)
# ─────────────────────────────────────────────────────────────
TELEGRAM_MAX_MESSAGE_LENGTH = 4096  # Telegram API limit

# ─────────────────────────────────────────────────────────────
# Cache TTLs (process-local, best effort)
# ─────────────────────────────────────────────────────────────
MARKET_LIST_CACHE_TTL_SECONDS = 900  # 15 minutes
TRADES_CACHE_TTL_SECONDS = 300  # 5 minutes
SLUG_CACHE_TTL_SECONDS = 900
NEWS_CACHE_TTL_SECONDS = 300
CORRELATION_CACHE_TTL_SECONDS = 900

# ─────────────────────────────────────────────────────────────
# Wallet Profiling
# ─────────────────────────────────────────────────────────────
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400
FRESH_WALLET_AGE_DAYS = 7
COORDINATED_FRESH_AGE_DAYS = 3
SAMPLE_CAP_MARGIN = 5  # Trade samples within this many of the limit are "capped"

# ─────────────────────────────────────────────────────────────
# Tier-2 Scoring Defaults (points + trigger levels, used as defaults in Settings)
# ─────────────────────────────────────────────────────────────
TIER2_MIN_VOLUME_24H = 10.0
TIER2_MIN_TRADES_FOR_WALLETS = 5
TIER2_EMIT_THRESHOLD = 10
TIER2_NEXT_SCAN_HOURS = 2

VOLUME_SPIKE_RATIO = 3.0
VOLUME_SPIKE_PROMOTE_RATIO = 5.0
VOLUME_SPIKE_POINTS = 25

FRESH_SURGE_EXCESS = 0.15
FRESH_SURGE_POINTS = 40
WHALE_DOMINANCE = 0.30
WHALE_POINTS = 35
COORDINATED_FRESH_POINTS = 20

EXTREME_PRICE_HIGH = 0.95
EXTREME_PRICE_LOW = 0.05
EXTREME_PRICE_MIN_VOLUME = 100.0
EXTREME_PRICE_POINTS = 15

EXPIRY_RUSH_HOURS = 24
EXPIRY_RUSH_MIN_VOLUME = 500.0
EXPIRY_RUSH_POINTS = 10

# ─────────────────────────────────────────────────────────────
# Tier-1 Threat Score weights (max contribution per component)
# Ordering: fresh surge > whale > volume spike > extreme price > expiry rush
# ─────────────────────────────────────────────────────────────
THREAT_WEIGHT_FRESH_SURGE = 30
THREAT_WEIGHT_WHALE = 24
THREAT_WEIGHT_VOLUME_SPIKE = 15
THREAT_WEIGHT_EXTREME_PRICE = 6
THREAT_WEIGHT_EXPIRY_RUSH = 4
THREAT_WEIGHT_MINORITY_FLOW = 12
THREAT_WEIGHT_MIXED_FLOW = 4
THREAT_WEIGHT_LARGE_POSITIONS = 5
THREAT_WEIGHT_VETERAN = 4

THREAT_LEVEL_CRITICAL = 70
THREAT_LEVEL_HIGH = 45
THREAT_LEVEL_MEDIUM = 25

# Saturation points: intensity reaches 1.0 at these feature values
FRESH_EXCESS_SATURATION = 0.45
WHALE_DOMINANCE_SATURATION = 0.80
VOLUME_RATIO_SATURATION = 10.0
LARGE_POSITION_RATIO_SATURATION = 0.25

# ─────────────────────────────────────────────────────────────
# Velocity
# ─────────────────────────────────────────────────────────────
VELOCITY_WINDOW_HOURS = 6
VELOCITY_ACCELERATION_SCORE = 20
VELOCITY_MAX_SNAPSHOTS = 168  # 7 days of hourly snapshots

# ─────────────────────────────────────────────────────────────
# Call-Quality Gate
# ─────────────────────────────────────────────────────────────
CALL_QUALITY_MAX = 12
FRESH_EXCESS_SIGNAL = 0.10
LARGE_POSITION_RATIO_SIGNAL = 0.05
NARRATIVE_MAJOR_VOLUME = 500_000
NARRATIVE_NOTABLE_VOLUME = 100_000
DEFAULT_DAYS_TO_RESOLUTION = 365

# ─────────────────────────────────────────────────────────────
# Resolution
# ─────────────────────────────────────────────────────────────
RESOLVED_PRICE_HIGH = 0.9
RESOLVED_PRICE_LOW = 0.1
SCANNER_FLAG_SOURCE = "tars-scanner-flag"
SIGNAL_PROOF_SOURCE = "telegram-post-log"

# ─────────────────────────────────────────────────────────────
# Proof of Call
# ─────────────────────────────────────────────────────────────
PROOF_NOTABLE_MOVE_PP = 3  # Absolute move from the signal price
PROOF_CONFIRMED_MOVE_PP = 10
PROOF_UTC_OFFSET_HOURS = -5  # Timestamps rendered as EST
PROOF_REQUEST_DELAY_SECONDS = 0.2

# ─────────────────────────────────────────────────────────────
# Cross-Market Correlation
# ─────────────────────────────────────────────────────────────
CORRELATION_WINDOW_HOURS = 24
CORRELATION_MIN_SHARED_WALLETS = 5
CORRELATION_MARKET_LIMIT = 80
CORRELATION_TRADE_SAMPLE = 500
CORRELATION_STRONG_WALLETS = 20
CORRELATION_MODERATE_WALLETS = 10

# ─────────────────────────────────────────────────────────────
# Admin API
# ─────────────────────────────────────────────────────────────
ADMIN_RATE_LIMIT = "1000/hour"  # Per client IP

# ─────────────────────────────────────────────────────────────
# Concurrency
# ─────────────────────────────────────────────────────────────
SCAN_CONCURRENCY = 8  # Concurrent per-market trade fetches within one scan
