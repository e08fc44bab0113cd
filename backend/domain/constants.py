"""
Rating constants for the card-game ELO engine.

Fixed configuration for this deployment (keep in code, not env vars).
"""

DEFAULT_RATING = 1000
MIN_RATING = 100  # Floor to prevent ratings collapsing towards zero

# K-factor determines rating volatility
K_FACTOR_NEW_PLAYER = 40    # < 10 games: high volatility for placement
K_FACTOR_DEVELOPING = 32    # 10-29 games: still calibrating
K_FACTOR_ESTABLISHED = 24   # 30-99 games: stable
K_FACTOR_VETERAN = 16       # 100+ games: minimal change

GAMES_THRESHOLD_NEW = 10
GAMES_THRESHOLD_DEVELOPING = 30
GAMES_THRESHOLD_ESTABLISHED = 100

# Score margin tiers: (minimum score gap, multiplier offset)
MARGIN_TIERS = (
    (50, 0.25),  # blowout
    (30, 0.15),  # decisive
    (10, 0.05),  # close
)

# Streak bonus for first-place finishers
STREAK_BONUS_PER_GAME = 2
STREAK_BONUS_CAP = 10

HISTORY_LIMIT = 50
MIN_GAMES_FOR_RANKING = 5

UNKNOWN_GAME_TYPE = "unknown"
WIZARD_GAME_TYPE = "wizard"

# Applier retry policy for write conflicts
MAX_APPLY_ATTEMPTS = 3
RETRY_BASE_DELAY_SECONDS = 0.1
