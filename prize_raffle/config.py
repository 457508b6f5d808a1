"""
Prize Raffle Configuration
All configurable parameters for the raffle system
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///raffle.db")
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE") or None

# Raffle creation limits
MAXIMUM_PRICING_OPTIONS = int(os.getenv("MAXIMUM_PRICING_OPTIONS", "5"))
MAXIMUM_PRIZE_TIERS = int(os.getenv("MAXIMUM_PRIZE_TIERS", "200"))

# Provably fair randomness
RANDOMNESS_CLIENT_SEED = os.getenv("RANDOMNESS_CLIENT_SEED", "prize-raffle")

# Fairness simulation
DEFAULT_SIMULATION_RUNS = int(os.getenv("DEFAULT_SIMULATION_RUNS", "1000"))

# Raffle statuses
STATUS_OPEN = "open"
STATUS_DRAWING = "drawing"
STATUS_DRAWN = "drawn"
STATUS_COMPLETE = "complete"
STATUS_CANCELLED = "cancelled"
