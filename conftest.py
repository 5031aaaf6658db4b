"""Global pytest configuration."""

import os

# Offline backends for tests, set before any settings are read
os.environ.setdefault("ITINERARY_BACKEND", "stub")
os.environ.setdefault("PRICING_BACKEND", "fixture")
os.environ.pop("DATABASE_URL", None)
os.environ.pop("REDIS_URL", None)
