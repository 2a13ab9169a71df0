import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fieldops.db")

# Business calendar
# Stored booking times are wall-clock values in this zone
BUSINESS_TIME_ZONE = os.getenv("BUSINESS_TIME_ZONE", "America/Vancouver")
# Jobs starting before this hour are the tail of the previous service day
SERVICE_DAY_CUTOFF_HOUR = int(os.getenv("SERVICE_DAY_CUTOFF_HOUR", "3"))
# Python weekday numbers (Monday=0); default closes Friday and Saturday
CLOSED_WEEKDAYS = frozenset(
    int(day) for day in os.getenv("CLOSED_WEEKDAYS", "4,5").split(",") if day.strip()
)

# Scheduling rules
DEFAULT_JOB_HOURS = float(os.getenv("DEFAULT_JOB_HOURS", "4"))
TURNAROUND_BUFFER_MINUTES = int(os.getenv("TURNAROUND_BUFFER_MINUTES", "15"))
DEPOT_GAP_THRESHOLD_HOURS = float(os.getenv("DEPOT_GAP_THRESHOLD_HOURS", "2"))
DAILY_DRIVE_CEILING_MINUTES = int(os.getenv("DAILY_DRIVE_CEILING_MINUTES", "240"))
CLOSE_ROUTE_MINUTES = int(os.getenv("CLOSE_ROUTE_MINUTES", "30"))
MAX_AVAILABILITY_RANGE_DAYS = int(os.getenv("MAX_AVAILABILITY_RANGE_DAYS", "120"))
DEFAULT_DEPOT_ADDRESS = os.getenv("DEFAULT_DEPOT_ADDRESS") or None

# Travel-time cache
TRAVEL_CACHE_TTL_DAYS = int(os.getenv("TRAVEL_CACHE_TTL_DAYS", "90"))
TRAVEL_HOUR_BUCKET_SIZE = int(os.getenv("TRAVEL_HOUR_BUCKET_SIZE", "1"))
TRAVEL_HOT_CACHE_SECONDS = int(os.getenv("TRAVEL_HOT_CACHE_SECONDS", "21600"))

# Google Routes API (routing provider)
GOOGLE_ROUTES_API_KEY = os.getenv("GOOGLE_ROUTES_API_KEY")
ROUTING_CONCURRENCY_LIMIT = int(os.getenv("ROUTING_CONCURRENCY_LIMIT", "5"))
ROUTING_TIMEOUT_SECONDS = float(os.getenv("ROUTING_TIMEOUT_SECONDS", "10"))

# OpenRouter (insight text enhancement)
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_MODEL = os.getenv("OPENROUTER_MODEL", "openrouter/free")
INSIGHT_AI_ENABLED = os.getenv("INSIGHT_AI_ENABLED", "true").lower() == "true"
ENHANCER_TIMEOUT_SECONDS = float(os.getenv("ENHANCER_TIMEOUT_SECONDS", "15"))
ENHANCER_COOLDOWN_SECONDS = int(os.getenv("ENHANCER_COOLDOWN_SECONDS", "300"))

# Background analysis
INSIGHT_AUTO_WINDOW_DAYS = int(os.getenv("INSIGHT_AUTO_WINDOW_DAYS", "14"))

# Public endpoint protection
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
AVAILABILITY_RPM = int(os.getenv("AVAILABILITY_RPM", "60"))
