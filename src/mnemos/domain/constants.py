"""Centralized constants for the mnemos engine.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- SM-2 ----------
INITIAL_EASINESS_FACTOR = 2.5
MIN_EASINESS_FACTOR = 1.3
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6
LAPSE_INTERVAL_DAYS = 1
MIN_QUALITY = 1
MAX_QUALITY = 5
PASSING_QUALITY = 3  # quality >= 3 counts as a correct answer

# ---------- Session ----------
DEFAULT_MINI_REVIEW_INTERVAL = 3
DEFAULT_MAX_ROUNDS = 3
DEFAULT_MAX_ROUND_RETRIES = 2
DEFAULT_DAILY_LIMIT = 20

# ---------- Unlock ----------
DEFAULT_SENTENCE_UNLOCK_THRESHOLD = 0.8
DEFAULT_ARTICLE_UNLOCK_THRESHOLD = 0.8

# ---------- Store ----------
STORE_RETRY_ATTEMPTS = 3
STORE_RETRY_BASE_DELAY = 0.1  # seconds, doubled per attempt

# ---------- Collections ----------
MEMORY_STATES = "memory_states"
SESSION_SNAPSHOTS = "session_snapshots"
USER_PROGRESS = "user_progress"
ITEMS = "items"

# ---------- Timeline ----------
DEFAULT_TIMELINE_LENGTH = 5
