"""
Constants for the audio category subsystem.

This module defines all system-wide constants including:
- Application metadata
- Structural limits of the category tree
- Default cache, diagnostic and sync settings
- Presentation defaults
"""

from typing import Dict

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Audio Categories"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"
DATABASE_FILENAME = "audio_categories.db"

# Environment variable prefix for overrides (e.g. AUDIO_CATEGORIES_ENV)
ENV_PREFIX = "AUDIO_CATEGORIES_"

# ============================================================================
# Tree Structure
# ============================================================================

LEVEL_PRIMARY = 1
LEVEL_SECONDARY = 2

# Depth is capped at two levels; validators check against this value
MAX_DEPTH = 2

MAX_NAME_LENGTH = 100

# ============================================================================
# Query Cache
# ============================================================================

DEFAULT_CACHE_TTL_SECONDS = 600  # 10 minutes
DEFAULT_CACHE_MAX_ENTRIES = 100
DEFAULT_SLOW_QUERY_THRESHOLD_MS = 100.0
DEFAULT_EXECUTION_LOG_SIZE = 50
DEFAULT_SLOW_QUERY_LOG_SIZE = 10

# ============================================================================
# Consistency Diagnostics
# ============================================================================

HEALTH_SCORE_MAX = 100

DEFAULT_HEALTH_PENALTIES: Dict[str, int] = {
    "orphan": 10,  # per orphaned category
    "inconsistent_level": 15,  # per level/parent mismatch
    "missing_level_two": 20,  # flat, level-1 exists but no level-2
}

# ============================================================================
# Compatibility Sync
# ============================================================================

DEFAULT_SYNC_BATCH_SIZE = 100
UNCATEGORIZED_LABEL = "Uncategorized"

# ============================================================================
# Presentation
# ============================================================================

DEFAULT_CATEGORY_COLOR = "#6b7280"
