"""
Centralized application constants.

This file acts as the single point of truth for the business rules shared
by the fetcher, normalizer, classifier and scheduler.
"""

# ==============================================================================
# PROVIDER API
# ==============================================================================

DEFAULT_BASE_URL = "https://pos.pages.fm/api/v1"

# Fixed page size for order listing (provider maximum)
ORDER_PAGE_SIZE = 100

# Hard safety bound on pages fetched per endpoint (100,000 orders)
MAX_PAGES = 1000

# ==============================================================================
# STATUS CODES
# ==============================================================================

# Numeric sub-status / status codes reported by the provider
STATUS_CODE_SHIPPED = 1
STATUS_CODE_DELIVERED = 7
STATUS_CODE_RETURNED = 8

# Exact status names that rule out the "sent" bucket
SHIPPED_STATUS_NAME = "shipped"
TERMINAL_STATUS_NAMES = ("delivered", "returned", "received")

# Substring vocabularies (lowercase) for free-text status fields
DELIVERED_VOCABULARY = ("đã nhận", "received", "nhận", "delivered", "đã giao")
RETURNED_VOCABULARY = ("đã hoàn", "returned", "hoàn", "return")
CANCELLED_VOCABULARY = ("cancelled", "canceled", "hủy")

# ==============================================================================
# WARNING TIERS
# ==============================================================================

# Days elapsed since send date for orders still in the "sent" bucket.
# 0-5 days: no warning, 6-14 days: yellow, more than 14 days: red.
# A missing or unparsable send date is red.
YELLOW_WARNING_MIN_DAYS = 6
RED_WARNING_MIN_DAYS = 15

# ==============================================================================
# REGIONAL SETTINGS
# ==============================================================================

# Business timezone (Indochina Time is UTC+7)
TIMEZONE_OFFSET_HOURS = 7

# ==============================================================================
# SYNC CONFIGURATION
# ==============================================================================

# Background poll interval
DEFAULT_POLL_INTERVAL_SECONDS = 30

# Cache is considered fresh for this long after the last successful save
CACHE_FRESHNESS_SECONDS = 300

# Number of sync runs kept for the status endpoint
SYNC_HISTORY_LIMIT = 10

# Metadata row key and schema version for the persisted snapshot
CACHE_METADATA_KEY = "cache"
CACHE_SCHEMA_VERSION = 1

# Marker set on records that came from the returned-orders endpoint
RETURNED_ENDPOINT_FLAG = "from_returned_endpoint"
