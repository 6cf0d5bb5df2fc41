"""
Centralized constants for the feed snapshot, caches and scheduler (Encapsulate What Changes).

Change job IDs, blob keys or cache windows here instead of scattering literals across main,
services and routes. Secrets and deployment-specific values live in app.config.
"""

# Scheduler job IDs (must match ids used in main.py add_job)
PRICE_UPDATE_JOB_ID = "price_update"

# Blob storage: the denormalized snapshot every page reads
FEED_BLOB_KEY = "feed.json"
FEED_CONTENT_TYPE = "application/json"
# Downstream CDN hint; short so it stays in step with the page regeneration interval
FEED_CACHE_CONTROL = "public, max-age=60"

# In-memory cache keys (logical resource names)
CACHE_KEY_FEED = "feed.json"
CACHE_KEY_PRICES = "stock-prices.json"

# Cache windows (seconds). Prices tolerate a longer stale window than the post list.
FEED_CACHE_TTL_SECONDS = 60.0
FEED_CACHE_STALE_SECONDS = 120.0
PRICES_CACHE_TTL_SECONDS = 60.0
PRICES_CACHE_STALE_SECONDS = 300.0

# Averaging down: at most this many extra entries per post
MAX_AVERAGING_ENTRIES = 3

# Return rates are surfaced and persisted with this precision
RETURN_RATE_DECIMALS = 2

# Batch updater: delay between upstream quote requests (KIS allows ~20 req/s)
DEFAULT_QUOTE_REQUEST_DELAY_MS = 100
# Historical price lookups get one retry on upstream failure
HISTORICAL_FETCH_RETRIES = 1

# Snapshot writes: conditional-write attempts before falling back to last-writer-wins
SNAPSHOT_WRITE_RETRIES = 3

# Write-heavy user actions: posts per author per window
POST_RATE_LIMIT = 10
POST_RATE_WINDOW_SECONDS = 60 * 60

# Invalidation default path (site root)
DEFAULT_REVALIDATE_PATH = "/"

# Upstream token: refresh this long before the provider's stated expiry
TOKEN_EXPIRY_BUFFER_SECONDS = 5 * 60
