"""
Shared constants used across all engine modules.

Centralises magic numbers, default headers, endpoints and tunables so they
live in exactly one place.
"""

# ---------------------------------------------------------------------------
# HTTP headers
# ---------------------------------------------------------------------------

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36"
)

COMMON_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
}

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
}

# ---------------------------------------------------------------------------
# Default endpoints
# ---------------------------------------------------------------------------

PING_ENDPOINTS = [
    {"kind": "http", "url": "https://www.cloudflare.com/cdn-cgi/trace", "weight": 1.2},
    {"kind": "http", "url": "https://www.google.com/generate_204", "weight": 1.0},
    {"kind": "http", "url": "https://httpbin.org/get", "weight": 0.9},
    {
        "kind": "img",
        "url": "https://www.google.com/images/branding/googlelogo/1x/googlelogo_color_272x92dp.png",
        "weight": 0.7,
    },
]

DOWNLOAD_URL = "https://speed.cloudflare.com/__down?bytes=100000000"
UPLOAD_URL = "https://speed.cloudflare.com/__up"

# ---------------------------------------------------------------------------
# Stage progress ranges (global percent)
# ---------------------------------------------------------------------------

PING_RANGE = (0, 10)
DOWNLOAD_RANGE = (10, 60)
UPLOAD_RANGE = (60, 100)

# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

DEFAULT_PING_COUNT = 8
DEFAULT_PING_TIMEOUT = 3.0       # seconds per latency probe
DEFAULT_DURATION = 10.0          # seconds for download / upload
MIN_DURATION = 1.0
MAX_DURATION = 300.0
MIN_PING_COUNT = 1
MAX_PING_COUNT = 100
MIN_PING_TIMEOUT = 0.1
MAX_PING_TIMEOUT = 30.0

PING_DELAY_MIN = 0.05            # randomized gap between latency probes
PING_DELAY_MAX = 0.10
SAMPLE_INTERVAL_MS = 80.0        # live throughput publish interval
READ_POLL_TIMEOUT = 1.0          # max wait for one download chunk

# ---------------------------------------------------------------------------
# Latency aggregation
# ---------------------------------------------------------------------------

RTT_CEILING_MS = 1000.0
MIN_AGGREGATE_SAMPLES = 3
IQR_FACTOR = 1.5
FAST_RTT_MS = 20.0               # below this a sample counts as "fast"
SLOW_RTT_MS = 150.0              # above this a sample counts as "slow"
FAST_SHARE = 0.5
SLOW_SHARE = 0.3
FAST_ADJUSTMENT = 0.95           # wired links: strip HTTP overhead bias
SLOW_ADJUSTMENT = 1.05           # variable wireless links
FALLBACK_PING_MS = 25.0

# ---------------------------------------------------------------------------
# Data transfer
# ---------------------------------------------------------------------------

CHUNK_SIZE = 256 * 1024          # download read size
UPLOAD_CHUNK_SIZE = 256 * 1024   # one POST body, one snapshot
EASE_THRESHOLD = 90.0            # stage percent where easing starts
EASE_RATE = 0.5

# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

HISTORY_KEY = "speedcheck-history"
HISTORY_LIMIT = 20

MIN_PING_MS = 1.0
MAX_PING_MS = 999.0
MIN_SPEED_MBPS = 0.1
DEFAULT_HISTORY_PING = 25.0
DEFAULT_HISTORY_DOWNLOAD = 15.0
DEFAULT_HISTORY_UPLOAD = 5.0

DEFAULT_PROVIDER = "Your ISP"
DEFAULT_LOCATION = "Your Location"
DEFAULT_IP = "Your IP"
