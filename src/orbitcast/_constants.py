"""Internal constants shared across the library."""

USER_AGENT = "orbitcast/0.1"

# Upstream ISS position feed (Open Notify). Polled at most every 5 seconds.
FEED_URL = "http://api.open-notify.org/iss-now.json"
FEED_SUCCESS = "success"
DEFAULT_PUBLISH_INTERVAL = 5.0

LEDGER_URL = "http://localhost:8545"
NOTIFICATION_ID = "ISSPositionUpdated"

# ------------------------------------------------------------------
# Tracked subject defaults (single-orbit tracker)
# ------------------------------------------------------------------

SUBJECT_LABEL = "ISS"
SUBJECT_ELEVATION_M = 408_000
SUBJECT_PRECISION_M = 1_000
SUBJECT_SPEED_KMH = 27_600

# ------------------------------------------------------------------
# Consumer side
# ------------------------------------------------------------------

DEFAULT_TRAIL_CAPACITY = 100
DEFAULT_RECONNECT_DELAY = 3.0
DEFAULT_SUBSCRIBE_RETRY_DELAY = 5.0

PUSH_PORT = 8883
PUSH_TOPIC_PREFIX = "orbitcast"

# Coordinates are stored as integer micro-degrees.
COORDINATE_SCALE = 1_000_000
