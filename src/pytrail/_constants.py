"""Internal constants shared across the library."""

#: Mean Earth radius used by the haversine formula, in metres.
EARTH_RADIUS_M = 6_371_000.0

DEFAULT_OFF_ROUTE_THRESHOLD_M = 50.0

# ------------------------------------------------------------------
# Publisher cadence (seconds)
# ------------------------------------------------------------------

VISIBLE_PUBLISH_INTERVAL_S = 3.0
HIDDEN_PUBLISH_INTERVAL_S = 10.0

# ------------------------------------------------------------------
# Position sampler
# ------------------------------------------------------------------

SAMPLE_TIMEOUT_MS = 10_000
SAMPLE_MAX_CACHE_AGE_MS = 0
SAMPLER_MAX_RETRIES = 3
SAMPLER_RETRY_DELAY_S = 5.0

#: Label used when a participant's display name cannot be resolved.
UNKNOWN_NICKNAME = "Unknown"

# ------------------------------------------------------------------
# Backend table / topic layout
# ------------------------------------------------------------------

LOCATIONS_TABLE = "locations"
USERS_TABLE = "users"
ROUTES_TABLE = "routes"
LOCATION_CONFLICT_KEY = "session_id,user_id"
MQTT_TOPIC_TEMPLATE = "pytrail/sessions/{session_id}/locations"
USER_AGENT = "pytrail"


def attempt_message(attempt: int, max_attempts: int) -> str:
    """Advisory text shown while the sampler retries an unavailable position."""
    return f"Acquiring position... (attempt {attempt}/{max_attempts})"
