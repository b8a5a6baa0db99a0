"""Central constants for TidalVoice.

Only put small, stable primitives here – avoid runtime/config dependent values.
"""

# Cache namespace shared by all catalog lookups
CATALOG_NAMESPACE = "catalog"

# Cache TTL per catalog operation kind (seconds)
CATALOG_TTL_SECONDS = {
    "user_info": 300,
    "search": 900,
    "tracks": 1800,
    "albums": 3600,
    "playlists": 3600,
    "artists": 3600,
    "stream_url": 1800,
    "favorites": 300,
    "user_playlists": 300,
    "recommendations": 600,
}

# Playback snapshots expire passively after this many seconds (24h)
PLAYBACK_TTL_SECONDS = 24 * 60 * 60

# DynamoDB caps batch writes at 25 requests
BATCH_WRITE_LIMIT = 25

# Status codes the resilient client never retries
NON_RETRYABLE_STATUS = frozenset({400, 401, 403, 404})

# Jitter is drawn from [0, JITTER_RATIO * delay]
JITTER_RATIO = 0.2

# Secondary index resolving access token -> refresh token
ACCESS_TOKEN_INDEX = "AccessTokenIndex"

# Owner recorded for token pairs saved without a known user
ANONYMOUS_USER_ID = "anonymous"

# Resource types requested by the multi-type search
SEARCH_TYPES = ("ARTISTS", "ALBUMS", "TRACKS", "PLAYLISTS")

# Page sizes used by catalog lookups
SEARCH_LIMIT = 10
PLAYLIST_TRACKS_LIMIT = 50
