"""Caching layer - stream URL cache used by playback and sync maintenance."""

from streamsync.application.cache.stream_cache import (
    ExpiringEntries,
    StreamCacheStore,
    detect_bitrate,
    detect_codec,
)

__all__ = [
    "ExpiringEntries",
    "StreamCacheStore",
    "detect_bitrate",
    "detect_codec",
]
