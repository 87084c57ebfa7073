from request_cache.request_cache import (
    DEFAULT_TTLS,
    CacheEntry,
    CacheKey,
    CacheStats,
    EndpointKind,
    RequestCache,
)
