"""FPL API access: client, models, errors and the cache-backed service."""
