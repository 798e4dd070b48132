"""Application services composing the cache, retry policy and upstream providers."""
