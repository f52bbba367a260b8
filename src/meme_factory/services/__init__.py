"""Service layer: rate limiting, moderation, caption generation, rendering, orchestration."""
