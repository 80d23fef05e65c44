"""Core utilities: errors, events, rate limiting, security and logging."""
