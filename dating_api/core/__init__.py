"""
Core utilities shared across the dating API.

Configuration, logging setup, password hashing, rate limiting and the
per-key locking primitive used by the quota service live here, so routers
and services do not read os.environ or build locks on their own.
"""
