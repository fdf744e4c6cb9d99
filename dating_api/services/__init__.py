"""
High-level use cases for the dating API.

Each service module orchestrates repositories/stores to implement business
rules (register, log in, pick the next candidate, consume quota, ...).
Routers call these services instead of touching sessions or tables directly.
"""
