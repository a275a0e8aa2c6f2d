"""
Key/value backends for presence: Redis (shared across workers) or in-memory.
"""
