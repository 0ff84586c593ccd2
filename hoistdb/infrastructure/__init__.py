"""Infrastructure Layer — the two storage engines plus locking, database and logging plumbing.

Invariants:
    - Every filesystem and driver failure is mapped to a StoreError before leaving this layer
"""
