"""Core Layer — pure domain logic: types, errors, codec, query accumulation and evaluation.

Invariants:
    - No module in core/ imports from services/ or infrastructure/
    - No IO: files, locks and database connections live in infrastructure/
"""
