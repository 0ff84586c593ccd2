"""Services Layer — the adapter applications talk to."""
