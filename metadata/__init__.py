"""Metadata lookups used to enrich source tracks."""
