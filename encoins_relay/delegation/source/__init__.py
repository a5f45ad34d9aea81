"""Ledger indexer access for the delegation scanner."""
