"""ENCOINS relay delegation tracker.

Scans the ledger for delegation declarations made with the governing
token, keeps a deduplicated registry of them and publishes the
per-endpoint delegated balances used by the relay servers.
"""
