"""Checkpoint persistence for the delegation scanner."""
