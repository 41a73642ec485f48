"""Donation ledger models and reader."""
