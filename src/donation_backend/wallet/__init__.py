"""Wallet provider interface and session state machine."""
