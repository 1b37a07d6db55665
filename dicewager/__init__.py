"""Dice Wager - balance-authoritative dice betting with a reconciling client cache."""

__version__ = "1.0.0"
