"""Contribution ledger — tier distribution and participant accounting."""

from presale.ledger.tier_ledger import TierLedger

__all__ = ["TierLedger"]
