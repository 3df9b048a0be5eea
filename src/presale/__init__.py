"""Tiered presale — contribution ledger with cross-tier overflow.

Contributions fill three cumulative capacity tiers in order. Overflow
from an exhausted tier rolls into the next, and filling the final tier
closes the sale. Changes to the contribution increment go through a
mandatory timelock.
"""

__version__ = "0.1.0"
