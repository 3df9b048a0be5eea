"""Sale configuration."""

from presale.policy.params import SaleParams

__all__ = ["SaleParams"]
