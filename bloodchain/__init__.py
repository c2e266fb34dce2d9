"""Blood-donation lifecycle and inventory coordination core."""

__version__ = "1.0.0"
