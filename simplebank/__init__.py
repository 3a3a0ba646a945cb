"""An in-memory banking HTTP API with accounts, cards, payments, transfers and loans."""

__version__ = "0.1.0"
__all__ = ["__version__"]