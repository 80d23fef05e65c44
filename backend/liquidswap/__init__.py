"""LiquidSwap trade offer negotiation backend."""

__version__ = "1.0.0"
