"""Two-tranche job escrow between a client and a service provider."""

__version__ = "0.1.0"
