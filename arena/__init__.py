"""Arena resolver: round resolution and placement views over the game ledger."""

__version__ = "1.0.0"
