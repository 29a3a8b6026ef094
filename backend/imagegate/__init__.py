"""ImageGate: credit-metered proxy for AI image generation."""

__version__ = "1.0.0"
