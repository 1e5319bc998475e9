"""chatlens: resilient AI analysis of chat conversations."""

__version__ = "1.0.0"
