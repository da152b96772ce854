"""Risk budget tracking with durable, multi-tier persisted state."""

__version__ = "1.0.0"
