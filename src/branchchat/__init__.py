"""branchchat: branching conversation graphs with streaming regeneration."""

__version__ = "0.1.0"
