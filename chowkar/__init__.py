"""
Chowkar - local gig-work marketplace core.

Bid negotiation, chat session gating and inbox reconciliation.
"""

try:
    from importlib.metadata import version

    __version__ = version("chowkar")
except Exception:
    __version__ = "0.0.0"

__all__ = ["__version__"]
