"""
Badges module - domain-locked "Verified by TiMint" embeds.
"""

from .router import router

__all__ = ["router"]
