"""
Certificates module - PDF proof of registration for verified founders.
"""

from .router import router

__all__ = ["router"]
