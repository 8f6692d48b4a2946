"""
API v1 package.
"""
from saaskit.api.v1.api import api_router

__all__ = ["api_router"]
