"""
Request-scoped access to application state.
"""
from fastapi import Request

from core.registry import ReliabilityRegistry


def get_registry(request: Request) -> ReliabilityRegistry:
    """The registry built at startup."""
    return request.app.state.registry
