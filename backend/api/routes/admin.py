"""
Operator routes: reliability statistics and explicit resets.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_registry
from api.models.responses import ReliabilityResponse
from core.registry import ReliabilityRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/reliability", response_model=ReliabilityResponse)
async def reliability(registry: ReliabilityRegistry = Depends(get_registry)):
    """Breaker states, cache statistics and generation-call metrics."""
    return registry.get_stats()


@router.post("/breakers/{name}/reset")
async def reset_breaker(name: str, registry: ReliabilityRegistry = Depends(get_registry)):
    try:
        breaker = registry.breaker(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown circuit breaker: {name}")

    breaker.reset()
    logger.info(f"Circuit breaker '{name}' reset by operator")
    return breaker.get_stats()


@router.post("/caches/cleanup")
async def cleanup_caches(registry: ReliabilityRegistry = Depends(get_registry)):
    """Drop expired entries from every cache."""
    removed = {name: cache.cleanup() for name, cache in registry.caches.items()}
    return {"removed": removed}


@router.post("/caches/{name}/clear")
async def clear_cache(name: str, registry: ReliabilityRegistry = Depends(get_registry)):
    try:
        cache = registry.cache(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown cache: {name}")

    cache.clear()
    logger.info(f"Cache '{name}' cleared by operator")
    return cache.get_stats()
