"""
API modules for the Patio Sun Exposure service.
"""
from sunexposure.api.buildings import router as buildings_router
from sunexposure.api.cache import router as cache_router
from sunexposure.api.precomputation import router as precomputation_router
from sunexposure.api.solar import router as solar_router
from sunexposure.api.sun_exposure import router as sun_exposure_router
from sunexposure.api.timeline import router as timeline_router

__all__ = [
    "sun_exposure_router",
    "timeline_router",
    "solar_router",
    "precomputation_router",
    "cache_router",
    "buildings_router",
]
