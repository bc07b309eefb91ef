"""
Engine services: solar position, shadow projection, confidence scoring,
exposure orchestration, timelines, precomputation and caching.

Import from the submodules directly; this package does not re-export them
so that repositories can depend on ``services.entities`` without cycles.
"""
