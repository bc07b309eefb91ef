"""
Error taxonomy for the sun exposure engine.

- InvalidArgumentError: rejected before any computation, never retried.
- NotFoundError: unknown patio or building id.
- TransientDependencyError: a cache tier or repository call failed. Callers
  catch it at the tier boundary and fall through.
- SchedulerError: a precomputation run failed; the schedule is marked failed.

Low sun and missing building heights are not errors. They produce
low-confidence results with quality issues attached.
"""


class SunExposureError(Exception):
    """Base class for engine errors."""


class InvalidArgumentError(SunExposureError, ValueError):
    """An input is out of range or malformed."""


class NotFoundError(SunExposureError, LookupError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class TransientDependencyError(SunExposureError):
    """A collaborator (cache tier, repository) is temporarily unavailable."""


class SchedulerError(SunExposureError):
    """A precomputation run could not complete."""
