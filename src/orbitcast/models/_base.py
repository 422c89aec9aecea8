"""Base model for orbitcast domain objects.

Every model inherits from :class:`OrbitcastBaseModel` which provides:

* ``alias_generator=to_camel`` so JSON output uses the camelCase names
  consumers of the feed expect (``capturedAt``, ``subjectId``).
* ``populate_by_name=True`` so Python code constructs models with
  snake_case field names.
* Frozen instances: records are immutable once built.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class OrbitcastBaseModel(BaseModel):
    """Base for orbitcast models."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )
