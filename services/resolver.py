"""Resolution of user supplied image/flavor/network references to provider ids."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Sequence

from services.base import ResourceRef

logger = logging.getLogger(__name__)


def resolve_reference(reference: str, candidates: Sequence[ResourceRef]) -> str:
    """Return the provider id matching ``reference``.

    Exact ids win over exact names, which win over ``/regex/`` name matches.
    Ties go to the first candidate in listing order. A reference nothing
    matches is returned unchanged so the provider can still accept raw ids
    missing from the listing.
    """

    reference = str(reference)
    for candidate in candidates:
        if candidate.identifier == reference:
            return candidate.identifier

    for candidate in candidates:
        if candidate.name == reference:
            logger.debug("Resolved reference by name", extra={"reference": reference, "id": candidate.identifier})
            return candidate.identifier

    pattern = _as_pattern(reference)
    if pattern is not None:
        for candidate in candidates:
            if candidate.name and pattern.search(candidate.name):
                logger.debug(
                    "Resolved reference by pattern",
                    extra={"reference": reference, "id": candidate.identifier},
                )
                return candidate.identifier

    logger.info("Reference did not match any listed resource, passing through", extra={"reference": reference})
    return reference


def resolve_references(references: Iterable[str], candidates: Sequence[ResourceRef]) -> list[str]:
    """Resolve every reference of a list against the same listing."""

    return [resolve_reference(reference, candidates) for reference in references]


def _as_pattern(reference: str) -> re.Pattern[str] | None:
    if len(reference) < 2 or not (reference.startswith("/") and reference.endswith("/")):
        return None
    try:
        return re.compile(reference[1:-1])
    except re.error as exc:
        logger.warning("Ignoring invalid reference pattern", extra={"reference": reference, "error": str(exc)})
        return None
