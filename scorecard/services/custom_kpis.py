"""Custom KPI values from schema-declared form fields.

A form schema lists its KPI fields under ``kpis``; each descriptor may carry
``selectedKpiSlug`` naming the catalog KPI it feeds. Values for agency-defined
(``custom_``) slugs are stored under the slug, never the field key, so
relabelling the KPI or renaming its field keeps history in place.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from scorecard.models.kpi import CUSTOM_KPI_PREFIX
from scorecard.services.metric_keys import to_decimal

logger = logging.getLogger(__name__)

_PRESELECTED_FIELD = re.compile(r"^preselected_kpi_\d+_(?P<name>.+)$")


@dataclass(frozen=True)
class KpiFieldBinding:
    field_key: str | None
    kpi_slug: str
    kpi_id: str | None = None

    @property
    def is_custom(self) -> bool:
        return self.kpi_slug.startswith(CUSTOM_KPI_PREFIX)


def schema_bindings(schema: Mapping[str, Any] | None) -> list[KpiFieldBinding]:
    """Read the ``field_key -> kpi_slug`` table declared by a form schema."""
    if not isinstance(schema, Mapping):
        return []
    descriptors = schema.get("kpis")
    if not isinstance(descriptors, list):
        return []

    bindings: list[KpiFieldBinding] = []
    for descriptor in descriptors:
        if not isinstance(descriptor, Mapping):
            continue
        slug = descriptor.get("selectedKpiSlug")
        if not isinstance(slug, str) or not slug.strip():
            continue
        field_key = descriptor.get("key")
        kpi_id = descriptor.get("selectedKpiId")
        bindings.append(
            KpiFieldBinding(
                field_key=field_key if isinstance(field_key, str) and field_key else None,
                kpi_slug=slug.strip(),
                kpi_id=str(kpi_id) if kpi_id else None,
            )
        )
    return bindings


def payload_candidates(field_key: str | None) -> list[str]:
    """Payload keys to try for a field: the declared key, then its stripped canonical name."""
    if not field_key:
        return []
    candidates = [field_key]
    match = _PRESELECTED_FIELD.match(field_key)
    if match:
        candidates.append(match.group("name"))
    return candidates


def extract_custom_kpis(schema: Mapping[str, Any] | None, payload: Mapping[str, Any] | None) -> dict[str, float]:
    values: dict[str, float] = {}
    if not payload:
        return values

    for binding in schema_bindings(schema):
        if not binding.is_custom:
            continue
        for key in payload_candidates(binding.field_key):
            raw = payload.get(key)
            if raw is None or raw == "":
                continue
            parsed = to_decimal(raw)
            if parsed is None:
                logger.warning(
                    "Ignoring non-numeric value %r for custom KPI %s (field %s)", raw, binding.kpi_slug, key
                )
                break
            values[binding.kpi_slug] = float(parsed)
            break
    return values
