"""
Transform raw resource records into normalized ingestion events
"""

import copy
import logging
import math
from typing import Dict, Any, Optional, List, Mapping

from core.exceptions import DataFormatError, NormalizationWarning, ConfigurationError
from ingestion.transformers.timestamps import parse_timestamp
from schemas.normalized import NormalizationContext, NormalizedEvent

logger = logging.getLogger(__name__)


def normalize(
    raw: Mapping[str, Any],
    context: NormalizationContext,
    warnings: Optional[List[NormalizationWarning]] = None
) -> NormalizedEvent:
    """
    Wrap a raw record in an event envelope.

    Never raises for timestamp problems: a missing or unparseable timestamp
    field leaves ``time`` unset and appends a NormalizationWarning to
    ``warnings`` (when given).

    Raises:
        DataFormatError: If ``raw`` is not a mapping
    """
    if not isinstance(raw, Mapping):
        raise DataFormatError(
            f"Record must be a mapping, got {type(raw).__name__}",
            context={"source": context.source}
        )

    non_finite: List[str] = []
    event = _copy_record(raw, "", non_finite)
    event_time = None

    if non_finite:
        _record(warnings, NormalizationWarning(
            "Non-finite numbers replaced with null",
            context={"fields": non_finite, "source": context.source}
        ))

    if context.timestamp_field:
        if context.timestamp_field not in event:
            _record(warnings, NormalizationWarning(
                f"Timestamp field '{context.timestamp_field}' missing",
                context={
                    "field_name": context.timestamp_field,
                    "source": context.source,
                }
            ))
        else:
            value = event[context.timestamp_field]
            try:
                event_time = parse_timestamp(value, context.timestamp_format)
            except DataFormatError as e:
                _record(warnings, NormalizationWarning(
                    f"Unparseable timestamp in field '{context.timestamp_field}'",
                    context={
                        "field_name": context.timestamp_field,
                        "field_value": value,
                        "timestamp_format": context.timestamp_format,
                        "source": context.source,
                    },
                    original_exception=e
                ))

    return NormalizedEvent(
        host=context.host,
        source=context.source,
        sourcetype=context.sourcetype,
        index=context.index,
        time=event_time,
        event=event,
    )


def _copy_record(value: Any, path: str, non_finite: List[str]) -> Any:
    """Deep copy of a record body; NaN and infinity become None (not valid JSON)."""
    if isinstance(value, Mapping):
        return {
            key: _copy_record(item, f"{path}.{key}" if path else str(key), non_finite)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_copy_record(item, f"{path}[{i}]", non_finite) for i, item in enumerate(value)]
    if isinstance(value, float) and not math.isfinite(value):
        non_finite.append(path)
        return None
    return copy.deepcopy(value)


def _record(warnings: Optional[List[NormalizationWarning]], warning: NormalizationWarning) -> None:
    if warnings is not None:
        warnings.append(warning)


class RecordNormalizer:
    """
    Normalize records of one resource category.

    Handles:
    - Envelope construction from the run's context
    - Timestamp extraction
    - Wrapping of non-mapping records
    - Warning collection
    """

    def __init__(self, context: NormalizationContext):
        if not context.index or not context.sourcetype:
            raise ConfigurationError(
                "Normalization context requires index and sourcetype",
                context={"source": context.source}
            )
        self.context = context
        self.warnings: List[NormalizationWarning] = []
        self.records_seen = 0

    def normalize(self, raw: Any) -> NormalizedEvent:
        """Normalize one record, recording (and logging) any warning."""
        self.records_seen += 1
        before = len(self.warnings)

        if not isinstance(raw, Mapping):
            self.warnings.append(NormalizationWarning(
                f"Malformed record of type {type(raw).__name__} wrapped as value",
                context={"record_index": self.records_seen, "source": self.context.source}
            ))
            raw = {"value": raw}

        event = normalize(raw, self.context, self.warnings)

        for warning in self.warnings[before:]:
            logger.warning(f"Record {self.records_seen}: {warning.message}")

        return event

    def drain_warnings(self) -> List[Dict[str, Any]]:
        """Return collected warnings as dicts and reset the buffer."""
        drained = [w.to_dict() for w in self.warnings]
        self.warnings.clear()
        return drained
