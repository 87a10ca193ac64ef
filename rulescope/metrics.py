"""
Metric Key Decoder
==================

Turns the flat status payload of a running rule into one typed record per
pipeline node.

The rule engine reports runtime counters as a single flat mapping whose keys
glue a node prefix to a measurement suffix:

    source_demo_0_records_in_total      -> prefix "source_demo_0"
    op_2_decoder_0_process_latency_us   -> prefix "op_2_decoder_0"
    sink_log_0_connection_status        -> prefix "sink_log_0"

Every node emits `records_in_total`, so keys ending with that anchor define
the set of node prefixes. All other suffixes are then looked up per prefix.

Features:
- Decode a status payload into NodeMetric records sorted source/operator/sink
- Rule-level summaries for dashboards
- Suffix aggregation directly over the raw payload
- Poll-to-poll error detection and throughput deltas (caller keeps the state)
"""

import math
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from rulescope.config import Role
from rulescope.exceptions import MetricsShapeError
from rulescope.utils.logging import get_logger

# suffix -> (field name, kind). Kinds: "number", "string", "optional_number",
# "optional_string". Optional kinds stay None when the key is absent.
SUFFIX_FIELDS: Dict[str, Tuple[str, str]] = {
    "records_in_total": ("records_in", "number"),
    "records_out_total": ("records_out", "number"),
    "messages_processed_total": ("messages_processed", "number"),
    "process_latency_us": ("process_latency_us", "number"),
    "buffer_length": ("buffer_length", "number"),
    "exceptions_total": ("exceptions_total", "number"),
    "last_exception": ("last_exception", "string"),
    "last_exception_time": ("last_exception_time", "number"),
    "last_invocation": ("last_invocation", "number"),
    "connection_status": ("connection_status", "optional_number"),
    "connection_last_connected_time": ("connection_last_connected_time", "optional_number"),
    "connection_last_disconnected_time": ("connection_last_disconnected_time", "optional_number"),
    "connection_last_disconnected_message": (
        "connection_last_disconnected_message",
        "optional_string",
    ),
}

DEFAULT_ANCHOR_SUFFIX = "records_in_total"

# connection_status value reported by a connector that lost its connection
DISCONNECTED = -1

_INT_TOKEN = re.compile(r"^[+-]?\d+$")
_TRAILING_ORDINAL = re.compile(r"_\d+$")


@dataclass
class NodeMetric:
    """Runtime counters for one pipeline node."""

    id: str
    name: str
    display_name: str
    role: Role
    records_in: float = 0
    records_out: float = 0
    messages_processed: float = 0
    process_latency_us: float = 0
    buffer_length: float = 0
    exceptions_total: float = 0
    last_exception: str = ""
    last_exception_time: float = 0
    last_invocation: float = 0
    connection_status: Optional[float] = None
    connection_last_connected_time: Optional[float] = None
    connection_last_disconnected_time: Optional[float] = None
    connection_last_disconnected_message: Optional[str] = None

    @property
    def has_errors(self) -> bool:
        return self.exceptions_total > 0

    @property
    def is_disconnected(self) -> bool:
        return self.connection_status == DISCONNECTED

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["role"] = self.role.value
        return data


@dataclass
class RuleMetricsSummary:
    """Rule-level aggregates over the decoded node metrics."""

    total_in: float = 0
    total_out: float = 0
    total_exceptions: float = 0
    avg_latency_us: float = 0
    has_errors: bool = False
    source_count: int = 0
    operator_count: int = 0
    sink_count: int = 0
    disconnected_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ErrorEntry:
    """Exceptions a node raised since the previous poll."""

    node_id: str
    new_exceptions: float
    total_exceptions: float
    message: str
    exception_time: Optional[float] = None
    connection_status: Optional[float] = None
    disconnect_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ThroughputSample:
    """Per-poll deltas computed from two cumulative status snapshots."""

    messages_in: float = 0
    messages_out: float = 0
    errors: float = 0
    total_in: float = 0
    total_out: float = 0
    total_errors: float = 0
    latency_us: float = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _finite(number: float, default: Optional[float]) -> Optional[float]:
    try:
        return number if math.isfinite(number) else default
    except OverflowError:
        # int beyond float range
        return default


def _to_number(value: Any, default: Optional[float] = 0) -> Optional[float]:
    """Coerce a payload value to a number; unusable values become `default`."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return _finite(value, default)
    if isinstance(value, str):
        text = value.strip()
        try:
            return _finite(int(text), default)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return default
        return _finite(number, default)
    return default


def _to_string(value: Any, default: Optional[str] = "") -> Optional[str]:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    return str(value)


def classify_prefix(prefix: str) -> Role:
    """Infer a node role from its metric prefix marker."""
    if prefix.startswith("source_"):
        return Role.SOURCE
    if prefix.startswith("sink_"):
        return Role.SINK
    return Role.OPERATOR


def derive_names(prefix: str, role: Optional[Role] = None) -> Tuple[str, str]:
    """Derive the internal name and the display name of a metric prefix.

    Sources and sinks lose their marker and a single trailing ordinal
    (`source_my_stream_0` -> `my stream`). Operator prefixes interleave stage
    indices with name tokens (`op_2_decoder_0`, `op_log_0_1_encode_0`), so
    every purely numeric token is dropped instead.

    Args:
        prefix: Raw metric prefix
        role: Role of the prefix, inferred when omitted

    Returns:
        Tuple of (name joined with underscores, display name joined with spaces).
        Both fall back to the raw prefix when nothing survives the stripping.
    """
    role = role or classify_prefix(prefix)

    if role in (Role.SOURCE, Role.SINK) and prefix.startswith(role.metric_prefix):
        stripped = _TRAILING_ORDINAL.sub("", prefix[len(role.metric_prefix):], count=1)
        tokens = [token for token in stripped.split("_") if token]
    else:
        body = prefix[len("op_"):] if prefix.startswith("op_") else prefix
        tokens = [token for token in body.split("_") if token and not _INT_TOKEN.match(token)]

    if not tokens:
        return prefix, prefix
    return "_".join(tokens), " ".join(tokens)


class MetricKeyDecoder:
    """Decodes a flat rule status payload into NodeMetric records.

    Example:
        ```python
        decoder = MetricKeyDecoder()
        metrics = decoder.decode({"source_demo_0_records_in_total": 120})
        metrics[0].display_name  # "demo"
        ```
    """

    def __init__(self, anchor_suffix: str = DEFAULT_ANCHOR_SUFFIX):
        if anchor_suffix not in SUFFIX_FIELDS:
            raise ValueError(f"Unknown anchor suffix: {anchor_suffix}")
        self.anchor_suffix = anchor_suffix

    def prefixes(self, raw: Mapping[str, Any]) -> List[str]:
        """Return distinct node prefixes in first-seen order."""
        if not isinstance(raw, Mapping):
            raise MetricsShapeError(raw)

        anchor = "_" + self.anchor_suffix
        seen: Dict[str, None] = {}
        for key in raw.keys():
            if not isinstance(key, str) or not key.endswith(anchor):
                continue
            prefix = key[: -len(anchor)]
            if not prefix.strip("_ "):
                get_logger().debug("Skipping metric key with empty prefix", key=key)
                continue
            seen.setdefault(prefix, None)
        return list(seen)

    def decode_prefix(self, raw: Mapping[str, Any], prefix: str) -> NodeMetric:
        """Build the NodeMetric of a single prefix, defaulting absent fields."""
        role = classify_prefix(prefix)
        name, display_name = derive_names(prefix, role)

        values: Dict[str, Any] = {}
        for suffix, (field_name, kind) in SUFFIX_FIELDS.items():
            value = raw.get(f"{prefix}_{suffix}")
            if kind == "number":
                values[field_name] = _to_number(value)
            elif kind == "string":
                values[field_name] = _to_string(value)
            elif kind == "optional_number":
                values[field_name] = _to_number(value, default=None)
            else:
                values[field_name] = _to_string(value, default=None)

        return NodeMetric(id=prefix, name=name, display_name=display_name, role=role, **values)

    def decode(self, raw: Mapping[str, Any]) -> List[NodeMetric]:
        """Decode a status payload.

        Args:
            raw: Flat mapping of metric key to number or string

        Returns:
            One NodeMetric per distinct prefix, stably sorted by role
            (source, operator, sink)

        Raises:
            MetricsShapeError: If raw is not a mapping
        """
        records = [self.decode_prefix(raw, prefix) for prefix in self.prefixes(raw)]
        records.sort(key=lambda record: record.role.sort_order)

        get_logger().debug(
            "Decoded node metrics",
            keys=len(raw),
            nodes=len(records),
        )
        return records


def decode_metrics(raw: Mapping[str, Any], anchor_suffix: str = DEFAULT_ANCHOR_SUFFIX) -> List[NodeMetric]:
    """Decode a status payload with a default-configured MetricKeyDecoder."""
    return MetricKeyDecoder(anchor_suffix).decode(raw)


def filter_by_role(metrics: Iterable[NodeMetric], role: Role) -> List[NodeMetric]:
    """Return the metrics of one role, keeping their order."""
    role = Role(role)
    return [metric for metric in metrics if metric.role == role]


def summarize(metrics: Iterable[NodeMetric]) -> RuleMetricsSummary:
    """Aggregate decoded metrics into rule-level totals.

    Records in are counted at the sources and records out at the sinks, so
    a record is not counted once per stage it passes through.
    """
    metrics = list(metrics)
    summary = RuleMetricsSummary()
    if not metrics:
        return summary

    for metric in metrics:
        if metric.role == Role.SOURCE:
            summary.source_count += 1
            summary.total_in += metric.records_in
        elif metric.role == Role.SINK:
            summary.sink_count += 1
            summary.total_out += metric.records_out
        else:
            summary.operator_count += 1
        summary.total_exceptions += metric.exceptions_total
        if metric.is_disconnected:
            summary.disconnected_count += 1

    summary.has_errors = any(metric.has_errors for metric in metrics)
    summary.avg_latency_us = sum(metric.process_latency_us for metric in metrics) / len(metrics)
    return summary


def sum_by_suffix(raw: Mapping[str, Any], suffix: str, prefix: Optional[str] = None) -> float:
    """Sum every value whose key ends with `suffix` (and starts with `prefix`)."""
    total: float = 0
    for key, value in raw.items():
        if not isinstance(key, str) or not key.endswith(suffix):
            continue
        if prefix and not key.startswith(prefix):
            continue
        total += _to_number(value)
    return total


def max_by_suffix(raw: Mapping[str, Any], suffix: str) -> float:
    """Largest value whose key ends with `suffix`; 0 when none is positive."""
    largest: float = 0
    for key, value in raw.items():
        if isinstance(key, str) and key.endswith(suffix):
            largest = max(largest, _to_number(value))
    return largest


def count_disconnected(raw: Mapping[str, Any]) -> int:
    """Count connectors currently reporting a lost connection."""
    return sum(
        1
        for key, value in raw.items()
        if isinstance(key, str)
        and key.endswith("_connection_status")
        and _to_number(value, default=None) == DISCONNECTED
    )


def extract_new_errors(
    raw: Mapping[str, Any],
    previous_counts: Optional[Mapping[str, float]] = None,
) -> Tuple[List[ErrorEntry], Dict[str, float]]:
    """Report nodes whose exception counter grew since the previous poll.

    Args:
        raw: Current status payload
        previous_counts: `exceptions_total` per prefix from the previous call

    Returns:
        Tuple of (new error entries, updated counts to pass to the next call)
    """
    counts: Dict[str, float] = dict(previous_counts or {})
    entries: List[ErrorEntry] = []
    suffix = "_exceptions_total"

    for key, value in raw.items():
        if not isinstance(key, str) or not key.endswith(suffix):
            continue
        total = _to_number(value)
        if total <= 0:
            continue

        prefix = key[: -len(suffix)]
        new_exceptions = total - counts.get(prefix, 0)
        counts[prefix] = total
        if new_exceptions <= 0:
            continue

        last_exception = raw.get(f"{prefix}_last_exception")
        disconnect_message = raw.get(f"{prefix}_connection_last_disconnected_message")
        if isinstance(last_exception, str) and last_exception:
            message = last_exception
        elif isinstance(disconnect_message, str) and disconnect_message:
            message = f"Connection error: {disconnect_message}"
        else:
            message = f"{new_exceptions:g} new exception(s)"

        entries.append(
            ErrorEntry(
                node_id=prefix,
                new_exceptions=new_exceptions,
                total_exceptions=total,
                message=message,
                exception_time=_to_number(raw.get(f"{prefix}_last_exception_time"), default=None),
                connection_status=_to_number(raw.get(f"{prefix}_connection_status"), default=None),
                disconnect_message=disconnect_message if isinstance(disconnect_message, str) else None,
            )
        )

    if entries:
        get_logger().debug("New exceptions detected", nodes=[entry.node_id for entry in entries])
    return entries, counts


def _totals(raw: Mapping[str, Any]) -> Tuple[float, float, float]:
    total_in = sum_by_suffix(raw, "records_in_total", "source_")
    total_out = sum_by_suffix(raw, "records_out_total", "sink_") or sum_by_suffix(
        raw, "records_out_total", "source_"
    )
    total_errors = sum_by_suffix(raw, "exceptions_total")
    return total_in, total_out, total_errors


def throughput_delta(
    current: Mapping[str, Any],
    previous: Optional[Mapping[str, Any]] = None,
) -> ThroughputSample:
    """Compute per-poll throughput from two cumulative status payloads.

    Without a previous payload every delta is zero. Counter resets (engine
    restart) clamp the delta at zero instead of going negative.
    """
    total_in, total_out, total_errors = _totals(current)
    if previous is None:
        prev_in, prev_out, prev_errors = total_in, total_out, total_errors
    else:
        prev_in, prev_out, prev_errors = _totals(previous)

    return ThroughputSample(
        messages_in=max(0, total_in - prev_in),
        messages_out=max(0, total_out - prev_out),
        errors=max(0, total_errors - prev_errors),
        total_in=total_in,
        total_out=total_out,
        total_errors=total_errors,
        latency_us=max_by_suffix(current, "process_latency_us"),
    )
