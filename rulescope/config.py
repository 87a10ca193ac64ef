"""Configuration models for rulescope."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from rulescope.exceptions import ConfigValidationError


class Role(str, Enum):
    """Role of a pipeline node.

    Values:
    * `source` - Entry point that reads from an external stream
    * `operator` - Intermediate processing stage
    * `sink` - Terminal stage that writes to an external system
    """

    SOURCE = "source"
    OPERATOR = "operator"
    SINK = "sink"

    @property
    def sort_order(self) -> int:
        return _ROLE_ORDER[self]

    @property
    def metric_prefix(self) -> str:
        """Marker that starts metric keys for nodes of this role."""
        return _ROLE_METRIC_PREFIX[self]


_ROLE_ORDER = {Role.SOURCE: 0, Role.OPERATOR: 1, Role.SINK: 2}
_ROLE_METRIC_PREFIX = {Role.SOURCE: "source_", Role.OPERATOR: "op_", Role.SINK: "sink_"}


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LoggingConfig(BaseModel):
    """
    Logging configuration.

    Example:
    ```yaml
    logging:
      level: DEBUG
      structured: true
    ```
    """

    level: LogLevel = LogLevel.INFO
    structured: bool = Field(default=False, description="Emit JSON lines instead of rich console output")


class MetricsConfig(BaseModel):
    """Metric key decoding options."""

    anchor_suffix: str = Field(
        default="records_in_total",
        description="Suffix every node emits; keys ending with it define the node prefixes",
    )

    @field_validator("anchor_suffix")
    @classmethod
    def check_known_suffix(cls, v: str) -> str:
        from rulescope.metrics import SUFFIX_FIELDS

        if v not in SUFFIX_FIELDS:
            raise ValueError(
                f"anchor_suffix '{v}' is not a recognized metric suffix. "
                f"Expected one of: {', '.join(SUFFIX_FIELDS)}"
            )
        return v


class LayoutConfig(BaseModel):
    """
    Spacing constants for the layered layout.

    Coordinates are in renderer pixels. Each layer is centered on `center_x`;
    layer `n` sits at `y = n * layer_gap + base_offset`.

    Example:
    ```yaml
    layout:
      node_width: 180
      node_gap: 100
      layer_gap: 200
      max_iterations: 100
    ```
    """

    node_width: float = Field(default=180, ge=0)
    node_height: float = Field(default=80, ge=0)
    node_gap: float = Field(default=100, ge=0)
    layer_gap: float = Field(default=200, ge=0)
    base_offset: float = Field(default=50)
    center_x: float = Field(default=0)
    max_iterations: int = Field(default=100, ge=1, description="Upper bound on breadth-first layering rounds")


class EngineConfig(BaseModel):
    """Top-level configuration for a TopologyView."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)


def load_config(path: str, env: Optional[str] = None) -> EngineConfig:
    """Load and validate an EngineConfig from a YAML file.

    Args:
        path: Path to YAML file
        env: Optional environment name selecting an `environments:` override

    Returns:
        Validated EngineConfig

    Raises:
        ConfigValidationError: If the document does not match the schema
    """
    from rulescope.utils.config_loader import load_yaml_with_env

    data = load_yaml_with_env(path, env=env)
    try:
        return EngineConfig.model_validate(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ConfigValidationError("Invalid engine configuration", file=path, errors=errors) from e
