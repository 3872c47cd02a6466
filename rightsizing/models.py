"""
Data model for right-sizing components.

The configuration models mirror the YAML stored in each component's
ConfigMap (camelCase keys) and accept snake_case names as well, so they can
be built directly in code and tests.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ComponentType(str, Enum):
    """Right-sizing component variants."""

    NAMESPACE = "namespace"
    VIRTUALIZATION = "virtualization"


# =============================================================================
# CONFIGMAP DATA
# =============================================================================


class NamespaceFilterCriteria(BaseModel):
    """Namespace inclusion/exclusion patterns (PromQL regex alternatives)."""

    model_config = ConfigDict(populate_by_name=True)

    inclusion_criteria: List[str] = Field(default_factory=list, alias="inclusionCriteria")
    exclusion_criteria: List[str] = Field(default_factory=list, alias="exclusionCriteria")

    @field_validator("inclusion_criteria", "exclusion_criteria", mode="before")
    @classmethod
    def none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value


class LabelFilter(BaseModel):
    """Inclusion/exclusion patterns for one namespace label."""

    model_config = ConfigDict(populate_by_name=True)

    label_name: str = Field("", alias="labelName")
    inclusion_criteria: List[str] = Field(default_factory=list, alias="inclusionCriteria")
    exclusion_criteria: List[str] = Field(default_factory=list, alias="exclusionCriteria")

    @field_validator("inclusion_criteria", "exclusion_criteria", mode="before")
    @classmethod
    def none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value


class PrometheusRuleConfig(BaseModel):
    """Filter and markup settings that drive rule generation."""

    model_config = ConfigDict(populate_by_name=True)

    namespace_filter_criteria: NamespaceFilterCriteria = Field(
        default_factory=NamespaceFilterCriteria, alias="namespaceFilterCriteria"
    )
    label_filter_criteria: List[LabelFilter] = Field(
        default_factory=list, alias="labelFilterCriteria"
    )
    recommendation_percentage: int = Field(0, alias="recommendationPercentage")

    @field_validator("namespace_filter_criteria", mode="before")
    @classmethod
    def none_to_filter(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("label_filter_criteria", mode="before")
    @classmethod
    def none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value


class RightSizingConfig(BaseModel):
    """Decoded contents of a right-sizing ConfigMap.

    ``placement_configuration`` is passed through untouched to the
    Placement resource; only its ``spec`` is used.
    """

    model_config = ConfigDict(populate_by_name=True)

    prometheus_rule_config: PrometheusRuleConfig = Field(
        default_factory=PrometheusRuleConfig, alias="prometheusRuleConfig"
    )
    placement_configuration: Dict[str, Any] = Field(
        default_factory=dict, alias="placementConfiguration"
    )

    @field_validator("placement_configuration", mode="before")
    @classmethod
    def none_to_dict(cls, value: Any) -> Any:
        return {} if value is None else value

    def placement_spec(self) -> Dict[str, Any]:
        return dict(self.placement_configuration.get("spec") or {})


# =============================================================================
# COMPONENT DESCRIPTORS AND STATE
# =============================================================================


@dataclass(frozen=True)
class RuleMetric:
    """One aggregated metric of the short-window rule groups.

    ``source`` is the series to aggregate and ``matchers`` are the fixed
    label matchers placed next to the namespace filter (before it when
    ``filter_last`` is set).
    """

    name: str
    source: str
    matchers: Tuple[str, ...] = ()
    filter_last: bool = False

    def selector(self, namespace_filter: str) -> str:
        if self.filter_last:
            parts = list(self.matchers) + [namespace_filter]
        else:
            parts = [namespace_filter] + list(self.matchers)
        return ", ".join(parts)


@dataclass(frozen=True)
class ComponentConfig:
    """Immutable per-variant descriptor. Created once, never mutated."""

    component_type: ComponentType
    configmap_name: str
    placement_name: str
    placement_binding_name: str
    policy_name: str
    prometheus_rule_name: str
    default_namespace: str
    record_prefix: str
    group_prefix: str
    metrics: Tuple[RuleMetric, ...]
    default_data: Callable[[], Dict[str, str]]

    @property
    def configuration_policy_name(self) -> str:
        return f"{self.policy_name}-config"


@dataclass
class ComponentState:
    """Committed state of one component, owned by its controller."""

    namespace: str
    enabled: bool = False

    def snapshot(self) -> "ComponentState":
        return ComponentState(namespace=self.namespace, enabled=self.enabled)


# =============================================================================
# VALIDATION RESULTS
# =============================================================================


@dataclass
class ValidationIssue:
    """A single configuration problem."""

    component: Optional[ComponentType]
    field: str
    message: str

    def __str__(self) -> str:
        component = self.component.value if self.component else "right-sizing"
        return f"{component} component validation failed for {self.field}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component.value if self.component else None,
            "field": self.field,
            "message": self.message,
        }


@dataclass
class ValidationResult:
    """Accumulates validation issues; never raised."""

    valid: bool = True
    errors: List[ValidationIssue] = field(default_factory=list)

    def add_error(
        self, component: Optional[ComponentType], field_name: str, message: str
    ) -> None:
        self.valid = False
        self.errors.append(ValidationIssue(component, field_name, message))

    def merge(self, other: "ValidationResult") -> None:
        if not other.valid:
            self.valid = False
            self.errors.extend(other.errors)

    def summary(self) -> str:
        if self.valid:
            return "Configuration is valid"
        lines = [f"Found {len(self.errors)} validation errors:"]
        for i, issue in enumerate(self.errors, start=1):
            lines.append(f"  {i}. {issue}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [issue.to_dict() for issue in self.errors],
        }
