"""
Validation of right-sizing settings.

Governing-resource checks accumulate into a ValidationResult so every
problem is reported at once.  ConfigMap data checks fail fast with
ConfigValidationError, since one bad field already makes the data unusable.
"""

import re
from typing import Any, Dict, Optional

import structlog

from .config import settings
from .errors import ConfigValidationError
from .mco import get_component_settings, is_platform_configured, name_of
from .metrics import rs_validation_errors_total
from .models import ComponentType, RightSizingConfig, ValidationResult

logger = structlog.get_logger(__name__)

DNS1123_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
MAX_NAMESPACE_LENGTH = 63

MIN_RECOMMENDATION_PERCENTAGE = 100
MAX_RECOMMENDATION_PERCENTAGE = 200


def validate_namespace_name(namespace: str) -> Optional[str]:
    """Return an error message for an unusable namespace, or None."""
    if not namespace:
        return "namespace cannot be empty"
    if not DNS1123_LABEL.match(namespace):
        return f"namespace '{namespace}' is invalid: must be a valid DNS-1123 label"
    if len(namespace) > MAX_NAMESPACE_LENGTH:
        return (
            f"namespace '{namespace}' is too long: maximum length is "
            f"{MAX_NAMESPACE_LENGTH} characters"
        )
    if namespace in settings.reserved_namespaces:
        return f"namespace '{namespace}' is reserved and cannot be used"
    return None


def _basic_error(mco: Optional[Dict[str, Any]]) -> Optional[str]:
    if mco is None:
        return "MultiClusterObservability cannot be nil"
    if not name_of(mco):
        return "MultiClusterObservability must have a name"
    return None


def _validate_binding(
    mco: Dict[str, Any], component_type: ComponentType, result: ValidationResult
) -> None:
    enabled, binding = get_component_settings(mco, component_type)
    if enabled and binding:
        message = validate_namespace_name(binding)
        if message:
            result.add_error(component_type, "namespaceBinding", message)


def validate_component(
    mco: Optional[Dict[str, Any]], component_type: ComponentType
) -> ValidationResult:
    result = ValidationResult()

    error = _basic_error(mco)
    if error:
        result.add_error(component_type, "mco", error)
        return result

    if not is_platform_configured(mco):
        return result

    _validate_binding(mco, component_type, result)
    return result


def validate_all_components(mco: Optional[Dict[str, Any]]) -> ValidationResult:
    """Validate every component plus the constraints between them."""
    result = ValidationResult()

    error = _basic_error(mco)
    if error:
        result.add_error(None, "mco", error)
        return result

    if not is_platform_configured(mco):
        return result

    for component_type in ComponentType:
        result.merge(validate_component(mco, component_type))

    ns_enabled, ns_binding = get_component_settings(mco, ComponentType.NAMESPACE)
    virt_enabled, virt_binding = get_component_settings(mco, ComponentType.VIRTUALIZATION)
    if ns_enabled and virt_enabled and ns_binding and ns_binding == virt_binding:
        result.add_error(
            None,
            "namespaceBinding",
            "namespace and virtualization components cannot use the same "
            f"namespace binding: {ns_binding}",
        )

    for issue in result.errors:
        component = issue.component.value if issue.component else "all"
        rs_validation_errors_total.labels(component=component).inc()

    if not result.valid:
        logger.warning("Right-sizing configuration invalid", errors=len(result.errors))
    return result


def validate_config_data(cfg: RightSizingConfig) -> None:
    """Raise ConfigValidationError on the first structural problem."""
    rule_config = cfg.prometheus_rule_config

    percentage = rule_config.recommendation_percentage
    if not MIN_RECOMMENDATION_PERCENTAGE <= percentage <= MAX_RECOMMENDATION_PERCENTAGE:
        raise ConfigValidationError(
            f"recommendation percentage must be between {MIN_RECOMMENDATION_PERCENTAGE} "
            f"and {MAX_RECOMMENDATION_PERCENTAGE}, got: {percentage}"
        )

    ns_filter = rule_config.namespace_filter_criteria
    if ns_filter.inclusion_criteria and ns_filter.exclusion_criteria:
        raise ConfigValidationError(
            "cannot specify both inclusion and exclusion criteria for namespace filtering"
        )

    for i, label_filter in enumerate(rule_config.label_filter_criteria):
        if not label_filter.label_name:
            raise ConfigValidationError(f"label filter {i}: label name cannot be empty")
        if label_filter.inclusion_criteria and label_filter.exclusion_criteria:
            raise ConfigValidationError(
                f"label filter {i} ({label_filter.label_name}): cannot specify both "
                "inclusion and exclusion criteria"
            )
