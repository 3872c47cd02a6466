"""
Accessors for the MultiClusterObservability governing resource.

The resource is handled as the plain dict returned by the Kubernetes API.
"""

from typing import Any, Dict, Optional, Tuple

from .config import settings
from .models import ComponentType

# Per-component section under spec.capabilities.platform.analytics
ANALYTICS_FIELDS = {
    ComponentType.NAMESPACE: "namespaceRightSizingRecommendation",
    ComponentType.VIRTUALIZATION: "virtualizationRightSizingRecommendation",
}


def _platform(mco: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not mco:
        return None
    capabilities = (mco.get("spec") or {}).get("capabilities") or {}
    platform = capabilities.get("platform")
    return platform if isinstance(platform, dict) else None


def name_of(mco: Optional[Dict[str, Any]]) -> str:
    if not mco:
        return ""
    return (mco.get("metadata") or {}).get("name") or ""


def is_platform_configured(mco: Optional[Dict[str, Any]]) -> bool:
    """True when ``spec.capabilities.platform`` is present."""
    return _platform(mco) is not None


def get_component_settings(
    mco: Optional[Dict[str, Any]], component_type: ComponentType
) -> Tuple[bool, str]:
    """Return ``(enabled, namespace_binding)`` for *component_type*.

    An unconfigured platform section reads as ``(False, "")``.
    """
    platform = _platform(mco)
    if platform is None:
        return False, ""

    analytics = platform.get("analytics") or {}
    section = analytics.get(ANALYTICS_FIELDS[component_type]) or {}
    return bool(section.get("enabled", False)), section.get("namespaceBinding") or ""


def is_paused(mco: Optional[Dict[str, Any]]) -> bool:
    annotations = ((mco or {}).get("metadata") or {}).get("annotations") or {}
    value = annotations.get(settings.pause_annotation, "")
    return str(value).lower() == "true"
