"""
PrometheusRule generation for right-sizing recommendations.

Every component produces four rule groups: a 5m and a 1d group aggregated
by namespace, and the same pair aggregated by cluster.  The short-window
groups sample the component's metric table; the long-window groups take the
daily maximum and derive cpu/memory recommendations from usage.
"""

from typing import Any, Dict, List, Optional, Tuple, Union

import structlog
import yaml

from .config import settings
from .models import ComponentConfig, PrometheusRuleConfig, RightSizingConfig, RuleMetric
from .promql import compile_label_join, compile_namespace_filter

logger = structlog.get_logger(__name__)

PROMETHEUS_RULE_API_VERSION = "monitoring.coreos.com/v1"
PROMETHEUS_RULE_KIND = "PrometheusRule"

SHORT_INTERVAL = "5m"
LONG_INTERVAL = "15m"

LONG_WINDOW_LABELS = {
    "profile": "Max OverAll",
    "aggregation": "1d",
}

AGGREGATIONS = ("namespace", "cluster")

# Recommendations are derived from these usage metrics
RECOMMENDATION_SOURCES = {
    "cpu_usage": "cpu_recommendation",
    "memory_usage": "memory_recommendation",
}


# =============================================================================
# METRIC TABLES
# =============================================================================

NAMESPACE_METRICS: Tuple[RuleMetric, ...] = (
    RuleMetric(
        "cpu_request_hard",
        "kube_resourcequota",
        ('resource=~"requests.cpu"', 'type="hard"'),
        filter_last=True,
    ),
    RuleMetric(
        "cpu_request",
        "kube_pod_container_resource_requests",
        ('resource="cpu"', 'container!=""'),
    ),
    RuleMetric(
        "cpu_usage",
        "node_namespace_pod_container:container_cpu_usage_seconds_total:sum_irate",
        ('container!=""',),
    ),
    RuleMetric(
        "memory_request_hard",
        "kube_resourcequota",
        ('resource=~"requests.memory"', 'type="hard"'),
        filter_last=True,
    ),
    RuleMetric(
        "memory_request",
        "kube_pod_container_resource_requests",
        ('resource="memory"', 'container!=""'),
    ),
    RuleMetric(
        "memory_usage",
        "container_memory_working_set_bytes",
        ('container!=""',),
    ),
)

VIRTUALIZATION_METRICS: Tuple[RuleMetric, ...] = (
    RuleMetric(
        "cpu_request",
        "kubevirt_vm_resource_requests",
        ('resource="cpu"',),
        filter_last=True,
    ),
    RuleMetric("cpu_usage", "kubevirt_vmi_cpu_usage_seconds_total"),
    RuleMetric(
        "memory_request",
        "kubevirt_vm_resource_requests",
        ('resource="memory"',),
        filter_last=True,
    ),
    RuleMetric("memory_usage", "kubevirt_vmi_memory_available_bytes"),
)


# =============================================================================
# GENERATION
# =============================================================================


def _rule(record: str, expr: str, labels: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    rule: Dict[str, Any] = {"record": record, "expr": expr}
    if labels:
        rule["labels"] = dict(labels)
    return rule


def _short_window_rules(
    component: ComponentConfig, aggregation: str, namespace_filter: str, label_join: str
) -> List[Dict[str, Any]]:
    rules = []
    for metric in component.metrics:
        expr = (
            f"max_over_time(sum({metric.source}{{{metric.selector(namespace_filter)}}})"
            f" by ({aggregation})[5m:])"
        )
        if label_join:
            expr = f"{expr} {label_join}"
        rules.append(_rule(f"{component.record_prefix}:{aggregation}:{metric.name}:5m", expr))
    return rules


def _long_window_rules(
    component: ComponentConfig, aggregation: str, percentage: int
) -> List[Dict[str, Any]]:
    base = f"{component.record_prefix}:{aggregation}"
    rules = []
    for metric in component.metrics:
        rules.append(
            _rule(
                f"{base}:{metric.name}",
                f"max_over_time({base}:{metric.name}:5m[1d])",
                LONG_WINDOW_LABELS,
            )
        )
        recommendation = RECOMMENDATION_SOURCES.get(metric.name)
        if recommendation:
            rules.append(
                _rule(
                    f"{base}:{recommendation}",
                    f"max_over_time({base}:{metric.name}:5m[1d]) * ({percentage}/100)",
                    LONG_WINDOW_LABELS,
                )
            )
    return rules


def generate(
    cfg: Union[RightSizingConfig, PrometheusRuleConfig], component: ComponentConfig
) -> Dict[str, Any]:
    """Build the PrometheusRule manifest for *component* from *cfg*.

    Filter fragments are compiled before anything else, so a bad filter
    raises without producing a partial rule.
    """
    rule_config = cfg.prometheus_rule_config if isinstance(cfg, RightSizingConfig) else cfg

    namespace_filter = compile_namespace_filter(rule_config)
    label_join = compile_label_join(rule_config.label_filter_criteria)
    percentage = rule_config.recommendation_percentage

    prefix = component.group_prefix
    groups = []
    for aggregation in AGGREGATIONS:
        # Upstream group names differ in suffix between aggregations
        long_suffix = "rules" if aggregation == "namespace" else "rule"
        groups.append(
            {
                "name": f"{prefix}-{aggregation}-5m.rule",
                "interval": SHORT_INTERVAL,
                "rules": _short_window_rules(component, aggregation, namespace_filter, label_join),
            }
        )
        groups.append(
            {
                "name": f"{prefix}-{aggregation}-1d.{long_suffix}",
                "interval": LONG_INTERVAL,
                "rules": _long_window_rules(component, aggregation, percentage),
            }
        )

    logger.debug(
        "Generated PrometheusRule",
        component=component.component_type.value,
        name=component.prometheus_rule_name,
        namespace_filter=namespace_filter,
        label_join=bool(label_join),
    )

    return {
        "apiVersion": PROMETHEUS_RULE_API_VERSION,
        "kind": PROMETHEUS_RULE_KIND,
        "metadata": {
            "name": component.prometheus_rule_name,
            "namespace": settings.monitoring_namespace,
        },
        "spec": {"groups": groups},
    }


def render_yaml(rule: Dict[str, Any]) -> str:
    """YAML rendering of a generated rule, for previews."""
    return yaml.safe_dump(rule, sort_keys=False)
