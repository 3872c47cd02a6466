"""
Policy wrapping for generated PrometheusRules.

A PrometheusRule is distributed to managed clusters by embedding it in a
ConfigurationPolicy, which is itself embedded in a Policy.  Before the
Policy is deleted its object templates are flipped to ``mustnothave`` so the
policy framework removes the rule from the managed clusters.
"""

import asyncio
import json
from typing import Any, Dict, Optional

import structlog

from .config import settings
from .k8s_client import POLICY, K8sClient, get_k8s_client
from .models import ComponentConfig
from .rules import PROMETHEUS_RULE_API_VERSION, PROMETHEUS_RULE_KIND

logger = structlog.get_logger(__name__)

CONFIGURATION_POLICY_KIND = "ConfigurationPolicy"

MUST_ONLY_HAVE = "mustonlyhave"
MUST_NOT_HAVE = "mustnothave"


def build_configuration_policy(rule: Dict[str, Any], name: str) -> Dict[str, Any]:
    """ConfigurationPolicy enforcing exactly *rule* in the monitoring namespace."""
    # Round-trip through JSON so the embedded definition is plain data
    definition = json.loads(json.dumps(rule))
    return {
        "apiVersion": POLICY.api_version,
        "kind": CONFIGURATION_POLICY_KIND,
        "metadata": {"name": name},
        "spec": {
            "remediationAction": "enforce",
            "severity": "low",
            "pruneObjectBehavior": "DeleteAll",
            "namespaceSelector": {"include": [settings.monitoring_namespace]},
            "object-templates": [
                {
                    "complianceType": MUST_ONLY_HAVE,
                    "objectDefinition": definition,
                }
            ],
        },
    }


def build_policy(rule: Dict[str, Any], component: ComponentConfig, namespace: str) -> Dict[str, Any]:
    config_policy = build_configuration_policy(rule, component.configuration_policy_name)
    return {
        "apiVersion": POLICY.api_version,
        "kind": POLICY.kind,
        "metadata": {"name": component.policy_name, "namespace": namespace},
        "spec": {
            "remediationAction": "enforce",
            "disabled": False,
            "policy-templates": [{"objectDefinition": config_policy}],
        },
    }


def _flip_compliance(policy: Dict[str, Any]) -> int:
    """Switch mustonlyhave templates to mustnothave in place. Returns count."""
    flipped = 0
    for template in policy.get("spec", {}).get("policy-templates") or []:
        definition = template.get("objectDefinition") or {}
        for obj in definition.get("spec", {}).get("object-templates") or []:
            if obj.get("complianceType") == MUST_ONLY_HAVE:
                obj["complianceType"] = MUST_NOT_HAVE
                flipped += 1
    return flipped


class PolicyWrapper:
    """Creates, updates and retires the Policy carrying a component's rule."""

    def __init__(self, component: ComponentConfig, k8s: Optional[K8sClient] = None):
        self.component = component
        self._k8s = k8s

    @property
    def k8s(self) -> K8sClient:
        if self._k8s is None:
            self._k8s = get_k8s_client()
        return self._k8s

    async def apply(self, rule: Dict[str, Any], namespace: str) -> Dict[str, Any]:
        """Create or update the Policy for *rule* in *namespace*."""
        rule.setdefault("apiVersion", PROMETHEUS_RULE_API_VERSION)
        rule.setdefault("kind", PROMETHEUS_RULE_KIND)

        body = build_policy(rule, self.component, namespace)
        name = self.component.policy_name
        existing = await self.k8s.get_custom_object(POLICY, name, namespace)

        if existing is None:
            result = await self.k8s.create_custom_object(POLICY, namespace, body)
            logger.info(
                "Created prometheus rule policy",
                component=self.component.component_type.value,
                namespace=namespace,
                name=name,
            )
            return result

        resource_version = existing.get("metadata", {}).get("resourceVersion")
        if resource_version:
            body["metadata"]["resourceVersion"] = resource_version
        result = await self.k8s.update_custom_object(POLICY, namespace, body)
        logger.info(
            "Updated prometheus rule policy",
            component=self.component.component_type.value,
            namespace=namespace,
            name=name,
        )
        return result

    async def prepare_for_deletion(self, namespace: str) -> bool:
        """Flip the Policy to mustnothave and wait for propagation.

        Returns False when there is no Policy in *namespace*.
        """
        name = self.component.policy_name
        policy = await self.k8s.get_custom_object(POLICY, name, namespace)
        if policy is None:
            logger.debug("Policy does not exist, skipping compliance update", namespace=namespace, name=name)
            return False

        flipped = _flip_compliance(policy)
        await self.k8s.update_custom_object(POLICY, namespace, policy)
        logger.info(
            "Set policy compliance to mustnothave",
            component=self.component.component_type.value,
            namespace=namespace,
            name=name,
            templates=flipped,
        )

        await asyncio.sleep(settings.policy_deletion_wait_seconds)
        return True
