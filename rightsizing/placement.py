"""
Placement and PlacementBinding management.

The Placement selects the managed clusters that receive a component's
Policy; the PlacementBinding ties the two together.  Both are created when
missing and overwritten in place otherwise.
"""

from typing import Any, Dict, Optional

import structlog

from .k8s_client import PLACEMENT, PLACEMENT_BINDING, POLICY, CustomResource, K8sClient, get_k8s_client
from .models import ComponentConfig

logger = structlog.get_logger(__name__)


async def _create_or_update(
    k8s: K8sClient,
    resource: CustomResource,
    name: str,
    namespace: str,
    mutate,
) -> Dict[str, Any]:
    existing = await k8s.get_custom_object(resource, name, namespace)

    if existing is None:
        body = {
            "apiVersion": resource.api_version,
            "kind": resource.kind,
            "metadata": {"name": name, "namespace": namespace},
        }
        mutate(body)
        result = await k8s.create_custom_object(resource, namespace, body)
        logger.info("Created resource", kind=resource.kind, namespace=namespace, name=name)
        return result

    mutate(existing)
    result = await k8s.update_custom_object(resource, namespace, existing)
    logger.info("Updated resource", kind=resource.kind, namespace=namespace, name=name)
    return result


class PlacementManager:
    """Keeps the component Placement in sync with the configured spec."""

    def __init__(self, component: ComponentConfig, k8s: Optional[K8sClient] = None):
        self.component = component
        self._k8s = k8s

    @property
    def k8s(self) -> K8sClient:
        if self._k8s is None:
            self._k8s = get_k8s_client()
        return self._k8s

    async def apply(self, spec: Dict[str, Any], namespace: str) -> Dict[str, Any]:
        def mutate(obj: Dict[str, Any]) -> None:
            obj["spec"] = dict(spec or {})

        return await _create_or_update(
            self.k8s, PLACEMENT, self.component.placement_name, namespace, mutate
        )


class BindingManager:
    """Binds the component Policy to its Placement."""

    def __init__(self, component: ComponentConfig, k8s: Optional[K8sClient] = None):
        self.component = component
        self._k8s = k8s

    @property
    def k8s(self) -> K8sClient:
        if self._k8s is None:
            self._k8s = get_k8s_client()
        return self._k8s

    def placement_ref(self) -> Dict[str, str]:
        return {
            "name": self.component.placement_name,
            "kind": PLACEMENT.kind,
            "apiGroup": PLACEMENT.group,
        }

    def subjects(self):
        return [
            {
                "name": self.component.policy_name,
                "kind": POLICY.kind,
                "apiGroup": POLICY.group,
            }
        ]

    async def apply(self, namespace: str) -> Dict[str, Any]:
        def mutate(obj: Dict[str, Any]) -> None:
            obj["placementRef"] = self.placement_ref()
            obj["subjects"] = self.subjects()

        return await _create_or_update(
            self.k8s,
            PLACEMENT_BINDING,
            self.component.placement_binding_name,
            namespace,
            mutate,
        )
