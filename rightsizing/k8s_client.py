"""
Kubernetes client wrapper for the right-sizing operator.

Exposes get/create/update/delete for ConfigMaps and for the custom
resources the operator manages (Policy, Placement, PlacementBinding) plus
read access to the governing MultiClusterObservability resource.

"Not found" is never an error here: gets return ``None`` and deletes
return ``False``.  Every other ``ApiException`` propagates unchanged.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import structlog
from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

from .config import settings
from .metrics import rs_resource_operations_total

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CustomResource:
    """Coordinates of a namespaced custom resource type."""

    group: str
    version: str
    plural: str
    kind: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


POLICY = CustomResource(
    group="policy.open-cluster-management.io",
    version="v1",
    plural="policies",
    kind="Policy",
)

PLACEMENT_BINDING = CustomResource(
    group="policy.open-cluster-management.io",
    version="v1",
    plural="placementbindings",
    kind="PlacementBinding",
)

PLACEMENT = CustomResource(
    group="cluster.open-cluster-management.io",
    version="v1beta1",
    plural="placements",
    kind="Placement",
)


def _is_not_found(exc: ApiException) -> bool:
    return exc.status == 404


def _configmap_to_dict(cm) -> Dict[str, Any]:
    return {
        "metadata": {
            "name": cm.metadata.name,
            "namespace": cm.metadata.namespace,
            "resourceVersion": cm.metadata.resource_version,
        },
        "data": dict(cm.data or {}),
    }


class K8sClient:
    """Async wrapper over the Kubernetes API; blocking calls run in a worker thread."""

    def __init__(self):
        # Load kubeconfig
        try:
            if settings.kubeconfig_path:
                config.load_kube_config(settings.kubeconfig_path)
            else:
                config.load_incluster_config()
        except config.ConfigException:
            logger.warning("Failed to load in-cluster config, trying kubeconfig")
            config.load_kube_config()

        self.core_v1 = client.CoreV1Api()
        self.custom_objects = client.CustomObjectsApi()

    # =========================================================================
    # CONFIGMAPS
    # =========================================================================

    async def get_configmap(self, name: str, namespace: str) -> Optional[Dict[str, Any]]:
        """Fetch a ConfigMap as ``{"metadata": ..., "data": ...}`` or None."""
        try:
            cm = await asyncio.to_thread(self.core_v1.read_namespaced_config_map, name, namespace)
        except ApiException as e:
            if _is_not_found(e):
                return None
            logger.error(
                "Failed to get ConfigMap", namespace=namespace, name=name, error=str(e)
            )
            raise
        return _configmap_to_dict(cm)

    async def create_configmap(
        self, name: str, namespace: str, data: Dict[str, str]
    ) -> Dict[str, Any]:
        body = {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": name, "namespace": namespace},
            "data": data,
        }
        cm = await asyncio.to_thread(self.core_v1.create_namespaced_config_map, namespace, body)
        rs_resource_operations_total.labels(kind="ConfigMap", action="create").inc()
        logger.info("Created ConfigMap", namespace=namespace, name=name)
        return _configmap_to_dict(cm)

    async def delete_configmap(self, name: str, namespace: str) -> bool:
        """Delete a ConfigMap. Returns False if it did not exist."""
        try:
            await asyncio.to_thread(self.core_v1.delete_namespaced_config_map, name, namespace)
        except ApiException as e:
            if _is_not_found(e):
                return False
            raise
        rs_resource_operations_total.labels(kind="ConfigMap", action="delete").inc()
        logger.info("Deleted ConfigMap", namespace=namespace, name=name)
        return True

    def stream_configmaps(self, namespace: str) -> Iterator[Dict[str, Any]]:
        """Blocking watch over ConfigMaps in *namespace*.

        Yields ``{"type": ADDED|MODIFIED|DELETED, "object": <configmap dict>}``
        until the server-side timeout expires.
        """
        w = watch.Watch()
        try:
            for event in w.stream(
                self.core_v1.list_namespaced_config_map,
                namespace,
                timeout_seconds=settings.watch_timeout_seconds,
            ):
                yield {"type": event["type"], "object": _configmap_to_dict(event["object"])}
        finally:
            w.stop()

    # =========================================================================
    # CUSTOM RESOURCES
    # =========================================================================

    async def get_custom_object(
        self, resource: CustomResource, name: str, namespace: str
    ) -> Optional[Dict[str, Any]]:
        try:
            return await asyncio.to_thread(
                self.custom_objects.get_namespaced_custom_object,
                group=resource.group,
                version=resource.version,
                namespace=namespace,
                plural=resource.plural,
                name=name,
            )
        except ApiException as e:
            if _is_not_found(e):
                return None
            logger.error(
                "Failed to get custom object",
                kind=resource.kind,
                namespace=namespace,
                name=name,
                error=str(e),
            )
            raise

    async def create_custom_object(
        self, resource: CustomResource, namespace: str, body: Dict[str, Any]
    ) -> Dict[str, Any]:
        created = await asyncio.to_thread(
            self.custom_objects.create_namespaced_custom_object,
            group=resource.group,
            version=resource.version,
            namespace=namespace,
            plural=resource.plural,
            body=body,
        )
        rs_resource_operations_total.labels(kind=resource.kind, action="create").inc()
        return created

    async def update_custom_object(
        self, resource: CustomResource, namespace: str, body: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Replace an existing object; *body* must carry its resourceVersion."""
        updated = await asyncio.to_thread(
            self.custom_objects.replace_namespaced_custom_object,
            group=resource.group,
            version=resource.version,
            namespace=namespace,
            plural=resource.plural,
            name=body["metadata"]["name"],
            body=body,
        )
        rs_resource_operations_total.labels(kind=resource.kind, action="update").inc()
        return updated

    async def delete_custom_object(
        self, resource: CustomResource, name: str, namespace: str
    ) -> bool:
        """Delete a custom object. Returns False if it did not exist."""
        try:
            await asyncio.to_thread(
                self.custom_objects.delete_namespaced_custom_object,
                group=resource.group,
                version=resource.version,
                namespace=namespace,
                plural=resource.plural,
                name=name,
            )
        except ApiException as e:
            if _is_not_found(e):
                return False
            raise
        rs_resource_operations_total.labels(kind=resource.kind, action="delete").inc()
        logger.info("Deleted custom object", kind=resource.kind, namespace=namespace, name=name)
        return True

    # =========================================================================
    # GOVERNING RESOURCE
    # =========================================================================

    async def list_observability_instances(self) -> List[Dict[str, Any]]:
        """List MultiClusterObservability objects (cluster-scoped)."""
        resp = await asyncio.to_thread(
            self.custom_objects.list_cluster_custom_object,
            group=settings.mco_group,
            version=settings.mco_version,
            plural=settings.mco_plural,
        )
        return resp.get("items", [])

    def stream_observability_instances(self) -> Iterator[Dict[str, Any]]:
        """Blocking watch over MultiClusterObservability objects."""
        w = watch.Watch()
        try:
            for event in w.stream(
                self.custom_objects.list_cluster_custom_object,
                group=settings.mco_group,
                version=settings.mco_version,
                plural=settings.mco_plural,
                timeout_seconds=settings.watch_timeout_seconds,
            ):
                yield {"type": event["type"], "object": event["object"]}
        finally:
            w.stop()


# Global client instance
_k8s_client: Optional[K8sClient] = None


def get_k8s_client() -> K8sClient:
    """Get or create K8s client singleton."""
    global _k8s_client
    if _k8s_client is None:
        _k8s_client = K8sClient()
    return _k8s_client
