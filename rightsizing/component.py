"""
Right-sizing components and their reconciliation state machine.

A component is either disabled or enabled in one binding namespace.  Its
derived resources (Policy, Placement, PlacementBinding) live in the binding
namespace; its ConfigMap always lives in the global namespace.

Each ComponentController owns its ComponentState and serialises every
reconciliation with an asyncio.Lock, so the governing-resource path and the
ConfigMap path never interleave on the same state.
"""

import asyncio
import time
from typing import Any, Dict, Optional

import structlog

from .config_source import ConfigSource, default_config_data
from .k8s_client import PLACEMENT, PLACEMENT_BINDING, POLICY, K8sClient, get_k8s_client
from .mco import get_component_settings
from .metrics import rs_component_enabled, rs_reconcile_duration_seconds, rs_reconciliations_total
from .models import ComponentConfig, ComponentState, ComponentType, RightSizingConfig
from .placement import BindingManager, PlacementManager
from .policy import PolicyWrapper
from .rules import NAMESPACE_METRICS, VIRTUALIZATION_METRICS, generate
from .validation import validate_config_data

logger = structlog.get_logger(__name__)

DEFAULT_BINDING_NAMESPACE = "open-cluster-management-global-set"


# =============================================================================
# COMPONENT REGISTRY
# =============================================================================

COMPONENTS: Dict[ComponentType, ComponentConfig] = {
    ComponentType.NAMESPACE: ComponentConfig(
        component_type=ComponentType.NAMESPACE,
        configmap_name="rs-namespace-config",
        placement_name="rs-placement",
        placement_binding_name="rs-policyset-binding",
        policy_name="rs-prom-rules-policy",
        prometheus_rule_name="acm-rs-namespace-prometheus-rules",
        default_namespace=DEFAULT_BINDING_NAMESPACE,
        record_prefix="acm_rs",
        group_prefix="acm-right-sizing",
        metrics=NAMESPACE_METRICS,
        default_data=default_config_data,
    ),
    ComponentType.VIRTUALIZATION: ComponentConfig(
        component_type=ComponentType.VIRTUALIZATION,
        configmap_name="rs-virt-config",
        placement_name="rs-virt-placement",
        placement_binding_name="rs-virt-policyset-binding",
        policy_name="rs-virt-prom-rules-policy",
        prometheus_rule_name="acm-rs-virt-prometheus-rules",
        default_namespace=DEFAULT_BINDING_NAMESPACE,
        record_prefix="acm_rs_vm",
        group_prefix="acm-vm-right-sizing",
        metrics=VIRTUALIZATION_METRICS,
        default_data=default_config_data,
    ),
}


def component_for_configmap(name: str) -> Optional[ComponentConfig]:
    for component in COMPONENTS.values():
        if component.configmap_name == name:
            return component
    return None


# =============================================================================
# CONTROLLER
# =============================================================================


class ComponentController:
    """Drives one component between Disabled and Enabled(namespace)."""

    def __init__(self, component: ComponentConfig, k8s: Optional[K8sClient] = None):
        self.component = component
        self._k8s = k8s
        self.state = ComponentState(namespace=component.default_namespace, enabled=False)
        self._lock = asyncio.Lock()

        self.config_source = ConfigSource(k8s)
        self.policy = PolicyWrapper(component, k8s)
        self.placement = PlacementManager(component, k8s)
        self.binding = BindingManager(component, k8s)

    @property
    def k8s(self) -> K8sClient:
        if self._k8s is None:
            self._k8s = get_k8s_client()
        return self._k8s

    @property
    def name(self) -> str:
        return self.component.component_type.value

    def snapshot(self) -> ComponentState:
        return self.state.snapshot()

    async def reconcile(self, mco: Optional[Dict[str, Any]]) -> ComponentState:
        """Converge derived resources to the governing resource's settings."""
        start = time.perf_counter()
        try:
            async with self._lock:
                state = await self._reconcile(mco)
        except Exception:
            rs_reconciliations_total.labels(component=self.name, result="error").inc()
            raise
        finally:
            rs_reconcile_duration_seconds.labels(component=self.name).observe(
                time.perf_counter() - start
            )

        rs_reconciliations_total.labels(component=self.name, result="success").inc()
        return state

    async def _reconcile(self, mco: Optional[Dict[str, Any]]) -> ComponentState:
        enabled, binding = get_component_settings(mco, self.component.component_type)
        requested = binding or self.component.default_namespace

        if not enabled:
            logger.debug("Component not enabled", component=self.name)
            await self._cleanup(self.state.namespace, keep_configmap=False)
            self._commit(requested, False)
            return self.snapshot()

        rebind = self.state.enabled and self.state.namespace != requested
        previous = self.state.namespace
        self._commit(requested, True)

        await self.config_source.ensure_exists(
            self.component.configmap_name, self.component.default_data
        )

        if rebind:
            logger.info(
                "Namespace binding changed, moving resources",
                component=self.name,
                old_namespace=previous,
                new_namespace=requested,
            )
            try:
                await self._cleanup(previous, keep_configmap=True)
            except Exception as exc:
                logger.error(
                    "Cleanup of previous namespace failed, resources left behind",
                    component=self.name,
                    stale_namespace=previous,
                    error=str(exc),
                )
                raise
            cfg = await self.config_source.fetch(self.component.configmap_name)
            await self._apply(cfg)

        logger.info("Component reconciled", component=self.name, namespace=requested)
        return self.snapshot()

    async def apply_config(self, cfg: RightSizingConfig) -> bool:
        """Converge Policy, Placement and PlacementBinding from *cfg*.

        Returns False without writing when the component is disabled by the
        time the lock is acquired.
        """
        async with self._lock:
            if not self.state.enabled:
                logger.info("Component disabled, skipping configuration", component=self.name)
                return False
            await self._apply(cfg)
            return True

    async def _apply(self, cfg: RightSizingConfig) -> None:
        validate_config_data(cfg)

        namespace = self.state.namespace
        rule = generate(cfg, self.component)
        await self.policy.apply(rule, namespace)
        await self.placement.apply(cfg.placement_spec(), namespace)
        await self.binding.apply(namespace)

        logger.info("Applied right-sizing configuration", component=self.name, namespace=namespace)

    async def cleanup(self) -> None:
        """Remove every derived resource, including the ConfigMap."""
        async with self._lock:
            await self._cleanup(self.state.namespace, keep_configmap=False)
            self._commit(self.state.namespace, False)

    async def _cleanup(self, namespace: str, keep_configmap: bool) -> None:
        await self.policy.prepare_for_deletion(namespace)

        await self.k8s.delete_custom_object(
            PLACEMENT_BINDING, self.component.placement_binding_name, namespace
        )
        await self.k8s.delete_custom_object(PLACEMENT, self.component.placement_name, namespace)
        await self.k8s.delete_custom_object(POLICY, self.component.policy_name, namespace)
        if not keep_configmap:
            await self.k8s.delete_configmap(
                self.component.configmap_name, self.config_source.namespace
            )

        logger.info(
            "Cleaned up component resources",
            component=self.name,
            namespace=namespace,
            keep_configmap=keep_configmap,
        )

    def _commit(self, namespace: str, enabled: bool) -> None:
        self.state.namespace = namespace
        self.state.enabled = enabled
        rs_component_enabled.labels(component=self.name).set(1 if enabled else 0)
