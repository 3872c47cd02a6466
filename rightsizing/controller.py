"""
Analytics controller: the runtime shell around the component controllers.

Watches the MultiClusterObservability resource and the component ConfigMaps,
reconciles on every event, and resyncs periodically so a missed event is
eventually corrected.
"""

import asyncio
import time
from typing import Any, Callable, Dict, Iterator, List, Optional

import structlog

from .component import COMPONENTS, ComponentController, component_for_configmap
from .config import settings
from .errors import ReconcileError
from .k8s_client import K8sClient, get_k8s_client
from .mco import is_paused, name_of
from .models import ComponentState, ComponentType

logger = structlog.get_logger(__name__)


class AnalyticsController:
    """Reconciles every right-sizing component against the governing resource."""

    def __init__(self, k8s: Optional[K8sClient] = None):
        self._k8s = k8s
        self.components: Dict[ComponentType, ComponentController] = {
            component_type: ComponentController(component, k8s)
            for component_type, component in COMPONENTS.items()
        }

        # Last seen ConfigMap data by name, to skip no-op updates
        self._last_data: Dict[str, Dict[str, str]] = {}

        self._running = False
        self._tasks: List[asyncio.Task] = []
        self.started = False
        self.last_reconcile: Optional[float] = None
        self.last_error: Optional[str] = None

    @property
    def k8s(self) -> K8sClient:
        if self._k8s is None:
            self._k8s = get_k8s_client()
        return self._k8s

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def reconcile(self) -> bool:
        """Reconcile all components. Returns False when nothing was done."""
        instances = await self.k8s.list_observability_instances()
        if not instances:
            logger.debug("No MultiClusterObservability found, skipping reconcile")
            return False

        mco = instances[0]
        if is_paused(mco):
            logger.info("Reconcile paused by annotation", mco=name_of(mco))
            return False

        failures: Dict[str, Exception] = {}
        for component_type, controller in self.components.items():
            try:
                await controller.reconcile(mco)
            except Exception as exc:
                logger.error(
                    "Component reconcile failed",
                    component=component_type.value,
                    error=str(exc),
                )
                failures[component_type.value] = exc

        self.last_reconcile = time.time()
        if failures:
            error = ReconcileError(failures)
            self.last_error = str(error)
            raise error

        self.last_error = None
        return True

    async def on_configmap_event(self, event_type: str, configmap: Dict[str, Any]) -> bool:
        """Apply an edited component ConfigMap. Returns True when applied."""
        metadata = configmap.get("metadata") or {}
        if metadata.get("namespace") != settings.default_namespace:
            return False

        name = metadata.get("name", "")
        component = component_for_configmap(name)
        if component is None:
            return False

        data = dict(configmap.get("data") or {})
        if event_type == "DELETED":
            self._last_data.pop(name, None)
            return False

        controller = self.components[component.component_type]
        if not controller.snapshot().enabled:
            logger.debug("Component disabled, ignoring ConfigMap", name=name)
            return False

        if event_type == "MODIFIED" and self._last_data.get(name) == data:
            logger.debug("No changes in ConfigMap data, skipping", name=name)
            return False
        self._last_data[name] = data

        cfg = controller.config_source.read(configmap)
        return await controller.apply_config(cfg)

    async def on_mco_event(self, event_type: str, mco: Dict[str, Any]) -> bool:
        logger.debug("MultiClusterObservability event", type=event_type, mco=name_of(mco))
        return await self.reconcile()

    def status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "last_reconcile": self.last_reconcile,
            "last_error": self.last_error,
            "components": {
                component_type.value: _state_dict(controller.snapshot())
                for component_type, controller in self.components.items()
            },
        }

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self):
        """Launch the watch and resync loops."""
        self._running = True
        self._tasks = [
            asyncio.create_task(self._resync_loop()),
            asyncio.create_task(
                self._watch_loop(
                    "multiclusterobservability",
                    self.k8s.stream_observability_instances,
                    self.on_mco_event,
                )
            ),
            asyncio.create_task(
                self._watch_loop(
                    "configmaps",
                    lambda: self.k8s.stream_configmaps(settings.default_namespace),
                    self.on_configmap_event,
                )
            ),
        ]
        self.started = True
        logger.info(
            "AnalyticsController started",
            resync_interval=settings.resync_interval_seconds,
            namespace=settings.default_namespace,
        )

    async def stop(self):
        """Cancel all loops."""
        self._running = False
        for t in self._tasks:
            t.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self.started = False
        logger.info("AnalyticsController stopped")

    async def _resync_loop(self):
        while self._running:
            try:
                await self.reconcile()
                await asyncio.sleep(settings.resync_interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Resync failed, retrying", error=str(exc))
                await asyncio.sleep(settings.retry_backoff_seconds)

    async def _watch_loop(
        self,
        name: str,
        stream: Callable[[], Iterator[Dict[str, Any]]],
        handler: Callable[[str, Dict[str, Any]], Any],
    ):
        """Consume a blocking watch stream without stalling the event loop."""
        while self._running:
            try:
                events = stream()
                while self._running:
                    event = await asyncio.to_thread(next, events, None)
                    if event is None:
                        break
                    try:
                        await handler(event["type"], event["object"])
                    except Exception as exc:
                        logger.error("Watch event handling failed", watch=name, error=str(exc))
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.warning("Watch reconnecting", watch=name, error=str(exc))
                await asyncio.sleep(settings.retry_backoff_seconds)


def _state_dict(state: ComponentState) -> Dict[str, Any]:
    return {"namespace": state.namespace, "enabled": state.enabled}


# Global controller instance
_controller: Optional[AnalyticsController] = None


def get_controller() -> AnalyticsController:
    """Get or create the analytics controller singleton."""
    global _controller
    if _controller is None:
        _controller = AnalyticsController()
    return _controller
