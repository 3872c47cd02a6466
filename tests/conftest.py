"""Shared test fixtures for the right-sizing operator."""

import copy
import sys
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from kubernetes.client.rest import ApiException

from rightsizing.config import settings
from rightsizing.k8s_client import CustomResource


# ---------------------------------------------------------------------------
# Environment fixture (needed by any test that instantiates Settings)
# ---------------------------------------------------------------------------


@pytest.fixture
def settings_env(monkeypatch):
    """Set minimal environment for Settings to load."""
    monkeypatch.setenv("RS_OPERATOR_DEFAULT_NAMESPACE", "open-cluster-management-observability")
    monkeypatch.setenv("RS_OPERATOR_POLICY_DELETION_WAIT_SECONDS", "0")


@pytest.fixture(autouse=True)
def _no_deletion_wait(monkeypatch):
    """Skip the policy propagation wait in every test."""
    monkeypatch.setattr(settings, "policy_deletion_wait_seconds", 0)


# ---------------------------------------------------------------------------
# Singleton reset fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset all module-level singletons between tests."""
    modules_and_attrs = [
        ("rightsizing.k8s_client", "_k8s_client"),
        ("rightsizing.controller", "_controller"),
    ]

    yield

    for mod_path, attr in modules_and_attrs:
        mod = sys.modules.get(mod_path)
        if mod is not None:
            setattr(mod, attr, None)

    api = sys.modules.get("rightsizing.api")
    if api is not None:
        api.app_state.controller = None


# ---------------------------------------------------------------------------
# In-memory Kubernetes store
# ---------------------------------------------------------------------------


class FakeK8s:
    """Dict-backed stand-in for K8sClient.

    Objects are keyed by ``(kind, namespace, name)``.  Every write is
    recorded in ``calls`` as ``(action, kind, namespace, name)``.
    """

    def __init__(self):
        self.objects: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, str, str, str]] = []
        self.mco_instances: List[Dict[str, Any]] = []
        self.fail_on: Dict[Tuple[str, str], Exception] = {}
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _maybe_fail(self, action: str, kind: str) -> None:
        exc = self.fail_on.get((action, kind))
        if exc is not None:
            raise exc

    def get(self, kind: str, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        obj = self.objects.get((kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def names(self, kind: str, namespace: Optional[str] = None) -> List[str]:
        return sorted(
            name
            for (k, ns, name) in self.objects
            if k == kind and (namespace is None or ns == namespace)
        )

    def count(self, action: str, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == action and call[1] == kind)

    # ConfigMaps ------------------------------------------------------------

    async def get_configmap(self, name: str, namespace: str):
        self._maybe_fail("get", "ConfigMap")
        return self.get("ConfigMap", namespace, name)

    async def create_configmap(self, name: str, namespace: str, data: Dict[str, str]):
        self._maybe_fail("create", "ConfigMap")
        key = ("ConfigMap", namespace, name)
        if key in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        obj = {
            "metadata": {
                "name": name,
                "namespace": namespace,
                "resourceVersion": self._next_version(),
            },
            "data": dict(data),
        }
        self.objects[key] = obj
        self.calls.append(("create", "ConfigMap", namespace, name))
        return copy.deepcopy(obj)

    async def delete_configmap(self, name: str, namespace: str) -> bool:
        self._maybe_fail("delete", "ConfigMap")
        if self.objects.pop(("ConfigMap", namespace, name), None) is None:
            return False
        self.calls.append(("delete", "ConfigMap", namespace, name))
        return True

    # Custom resources ------------------------------------------------------

    async def get_custom_object(self, resource: CustomResource, name: str, namespace: str):
        self._maybe_fail("get", resource.kind)
        return self.get(resource.kind, namespace, name)

    async def create_custom_object(self, resource: CustomResource, namespace: str, body):
        self._maybe_fail("create", resource.kind)
        name = body["metadata"]["name"]
        key = (resource.kind, namespace, name)
        if key in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        obj = copy.deepcopy(body)
        obj["metadata"]["namespace"] = namespace
        obj["metadata"]["resourceVersion"] = self._next_version()
        self.objects[key] = obj
        self.calls.append(("create", resource.kind, namespace, name))
        return copy.deepcopy(obj)

    async def update_custom_object(self, resource: CustomResource, namespace: str, body):
        self._maybe_fail("update", resource.kind)
        name = body["metadata"]["name"]
        key = (resource.kind, namespace, name)
        current = self.objects.get(key)
        if current is None:
            raise ApiException(status=404, reason="NotFound")
        sent_version = body["metadata"].get("resourceVersion")
        if sent_version != current["metadata"]["resourceVersion"]:
            raise ApiException(status=409, reason="Conflict")
        obj = copy.deepcopy(body)
        obj["metadata"]["resourceVersion"] = self._next_version()
        self.objects[key] = obj
        self.calls.append(("update", resource.kind, namespace, name))
        return copy.deepcopy(obj)

    async def delete_custom_object(self, resource: CustomResource, name: str, namespace: str):
        self._maybe_fail("delete", resource.kind)
        if self.objects.pop((resource.kind, namespace, name), None) is None:
            return False
        self.calls.append(("delete", resource.kind, namespace, name))
        return True

    # Governing resource ----------------------------------------------------

    async def list_observability_instances(self):
        return copy.deepcopy(self.mco_instances)


@pytest.fixture
def fake_k8s():
    """Return an empty FakeK8s store."""
    return FakeK8s()


# ---------------------------------------------------------------------------
# Governing resource builder
# ---------------------------------------------------------------------------


def make_mco(
    name: str = "observability",
    namespace: Optional[Dict[str, Any]] = None,
    virtualization: Optional[Dict[str, Any]] = None,
    annotations: Optional[Dict[str, str]] = None,
    platform: bool = True,
) -> Dict[str, Any]:
    """Build a MultiClusterObservability dict with the analytics settings given."""
    mco: Dict[str, Any] = {
        "apiVersion": "observability.open-cluster-management.io/v1beta2",
        "kind": "MultiClusterObservability",
        "metadata": {"name": name},
        "spec": {},
    }
    if annotations:
        mco["metadata"]["annotations"] = annotations
    if platform:
        analytics: Dict[str, Any] = {}
        if namespace is not None:
            analytics["namespaceRightSizingRecommendation"] = namespace
        if virtualization is not None:
            analytics["virtualizationRightSizingRecommendation"] = virtualization
        mco["spec"]["capabilities"] = {"platform": {"analytics": analytics}}
    return mco


@pytest.fixture
def mco_factory():
    return make_mco


# ---------------------------------------------------------------------------
# Mock K8s client
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_k8s_client(settings_env):
    """Return a K8sClient with all K8s API objects mocked."""
    with patch("rightsizing.k8s_client.config"):
        with patch("rightsizing.k8s_client.client") as mock_client:
            mock_client.CoreV1Api.return_value = MagicMock()
            mock_client.CustomObjectsApi.return_value = MagicMock()

            from rightsizing.k8s_client import K8sClient

            k = K8sClient()
            yield k


# ---------------------------------------------------------------------------
# httpx / FastAPI test client
# ---------------------------------------------------------------------------


@pytest.fixture
def controller(fake_k8s):
    """AnalyticsController wired to the in-memory store."""
    from rightsizing.controller import AnalyticsController

    return AnalyticsController(k8s=fake_k8s)


@pytest.fixture
def app_no_lifespan(settings_env, controller):
    """Create a FastAPI app instance without running lifespan."""
    from rightsizing.api import app_state, create_app

    controller.started = True
    app_state.controller = controller

    app = create_app()
    # Remove the lifespan so httpx can call routes directly
    app.router.lifespan_context = None
    return app


@pytest_asyncio.fixture
async def async_client(app_no_lifespan):
    """Async httpx test client for FastAPI endpoint tests."""
    from httpx import ASGITransport, AsyncClient

    transport = ASGITransport(app=app_no_lifespan)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
