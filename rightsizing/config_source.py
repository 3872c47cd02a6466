"""
ConfigMap-backed configuration source for right-sizing components.

Each component keeps its user-editable configuration in a ConfigMap in the
global namespace with two YAML blobs: ``prometheusRuleConfig`` and
``placementConfiguration``.
"""

from typing import Any, Callable, Dict, Optional

import structlog
import yaml
from pydantic import ValidationError

from .config import settings
from .errors import ConfigMapNotFoundError, DecodeError
from .k8s_client import K8sClient, get_k8s_client
from .models import RightSizingConfig

logger = structlog.get_logger(__name__)

PROMETHEUS_RULE_CONFIG_KEY = "prometheusRuleConfig"
PLACEMENT_CONFIGURATION_KEY = "placementConfiguration"

DEFAULT_RECOMMENDATION_PERCENTAGE = 110


def default_placement() -> Dict[str, Any]:
    """Placement matching every cluster, tolerating unreachable/unavailable."""
    return {
        "spec": {
            "predicates": [],
            "tolerations": [
                {
                    "key": "cluster.open-cluster-management.io/unreachable",
                    "operator": "Exists",
                },
                {
                    "key": "cluster.open-cluster-management.io/unavailable",
                    "operator": "Exists",
                },
            ],
        }
    }


def default_config_data() -> Dict[str, str]:
    """Default ConfigMap ``data`` for a freshly enabled component."""
    rule_config = {
        "namespaceFilterCriteria": {
            "inclusionCriteria": [],
            "exclusionCriteria": ["openshift.*"],
        },
        "labelFilterCriteria": [],
        "recommendationPercentage": DEFAULT_RECOMMENDATION_PERCENTAGE,
    }
    return {
        PROMETHEUS_RULE_CONFIG_KEY: yaml.safe_dump(rule_config, sort_keys=False),
        PLACEMENT_CONFIGURATION_KEY: yaml.safe_dump(default_placement(), sort_keys=False),
    }


def _load_blob(key: str, text: Optional[str]) -> Dict[str, Any]:
    if not text or not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DecodeError(key, str(e)) from e
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise DecodeError(key, f"expected a mapping, got {type(loaded).__name__}")
    return loaded


def decode_config_data(data: Optional[Dict[str, str]]) -> RightSizingConfig:
    """Decode raw ConfigMap data into a RightSizingConfig.

    Missing or empty ``placementConfiguration`` means "no placement data".
    Structural checks (mutual exclusion, percentage bounds) are left to
    validation so that compile errors stay precise.
    """
    data = data or {}
    rule_config = _load_blob(PROMETHEUS_RULE_CONFIG_KEY, data.get(PROMETHEUS_RULE_CONFIG_KEY))
    placement = _load_blob(PLACEMENT_CONFIGURATION_KEY, data.get(PLACEMENT_CONFIGURATION_KEY))

    try:
        return RightSizingConfig.model_validate(
            {
                PROMETHEUS_RULE_CONFIG_KEY: rule_config,
                PLACEMENT_CONFIGURATION_KEY: placement,
            }
        )
    except ValidationError as e:
        raise DecodeError(PROMETHEUS_RULE_CONFIG_KEY, str(e)) from e


class ConfigSource:
    """Reads and seeds right-sizing ConfigMaps in the global namespace."""

    def __init__(self, k8s: Optional[K8sClient] = None):
        self._k8s = k8s

    @property
    def k8s(self) -> K8sClient:
        if self._k8s is None:
            self._k8s = get_k8s_client()
        return self._k8s

    @property
    def namespace(self) -> str:
        return settings.default_namespace

    async def ensure_exists(self, name: str, defaults: Callable[[], Dict[str, str]]) -> bool:
        """Create the ConfigMap with default data unless it already exists.

        Existing ConfigMaps are never overwritten. Returns True when created.
        """
        existing = await self.k8s.get_configmap(name, self.namespace)
        if existing is not None:
            logger.debug("ConfigMap already exists, skipping creation", name=name, namespace=self.namespace)
            return False

        await self.k8s.create_configmap(name, self.namespace, defaults())
        logger.info("ConfigMap created with defaults", name=name, namespace=self.namespace)
        return True

    def read(self, configmap: Dict[str, Any]) -> RightSizingConfig:
        return decode_config_data(configmap.get("data"))

    async def fetch(self, name: str) -> RightSizingConfig:
        """Get and decode a ConfigMap that is expected to exist."""
        configmap = await self.k8s.get_configmap(name, self.namespace)
        if configmap is None:
            raise ConfigMapNotFoundError(self.namespace, name)
        return self.read(configmap)
