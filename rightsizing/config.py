"""
Configuration for the Right-Sizing Operator.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Server
    host: str = "0.0.0.0"
    port: int = 8383
    debug: bool = False
    log_level: str = "info"

    # Kubernetes
    # Uses in-cluster config by default
    kubeconfig_path: Optional[str] = None

    # Namespace holding the right-sizing ConfigMaps, independent of the
    # namespace binding that relocates Policy/Placement/PlacementBinding.
    default_namespace: str = "open-cluster-management-observability"

    # Namespace the generated PrometheusRule is materialized into on
    # managed clusters
    monitoring_namespace: str = "openshift-monitoring"

    # Governing MultiClusterObservability resource
    mco_group: str = "observability.open-cluster-management.io"
    mco_version: str = "v1beta2"
    mco_plural: str = "multiclusterobservabilities"
    pause_annotation: str = "mco-pause"

    # Namespace bindings that can never host right-sizing resources
    reserved_namespaces: List[str] = [
        "kube-system",
        "kube-public",
        "kube-node-lease",
        "default",
    ]

    # Time given to the policy framework to remove the materialized
    # PrometheusRule after flipping compliance to mustnothave
    policy_deletion_wait_seconds: float = 5.0

    # Control loop
    resync_interval_seconds: int = 300
    retry_backoff_seconds: int = 5
    watch_timeout_seconds: int = 300

    class Config:
        env_prefix = "RS_OPERATOR_"


settings = Settings()
