"""
Right-Sizing Operator - recommendation rules for multi-cluster observability.

Turns a declarative filter configuration into Prometheus recording rules,
wraps them in a governance Policy and binds that policy to a cluster
Placement, for each right-sizing component (namespace, virtualization).
"""

__version__ = "0.4.0"
