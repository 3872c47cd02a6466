"""
Exception types raised by the right-sizing engine.

Store errors other than "not found" are never wrapped: the Kubernetes
``ApiException`` propagates as-is so the control loop can retry it.
"""


class RightSizingError(Exception):
    """Base class for right-sizing failures."""


class DecodeError(RightSizingError):
    """A stored configuration blob is present but cannot be decoded."""

    def __init__(self, key: str, detail: str):
        self.key = key
        self.detail = detail
        super().__init__(f"failed to decode {key}: {detail}")


class MutualExclusionError(RightSizingError, ValueError):
    """Both inclusion and exclusion criteria were set on one filter."""

    def __init__(self, filter_name: str):
        self.filter_name = filter_name
        super().__init__(
            f"only one of inclusion or exclusion criteria allowed for {filter_name}"
        )


class InvalidFilterTokenError(RightSizingError, ValueError):
    """A filter value cannot be safely embedded in a PromQL matcher."""

    def __init__(self, label: str, token: str, reason: str):
        self.label = label
        self.token = token
        super().__init__(f"invalid value {token!r} for {label}: {reason}")


class ConfigValidationError(RightSizingError, ValueError):
    """Right-sizing configuration data failed a structural check."""


class ReconcileError(RightSizingError):
    """One or more components failed to reconcile."""

    def __init__(self, failures: dict):
        self.failures = failures
        detail = "; ".join(f"{name}: {err}" for name, err in failures.items())
        super().__init__(f"reconcile failed for {len(failures)} component(s): {detail}")


class ConfigMapNotFoundError(RightSizingError, LookupError):
    """A component ConfigMap that should exist is missing."""

    def __init__(self, namespace: str, name: str):
        self.namespace = namespace
        self.name = name
        super().__init__(f"ConfigMap {namespace}/{name} not found")
