"""
PromQL selector fragments built from right-sizing filter criteria.

Filter values are regular-expression alternatives (``openshift.*``) joined
with ``|``.  They are embedded inside double-quoted PromQL strings, so each
value is checked before it is rendered.
"""

from dataclasses import dataclass
from typing import List, Sequence

from .errors import InvalidFilterTokenError, MutualExclusionError
from .models import LabelFilter, PrometheusRuleConfig

NAMESPACE_LABEL = "namespace"
ENV_LABEL = "label_env"
NAMESPACE_LABELS_SERIES = "kube_namespace_labels"

_FORBIDDEN_CHARS = {
    '"': "double quote",
    "\\": "backslash",
    "\n": "newline",
    "\r": "carriage return",
}

OPERATORS = ("=", "!=", "=~", "!~")


def validate_token(label: str, token: str) -> str:
    """Reject values that cannot sit inside a quoted PromQL string."""
    if not isinstance(token, str) or token == "":
        raise InvalidFilterTokenError(label, str(token), "value must be a non-empty string")
    for char, name in _FORBIDDEN_CHARS.items():
        if char in token:
            raise InvalidFilterTokenError(label, token, f"{name} not allowed")
    return token


@dataclass(frozen=True)
class Matcher:
    """A single PromQL label matcher, e.g. ``namespace=~"a|b"``."""

    label: str
    op: str
    values: Sequence[str] = ()

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"unsupported matcher operator {self.op!r}")

    def render(self) -> str:
        if not self.values:
            return f'{self.label}{self.op}""'
        joined = "|".join(validate_token(self.label, v) for v in self.values)
        return f'{self.label}{self.op}"{joined}"'

    def __str__(self) -> str:
        return self.render()


def compile_namespace_filter(cfg: PrometheusRuleConfig) -> str:
    """Namespace selector for the short-window rules.

    Inclusion wins a regex match, exclusion a negated one, and with neither
    set every non-empty namespace is selected.
    """
    criteria = cfg.namespace_filter_criteria
    if criteria.inclusion_criteria and criteria.exclusion_criteria:
        raise MutualExclusionError("namespacefiltercriteria")
    if criteria.inclusion_criteria:
        return Matcher(NAMESPACE_LABEL, "=~", criteria.inclusion_criteria).render()
    if criteria.exclusion_criteria:
        return Matcher(NAMESPACE_LABEL, "!~", criteria.exclusion_criteria).render()
    return Matcher(NAMESPACE_LABEL, "!=").render()


def compile_label_join(filters: List[LabelFilter]) -> str:
    """Join against namespace labels for the first usable ``label_env`` filter.

    Namespaces without the label are kept by the ``or`` branch. Returns an
    empty string when no filter applies.
    """
    for label_filter in filters:
        if label_filter.label_name != ENV_LABEL:
            continue
        if label_filter.inclusion_criteria and label_filter.exclusion_criteria:
            raise MutualExclusionError(ENV_LABEL)
        if label_filter.inclusion_criteria:
            matcher = Matcher(ENV_LABEL, "=~", label_filter.inclusion_criteria)
        elif label_filter.exclusion_criteria:
            matcher = Matcher(ENV_LABEL, "!~", label_filter.exclusion_criteria)
        else:
            continue

        selector = f"{NAMESPACE_LABELS_SERIES}{{{matcher.render()}}}"
        unlabeled = f"{NAMESPACE_LABELS_SERIES}{{{Matcher(ENV_LABEL, '=').render()}}}"
        return f"* on (namespace) group_left() ({selector} or {unlabeled})"
    return ""
