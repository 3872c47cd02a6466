"""Tests for PrometheusRule generation."""

import pytest
import yaml

from rightsizing.component import COMPONENTS
from rightsizing.errors import MutualExclusionError
from rightsizing.models import ComponentType, RightSizingConfig
from rightsizing.rules import generate, render_yaml

NAMESPACE = COMPONENTS[ComponentType.NAMESPACE]
VIRTUALIZATION = COMPONENTS[ComponentType.VIRTUALIZATION]


def _cfg(**rule_config):
    rule_config.setdefault("recommendationPercentage", 110)
    return RightSizingConfig.model_validate({"prometheusRuleConfig": rule_config})


def _rules_by_record(rule):
    return {r["record"]: r for group in rule["spec"]["groups"] for r in group["rules"]}


class TestGenerateNamespace:
    def test_manifest_header(self):
        rule = generate(_cfg(), NAMESPACE)
        assert rule["apiVersion"] == "monitoring.coreos.com/v1"
        assert rule["kind"] == "PrometheusRule"
        assert rule["metadata"] == {
            "name": "acm-rs-namespace-prometheus-rules",
            "namespace": "openshift-monitoring",
        }

    def test_group_names_and_intervals(self):
        groups = generate(_cfg(), NAMESPACE)["spec"]["groups"]
        assert [(g["name"], g["interval"]) for g in groups] == [
            ("acm-right-sizing-namespace-5m.rule", "5m"),
            ("acm-right-sizing-namespace-1d.rules", "15m"),
            ("acm-right-sizing-cluster-5m.rule", "5m"),
            ("acm-right-sizing-cluster-1d.rule", "15m"),
        ]

    def test_group_sizes(self):
        groups = generate(_cfg(), NAMESPACE)["spec"]["groups"]
        assert [len(g["rules"]) for g in groups] == [6, 8, 6, 8]

    def test_inclusion_in_cpu_request_hard(self):
        rules = _rules_by_record(
            generate(_cfg(namespaceFilterCriteria={"inclusionCriteria": ["ns-a", "ns-b"]}), NAMESPACE)
        )
        assert rules["acm_rs:namespace:cpu_request_hard:5m"]["expr"] == (
            'max_over_time(sum(kube_resourcequota{resource=~"requests.cpu", type="hard", '
            'namespace=~"ns-a|ns-b"}) by (namespace)[5m:])'
        )

    def test_exclusion_in_cpu_request(self):
        rules = _rules_by_record(
            generate(_cfg(namespaceFilterCriteria={"exclusionCriteria": ["openshift.*"]}), NAMESPACE)
        )
        assert rules["acm_rs:namespace:cpu_request:5m"]["expr"] == (
            'max_over_time(sum(kube_pod_container_resource_requests{namespace!~"openshift.*", '
            'resource="cpu", container!=""}) by (namespace)[5m:])'
        )

    def test_cluster_aggregation(self):
        rules = _rules_by_record(generate(_cfg(), NAMESPACE))
        assert rules["acm_rs:cluster:memory_usage:5m"]["expr"] == (
            'max_over_time(sum(container_memory_working_set_bytes{namespace!="", '
            'container!=""}) by (cluster)[5m:])'
        )

    def test_recommendation_uses_percentage(self):
        rules = _rules_by_record(generate(_cfg(recommendationPercentage=150), NAMESPACE))
        cpu = rules["acm_rs:namespace:cpu_recommendation"]
        assert cpu["expr"] == "max_over_time(acm_rs:namespace:cpu_usage:5m[1d]) * (150/100)"
        assert cpu["labels"] == {"profile": "Max OverAll", "aggregation": "1d"}
        assert rules["acm_rs:cluster:memory_recommendation"]["expr"] == (
            "max_over_time(acm_rs:cluster:memory_usage:5m[1d]) * (150/100)"
        )

    def test_long_window_rules_labelled(self):
        groups = generate(_cfg(), NAMESPACE)["spec"]["groups"]
        for group in (groups[1], groups[3]):
            for r in group["rules"]:
                assert r["labels"]["profile"] == "Max OverAll"
                assert r["labels"]["aggregation"] == "1d"

    def test_short_window_rules_unlabelled(self):
        groups = generate(_cfg(), NAMESPACE)["spec"]["groups"]
        assert all("labels" not in r for r in groups[0]["rules"])

    def test_label_join_appended_to_short_window_only(self):
        rule = generate(
            _cfg(labelFilterCriteria=[{"labelName": "label_env", "inclusionCriteria": ["prod"]}]),
            NAMESPACE,
        )
        groups = rule["spec"]["groups"]
        assert all(r["expr"].endswith('kube_namespace_labels{label_env=""})') for r in groups[0]["rules"])
        assert all("group_left" not in r["expr"] for r in groups[1]["rules"])

    def test_mutual_exclusion_fails_before_generation(self):
        with pytest.raises(MutualExclusionError):
            generate(
                _cfg(namespaceFilterCriteria={"inclusionCriteria": ["a"], "exclusionCriteria": ["b"]}),
                NAMESPACE,
            )


class TestGenerateVirtualization:
    def test_names_and_prefixes(self):
        rule = generate(_cfg(), VIRTUALIZATION)
        assert rule["metadata"]["name"] == "acm-rs-virt-prometheus-rules"
        names = [g["name"] for g in rule["spec"]["groups"]]
        assert names[0] == "acm-vm-right-sizing-namespace-5m.rule"
        rules = _rules_by_record(rule)
        assert "acm_rs_vm:namespace:cpu_request:5m" in rules
        assert "acm_rs_vm:cluster:memory_recommendation" in rules

    def test_kubevirt_sources(self):
        rules = _rules_by_record(generate(_cfg(), VIRTUALIZATION))
        assert rules["acm_rs_vm:namespace:cpu_request:5m"]["expr"] == (
            'max_over_time(sum(kubevirt_vm_resource_requests{resource="cpu", namespace!=""})'
            " by (namespace)[5m:])"
        )
        assert "kubevirt_vmi_cpu_usage_seconds_total" in rules["acm_rs_vm:namespace:cpu_usage:5m"]["expr"]

    def test_group_sizes(self):
        groups = generate(_cfg(), VIRTUALIZATION)["spec"]["groups"]
        assert [len(g["rules"]) for g in groups] == [4, 6, 4, 6]


def test_render_yaml_round_trips():
    rule = generate(_cfg(), NAMESPACE)
    assert yaml.safe_load(render_yaml(rule)) == rule
