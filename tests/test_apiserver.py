from datetime import datetime, timedelta

import pytest

from slothstore.apiserver import (
    ApiserverRepository,
    DryRunApiserverRepository,
    FakeApiserverRepository,
    InMemoryMonitoringClient,
    InMemorySlothClient,
)
from slothstore.k8s_spec import K8sSlothPrometheusCRSpecLoader
from slothstore.model import (
    K8sMeta,
    NotFoundError,
    PromRule,
    PromRuleGroup,
    PromSLO,
    PromSLORules,
    SLORulesResult,
)
from slothstore.rules_output import NoSLORulesError


def _rec(record, expr, label):
    return PromRule(record=record, expr=expr, labels={"test-label": label})


def _alert(alert, expr, label):
    return PromRule(alert=alert, expr=expr, labels={"test-label": label}, annotations={"test-annot": label})


def _slos():
    return [
        SLORulesResult(
            slo=PromSLO(id="testa"),
            rules=PromSLORules(
                sli_error_rec_rules=PromRuleGroup(rules=[
                    _rec("test:record-a1", "test-expr-a1", "a-1"),
                    _rec("test:record-a2", "test-expr-a2", "a-2"),
                ]),
                metadata_rec_rules=PromRuleGroup(rules=[
                    _rec("test:record-a3", "test-expr-a3", "a-3"),
                    _rec("test:record-a4", "test-expr-a4", "a-4"),
                ]),
                alert_rules=PromRuleGroup(rules=[
                    _alert("testAlertA1", "test-expr-a1", "a-1"),
                    _alert("testAlertA2", "test-expr-a2", "a-2"),
                ]),
            ),
        ),
        SLORulesResult(
            slo=PromSLO(id="testb"),
            rules=PromSLORules(
                sli_error_rec_rules=PromRuleGroup(rules=[_rec("test:record-b1", "test-expr-b1", "b-1")]),
                metadata_rec_rules=PromRuleGroup(rules=[_rec("test:record-b2", "test-expr-b2", "b-2")]),
                alert_rules=PromRuleGroup(rules=[_alert("testAlertB1", "test-expr-b1", "b-1")]),
            ),
        ),
    ]


def _kmeta():
    return K8sMeta(
        name="test-name",
        namespace="test-ns",
        labels={"lk1": "lv1"},
        annotations={"ak1": "av1"},
        kind="test-kind",
        api_version="test-apiversion",
        uid="test-uid",
    )


def _exp_rec(record, expr, label):
    return {"record": record, "expr": expr, "labels": {"test-label": label}}


def _exp_alert(alert, expr, label):
    return {"alert": alert, "expr": expr, "labels": {"test-label": label}, "annotations": {"test-annot": label}}


EXPECTED_RULE = {
    "apiVersion": "monitoring.coreos.com/v1",
    "kind": "PrometheusRule",
    "metadata": {
        "name": "test-name",
        "namespace": "test-ns",
        "labels": {
            "lk1": "lv1",
            "app.kubernetes.io/component": "SLO",
            "app.kubernetes.io/managed-by": "sloth",
        },
        "annotations": {"ak1": "av1"},
        "ownerReferences": [
            {"kind": "test-kind", "apiVersion": "test-apiversion", "name": "test-name", "uid": "test-uid"}
        ],
    },
    "spec": {
        "groups": [
            {"name": "sloth-slo-sli-recordings-testa", "rules": [
                _exp_rec("test:record-a1", "test-expr-a1", "a-1"),
                _exp_rec("test:record-a2", "test-expr-a2", "a-2"),
            ]},
            {"name": "sloth-slo-meta-recordings-testa", "rules": [
                _exp_rec("test:record-a3", "test-expr-a3", "a-3"),
                _exp_rec("test:record-a4", "test-expr-a4", "a-4"),
            ]},
            {"name": "sloth-slo-alerts-testa", "rules": [
                _exp_alert("testAlertA1", "test-expr-a1", "a-1"),
                _exp_alert("testAlertA2", "test-expr-a2", "a-2"),
            ]},
            {"name": "sloth-slo-sli-recordings-testb", "rules": [
                _exp_rec("test:record-b1", "test-expr-b1", "b-1"),
            ]},
            {"name": "sloth-slo-meta-recordings-testb", "rules": [
                _exp_rec("test:record-b2", "test-expr-b2", "b-2"),
            ]},
            {"name": "sloth-slo-alerts-testb", "rules": [
                _exp_alert("testAlertB1", "test-expr-b1", "b-1"),
            ]},
        ]
    },
}


def _psl(name="psl01", namespace="ns01", generation=3):
    return {
        "apiVersion": "sloth.slok.dev/v1",
        "kind": "PrometheusServiceLevel",
        "metadata": {"name": name, "namespace": namespace, "generation": generation},
        "spec": {"service": "svc", "slos": [{"name": "a"}, {"name": "b"}]},
    }


def test_store_slos_without_slos_fails():
    mon = InMemoryMonitoringClient()
    repo = ApiserverRepository(InMemorySlothClient(), mon, None)
    with pytest.raises(ValueError):
        repo.store_slos(K8sMeta(), [])
    assert mon.list("") == []


def test_store_slos_without_generated_rules_fails():
    mon = InMemoryMonitoringClient()
    repo = ApiserverRepository(InMemorySlothClient(), mon, None)
    with pytest.raises(NoSLORulesError):
        repo.store_slos(K8sMeta(), [SLORulesResult()])
    assert mon.list("") == []


def test_store_slos_creates_prometheus_rule():
    mon = InMemoryMonitoringClient()
    repo = ApiserverRepository(InMemorySlothClient(), mon, None)
    repo.store_slos(_kmeta(), _slos())
    assert mon.list("") == [EXPECTED_RULE]


def test_store_slos_overwrites_existing_rule():
    existing = {
        "apiVersion": "monitoring.coreos.com/v1",
        "kind": "PrometheusRule",
        "metadata": {"name": "test-name", "namespace": "test-ns", "resourceVersion": "7"},
        "spec": {"groups": []},
    }
    mon = InMemoryMonitoringClient(existing)
    repo = ApiserverRepository(InMemorySlothClient(), mon, None)
    repo.store_slos(_kmeta(), _slos())

    got = mon.list("test-ns")
    assert len(got) == 1
    assert got[0]["metadata"]["resourceVersion"] == "7"
    assert got[0]["spec"] == EXPECTED_RULE["spec"]


def test_store_slos_twice_keeps_single_rule():
    mon = InMemoryMonitoringClient()
    repo = ApiserverRepository(InMemorySlothClient(), mon, None)
    repo.store_slos(_kmeta(), _slos())
    repo.store_slos(_kmeta(), _slos())
    assert mon.list("") == [EXPECTED_RULE]


def test_list_prometheus_service_levels_filters_namespace():
    sloth = InMemorySlothClient(_psl("a", "ns1"), _psl("b", "ns2"))
    repo = ApiserverRepository(sloth, InMemoryMonitoringClient(), None)
    assert [o["metadata"]["name"] for o in repo.list_prometheus_service_levels("ns2")] == ["b"]
    assert [o["metadata"]["name"] for o in repo.list_prometheus_service_levels("")] == ["a", "b"]


def test_ensure_status_success():
    sloth = InMemorySlothClient(_psl())
    repo = ApiserverRepository(sloth, InMemoryMonitoringClient(), None)
    repo.ensure_prometheus_service_level_status(_psl(), None)

    status = sloth.list("ns01")[0]["status"]
    assert status["promOpRulesGenerated"] is True
    assert status["promOpRulesGeneratedSLOs"] == 2
    assert status["processedSLOs"] == 2
    assert status["observedGeneration"] == 3
    ts = datetime.strptime(status["lastPromOpRulesSuccessfulGenerated"], "%Y-%m-%dT%H:%M:%SZ")
    assert abs(datetime.utcnow() - ts) < timedelta(minutes=5)


def test_ensure_status_error():
    sloth = InMemorySlothClient(_psl())
    repo = ApiserverRepository(sloth, InMemoryMonitoringClient(), None)
    input_obj = _psl()
    repo.ensure_prometheus_service_level_status(input_obj, RuntimeError("boom"))

    status = sloth.list("ns01")[0]["status"]
    assert status["promOpRulesGenerated"] is False
    assert status["promOpRulesGeneratedSLOs"] == 0
    assert status["processedSLOs"] == 2
    assert "lastPromOpRulesSuccessfulGenerated" not in status
    assert "status" not in input_obj


def test_ensure_status_unknown_resource_fails():
    repo = ApiserverRepository(InMemorySlothClient(), InMemoryMonitoringClient(), None)
    with pytest.raises(NotFoundError):
        repo.ensure_prometheus_service_level_status(_psl(), None)


def test_dry_run_skips_writes_but_reads():
    sloth = InMemorySlothClient(_psl())
    mon = InMemoryMonitoringClient()
    dry = DryRunApiserverRepository(ApiserverRepository(sloth, mon, None), None)

    dry.store_slos(_kmeta(), _slos())
    dry.ensure_prometheus_service_level_status(_psl(), None)

    assert mon.list("") == []
    listed = dry.list_prometheus_service_levels("ns01")
    assert len(listed) == 1
    assert "status" not in listed[0]


def test_fake_repository_lists_sample_resource():
    fake = FakeApiserverRepository(None)
    items = fake.list_prometheus_service_levels("")
    assert [o["metadata"]["name"] for o in items] == ["fake01"]
    assert items[0]["spec"]["service"] == "svc01"


def test_fake_repository_sample_maps_to_model():
    fake = FakeApiserverRepository(None)
    resource = fake.list_prometheus_service_levels("")[0]
    group = K8sSlothPrometheusCRSpecLoader(None, timedelta(days=30)).load_spec(resource)
    assert [slo.id for slo in group.slos] == ["svc01-slo01", "svc01-slo02"]
    assert group.slos[0].labels == {"globalk1": "globalv1", "slo01k1": "slo01v1"}
    assert group.slos[1].page_alert_meta.disable is True


def test_fake_repository_status_and_store():
    fake = FakeApiserverRepository(None)
    resource = fake.list_prometheus_service_levels("")[0]
    updated = fake.ensure_prometheus_service_level_status(resource, None)
    assert updated["status"]["promOpRulesGeneratedSLOs"] == 2

    fake.store_slos(_kmeta(), _slos())
    with pytest.raises(ValueError):
        fake.store_slos(_kmeta(), [])