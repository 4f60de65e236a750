"""Writers that render SLO rules as Prometheus or Prometheus operator YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, TextIO, Tuple

import yaml

from .model import K8sMeta, PromRule, PromRuleGroup, PromSLO, PromSLORules, SLORulesResult, merge_labels

SLOTH_VERSION = "dev"

_YAML_TOP_DISCLAIMER = f"""
---
# Code generated by Sloth ({SLOTH_VERSION}).
# DO NOT EDIT.

"""

_DURATION_UNITS = (
    ("y", timedelta(days=365)),
    ("w", timedelta(days=7)),
    ("d", timedelta(days=1)),
    ("h", timedelta(hours=1)),
    ("m", timedelta(minutes=1)),
    ("s", timedelta(seconds=1)),
    ("ms", timedelta(milliseconds=1)),
)


class NoSLORulesError(Exception):
    """No rules were generated, so there is nothing to store."""

    def __init__(self, message: str = "0 SLO Prometheus rules generated") -> None:
        super().__init__(message)


def write_yaml_top_disclaimer(data: str) -> str:
    """Prefix rendered YAML with the generated-code disclaimer."""
    return _YAML_TOP_DISCLAIMER + data


def _format_duration(duration: timedelta) -> str:
    remaining = duration // timedelta(milliseconds=1)
    if remaining <= 0:
        return "0s"
    parts = []
    for suffix, unit in _DURATION_UNITS:
        unit_ms = unit // timedelta(milliseconds=1)
        count, remaining = divmod(remaining, unit_ms)
        if count:
            parts.append(f"{count}{suffix}")
    return "".join(parts)


class _YAMLDumper(yaml.SafeDumper):
    pass


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.Node:
    style = "|" if "\n" in value else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", value, style=style)


_YAMLDumper.add_representer(str, _represent_str)


def _dump_yaml(document: Any, sort_keys: bool) -> str:
    return yaml.dump(
        document,
        Dumper=_YAMLDumper,
        sort_keys=sort_keys,
        default_flow_style=False,
        allow_unicode=True,
        width=2**31 - 1,
    )


class _SLOWithRules(Protocol):
    slo: PromSLO
    rules: PromSLORules


def _rule_groups(slos: Iterable[_SLOWithRules]) -> Iterator[Tuple[str, PromRuleGroup]]:
    for item in slos:
        kinds = (
            ("sli-recordings", item.rules.sli_error_rec_rules),
            ("meta-recordings", item.rules.metadata_rec_rules),
            ("alerts", item.rules.alert_rules),
        )
        for kind, group in kinds:
            if group.rules:
                yield f"sloth-slo-{kind}-{item.slo.id}", group


def _rule_to_dict(rule: PromRule) -> Dict[str, Any]:
    doc: Dict[str, Any] = {}
    if rule.record:
        doc["record"] = rule.record
    if rule.alert:
        doc["alert"] = rule.alert
    doc["expr"] = rule.expr
    if rule.for_:
        doc["for"] = _format_duration(rule.for_)
    if rule.labels:
        doc["labels"] = dict(sorted(rule.labels.items()))
    if rule.annotations:
        doc["annotations"] = dict(sorted(rule.annotations.items()))
    return doc


def _group_to_dict(name: str, group: PromRuleGroup) -> Dict[str, Any]:
    doc: Dict[str, Any] = {"name": name}
    if group.interval:
        doc["interval"] = _format_duration(group.interval)
    doc["rules"] = [_rule_to_dict(rule) for rule in group.rules]
    return doc


def map_model_to_prometheus_operator(kmeta: K8sMeta, slos: Sequence[SLORulesResult]) -> Dict[str, Any]:
    """Map SLO rules to a Prometheus operator PrometheusRule manifest."""
    if not slos:
        raise ValueError("slo rules required")

    groups = [_group_to_dict(name, group) for name, group in _rule_groups(slos)]
    if not groups:
        raise NoSLORulesError()

    metadata: Dict[str, Any] = {"name": kmeta.name}
    if kmeta.namespace:
        metadata["namespace"] = kmeta.namespace
    metadata["labels"] = merge_labels(
        kmeta.labels,
        {"app.kubernetes.io/component": "SLO", "app.kubernetes.io/managed-by": "sloth"},
    )
    if kmeta.annotations:
        metadata["annotations"] = dict(kmeta.annotations)

    return {
        "apiVersion": "monitoring.coreos.com/v1",
        "kind": "PrometheusRule",
        "metadata": metadata,
        "spec": {"groups": groups},
    }


@dataclass
class StdPrometheusStorageSLO:
    slo: PromSLO = field(default_factory=PromSLO)
    rules: PromSLORules = field(default_factory=PromSLORules)


class StdPrometheusGroupedRulesYAMLRepo:
    """Writes SLO rules grouped per SLO in the Prometheus rules file format."""

    def __init__(self, writer: TextIO, logger: Optional[logging.Logger] = None) -> None:
        self._writer = writer
        self._logger = logger or logging.getLogger(__name__)

    def store_slos(self, slos: Sequence[StdPrometheusStorageSLO]) -> None:
        if not slos:
            raise ValueError("slo rules required")

        groups: List[Dict[str, Any]] = [_group_to_dict(name, group) for name, group in _rule_groups(slos)]
        # An empty output is most likely a mistake (typos, too many disabled parts...).
        if not groups:
            raise NoSLORulesError()

        rendered = write_yaml_top_disclaimer(_dump_yaml({"groups": groups}, sort_keys=False))
        self._writer.write(rendered)
        self._logger.info("Prometheus rules written (groups=%d)", len(groups))


class IOWriterPrometheusOperatorYAMLRepo:
    """Writes SLO rules as a Prometheus operator PrometheusRule YAML manifest."""

    def __init__(self, writer: TextIO, logger: Optional[logging.Logger] = None) -> None:
        self._writer = writer
        self._logger = logger or logging.getLogger(__name__)

    def store_slos(self, kmeta: K8sMeta, slos: Sequence[SLORulesResult]) -> None:
        manifest = map_model_to_prometheus_operator(kmeta, slos)
        manifest["metadata"]["creationTimestamp"] = None
        rendered = write_yaml_top_disclaimer(_dump_yaml(manifest, sort_keys=True))
        self._writer.write(rendered)
        self._logger.debug("Prometheus operator rule written: %s", kmeta.name)