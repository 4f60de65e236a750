"""Domain model shared by the SLO loaders and the rule storages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

Labels = Dict[str, str]
SLIPluginFunc = Callable[[Mapping[str, str], Mapping[str, str], Mapping[str, str]], str]


class NotFoundError(LookupError):
    """A requested resource does not exist."""


class SpecError(ValueError):
    """A spec could not be loaded, is invalid or could not be mapped."""


def merge_labels(*label_sets: Optional[Mapping[str, str]]) -> Labels:
    """Merge label sets into a new dict; later sets override earlier ones."""
    merged: Labels = {}
    for labels in label_sets:
        if labels:
            merged.update(labels)
    return merged


@dataclass
class K8sMeta:
    """Simplified Kubernetes object metadata used for storage."""

    kind: str = ""
    api_version: str = ""
    name: str = ""
    uid: str = ""
    namespace: str = ""
    annotations: Labels = field(default_factory=dict)
    labels: Labels = field(default_factory=dict)


@dataclass
class PromSLIRaw:
    error_ratio_query: str = ""


@dataclass
class PromSLIEvents:
    error_query: str = ""
    total_query: str = ""


@dataclass
class PromSLI:
    raw: Optional[PromSLIRaw] = None
    events: Optional[PromSLIEvents] = None


@dataclass
class PromAlertMeta:
    disable: bool = False
    name: str = ""
    labels: Labels = field(default_factory=dict)
    annotations: Labels = field(default_factory=dict)


@dataclass
class PromSLOPluginMetadata:
    id: str = ""
    config: Any = None
    priority: int = 0


@dataclass
class SLOPlugins:
    override_default_plugins: bool = False
    plugins: List[PromSLOPluginMetadata] = field(default_factory=list)


@dataclass
class PromSLO:
    id: str = ""
    name: str = ""
    description: str = ""
    service: str = ""
    sli: PromSLI = field(default_factory=PromSLI)
    time_window: timedelta = timedelta(0)
    objective: float = 0.0
    labels: Labels = field(default_factory=dict)
    page_alert_meta: PromAlertMeta = field(default_factory=PromAlertMeta)
    ticket_alert_meta: PromAlertMeta = field(default_factory=PromAlertMeta)
    plugins: SLOPlugins = field(default_factory=SLOPlugins)


@dataclass
class PromSLOGroup:
    slos: List[PromSLO] = field(default_factory=list)
    original_source: Any = None


@dataclass
class PromRule:
    """A Prometheus recording or alerting rule."""

    record: str = ""
    alert: str = ""
    expr: str = ""
    for_: timedelta = timedelta(0)
    labels: Labels = field(default_factory=dict)
    annotations: Labels = field(default_factory=dict)


@dataclass
class PromRuleGroup:
    interval: timedelta = timedelta(0)
    rules: List[PromRule] = field(default_factory=list)


@dataclass
class PromSLORules:
    sli_error_rec_rules: PromRuleGroup = field(default_factory=PromRuleGroup)
    metadata_rec_rules: PromRuleGroup = field(default_factory=PromRuleGroup)
    alert_rules: PromRuleGroup = field(default_factory=PromRuleGroup)


@dataclass
class SLORulesResult:
    """Final rules generated for one SLO, stored in batches."""

    k8s_meta: K8sMeta = field(default_factory=K8sMeta)
    slo: PromSLO = field(default_factory=PromSLO)
    rules: PromSLORules = field(default_factory=PromSLORules)


@dataclass
class SLIPlugin:
    """An SLI plugin: builds a raw error ratio query from meta, labels and options."""

    id: str = ""
    func: Optional[SLIPluginFunc] = None


@dataclass
class SLOPlugin:
    """An SLO plugin that processes generated rules."""

    id: str = ""
    func: Optional[Callable[..., Any]] = None