# slothstore

Spec loading, plugin discovery and rule storage for SLO based Prometheus
alerting.

The package is a library. It reads SLO definitions into a common model,
finds plugin files on disk, and writes generated Prometheus rules as YAML
or stores them as `PrometheusRule` resources in an in-memory store.

## Modules

- `slothstore.model`: the dataclasses shared by everything else
  (`PromSLO`, `PromSLOGroup`, `PromSLI`, `PromAlertMeta`, `PromRule`,
  `PromRuleGroup`, `PromSLORules`, `SLORulesResult`, `K8sMeta`, `SLIPlugin`,
  `SLOPlugin`, ...), the errors `SpecError` and `NotFoundError`, and
  `merge_labels(*label_sets)`, which merges dicts so that later ones win.
- `slothstore.sloth_spec`: `SlothPrometheusYAMLSpecLoader` for
  `version: prometheus/v1` specs, and the `SLIPluginRepo` protocol.
- `slothstore.k8s_spec`: `K8sSlothPrometheusYAMLSpecLoader` for
  `sloth.slok.dev/v1` `PrometheusServiceLevel` YAML manifests, and
  `K8sSlothPrometheusCRSpecLoader`, which maps an already decoded resource
  (a mapping) to the model.
- `slothstore.openslo`: `OpenSLOYAMLSpecLoader` for `openslo/v1alpha` `SLO`
  documents.
- `slothstore.plugin_repo`: `FilePluginRepo`, which discovers plugins in
  directory trees.
- `slothstore.rules_output`: `StdPrometheusGroupedRulesYAMLRepo`,
  `IOWriterPrometheusOperatorYAMLRepo` and `map_model_to_prometheus_operator`.
- `slothstore.apiserver`: `ApiserverRepository`, `DryRunApiserverRepository`,
  `FakeApiserverRepository` and the in-memory clients
  `InMemorySlothClient` and `InMemoryMonitoringClient`.

## Installation

```
pip install slothstore
```

To run the tests:

```
pip install "slothstore[test]"
pytest
```

## Loading specs

Every YAML loader has `is_spec_type(data)`, which tells from the
`version`, or the `apiVersion` and `kind` lines, whether the data is its
format, and `load_spec(data)`, which returns a `PromSLOGroup`. Both accept
`bytes` or `str`. Any spec that is empty, is not valid YAML, has the
wrong version, has no SLOs or cannot be mapped raises `SpecError`.

```python
from datetime import timedelta
from slothstore.sloth_spec import SlothPrometheusYAMLSpecLoader

class NoPlugins:
    def get_sli_plugin(self, plugin_id):
        raise KeyError(plugin_id)

spec = b"""
version: "prometheus/v1"
service: "myservice"
labels:
  owner: "myteam"
slos:
  - name: "requests-availability"
    objective: 99.9
    sli:
      events:
        error_query: sum(rate(http_requests_total{code=~"5.."}[{{.window}}]))
        total_query: sum(rate(http_requests_total[{{.window}}]))
    alerting:
      page_alert:
        disable: true
      ticket_alert:
        disable: true
"""

loader = SlothPrometheusYAMLSpecLoader(NoPlugins(), timedelta(days=30))
assert loader.is_spec_type(spec)
group = loader.load_spec(spec)
print(group.slos[0].id)         # myservice-requests-availability
print(group.slos[0].labels)     # {'owner': 'myteam'}
```

What the Sloth and Kubernetes loaders do:

- Each SLO gets the ID `<service>-<name>` and the loader's window period as
  its time window.
- Group labels are merged with SLO labels. Alert labels and annotations are
  merged with the page or ticket alert's own. A disabled alert becomes
  `PromAlertMeta(disable=True)`.
- Group SLO plugins come first, then the SLO's own. `overridePrevious` at
  SLO level drops the group plugins. Plugin configs are kept as compact
  JSON strings.
- An SLI `plugin` is looked up with `plugins_repo.get_sli_plugin(id)`. Its
  `func(meta, labels, options)` is called with `service`, `slo` and
  `objective` (formatted like `99.000000`) in `meta`, and the result becomes
  the raw error ratio query.

The Sloth format uses snake_case keys (`error_query`, `page_alert`,
`slo_plugins`). The Kubernetes format uses camelCase (`errorQuery`,
`pageAlert`, `sloPlugins`).

`OpenSLOYAMLSpecLoader(window_period)` turns every objective into its own
SLO, with ID `<service>-<name>-<index>` and name `<name>-<index>`. Only
`ratioMetrics` with `promql` queries are supported. The SLI becomes
`1 - (good / total)`, and the ratio `target` becomes a percent objective.
At most one time window is allowed, and its unit must be `Day`. The window's
`count` in days replaces the default window. Alerts are disabled.

## Discovering plugins

```python
from slothstore.plugin_repo import FilePluginRepo

repo = FilePluginRepo(None, sli_loader, slo_loader, "/etc/sloth/plugins")
sli_plugin = repo.get_sli_plugin("my/sli-plugin")
```

Every file whose path ends in `plugin.go` is read and handed to
`sli_loader.load_raw_sli_plugin(src)` first, then to
`slo_loader.load_raw_plugin(src)`. A file that neither loader accepts is
logged and skipped. Two plugins with the same ID raise
`PluginAlreadyLoadedError`, and an unknown ID raises `NotFoundError`.
`list_sli_plugins()` and `list_slo_plugins()` return copies of the loaded
plugins. `reload()` scans the trees again. Passing `None` as the logger
uses the module's standard `logging` logger.

## Writing Prometheus rules

```python
import io
from slothstore.model import PromRule, PromRuleGroup, PromSLO, PromSLORules
from slothstore.rules_output import (
    StdPrometheusGroupedRulesYAMLRepo,
    StdPrometheusStorageSLO,
)

out = io.StringIO()
repo = StdPrometheusGroupedRulesYAMLRepo(out, None)
repo.store_slos([
    StdPrometheusStorageSLO(
        slo=PromSLO(id="myservice-availability"),
        rules=PromSLORules(
            sli_error_rec_rules=PromRuleGroup(rules=[
                PromRule(record="slo:sli_error:ratio_rate5m", expr="...",
                         labels={"sloth_window": "5m"}),
            ]),
        ),
    ),
])
print(out.getvalue())
```

Each SLO produces up to three groups: `sloth-slo-sli-recordings-<id>`,
`sloth-slo-meta-recordings-<id>` and `sloth-slo-alerts-<id>`. A group with
no rules is left out, and a group interval is written only when one is set
(for example `42m`). The output starts with a "Code generated by Sloth
(dev) / DO NOT EDIT" header.

`IOWriterPrometheusOperatorYAMLRepo(writer, logger).store_slos(kmeta, slos)`
writes the same groups inside a `monitoring.coreos.com/v1` `PrometheusRule`,
using the name, namespace, labels and annotations from `K8sMeta`, plus the
labels `app.kubernetes.io/component: SLO` and
`app.kubernetes.io/managed-by: sloth`. `map_model_to_prometheus_operator`
returns that manifest as a dict.

Both writers raise `ValueError` when given no SLOs, and `NoSLORulesError`
when the SLOs hold no rules.

## Kubernetes storage

`ApiserverRepository(sloth_client, monitoring_client, logger)` works on
manifests as plain dicts:

- `list_prometheus_service_levels(namespace)` lists resources. An empty
  namespace lists all of them.
- `ensure_prometheus_service_level_status(slo, error)` writes the
  generation status. On success (`error is None`) it also records the
  generated SLO count and a UTC timestamp.
- `store_slos(kmeta, slos)` creates the `PrometheusRule` with an owner
  reference to the SLO resource. If the rule already exists, it overwrites it.

`DryRunApiserverRepository` passes reads through to the wrapped repository
and only logs writes. `FakeApiserverRepository` runs on in-memory clients
seeded with a sample `fake01` resource.

## What this package does not do

It has no command-line tool and no controller. It does not connect to a real
Kubernetes API server: the only clients provided are the in-memory ones, and
nothing watches resources. It does not generate SLO rules from the model,
and it does not compile or run plugin source itself. That is up to the
loaders you pass to `FilePluginRepo`.