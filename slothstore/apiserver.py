"""Kubernetes API server storage for SLO resources and Prometheus operator rules."""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from .model import K8sMeta, NotFoundError, SLORulesResult
from .rules_output import map_model_to_prometheus_operator

Manifest = Dict[str, Any]

_SLOTH_API_VERSION = "sloth.slok.dev/v1"
_SLOTH_KIND = "PrometheusServiceLevel"


def _object_key(obj: Manifest) -> Tuple[str, str]:
    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        raise ValueError("object metadata name is required")
    return metadata.get("namespace") or "", name


class _InMemoryStore:
    """Objects keyed by (namespace, name), handed out as copies."""

    def __init__(self, objects: Sequence[Manifest]) -> None:
        self._objects: Dict[Tuple[str, str], Manifest] = {}
        for obj in objects:
            self._objects[_object_key(obj)] = copy.deepcopy(obj)

    def list(self, namespace: str) -> List[Manifest]:
        return [
            copy.deepcopy(obj)
            for key, obj in sorted(self._objects.items())
            if not namespace or key[0] == namespace
        ]

    def get(self, namespace: str, name: str) -> Manifest:
        try:
            return copy.deepcopy(self._objects[(namespace or "", name)])
        except KeyError:
            raise NotFoundError(f"{namespace}/{name} not found") from None

    def create(self, obj: Manifest) -> Manifest:
        key = _object_key(obj)
        if key in self._objects:
            raise ValueError(f"{key[0]}/{key[1]} already exists")
        self._objects[key] = copy.deepcopy(obj)
        return copy.deepcopy(obj)

    def replace(self, obj: Manifest) -> Manifest:
        key = _object_key(obj)
        if key not in self._objects:
            raise NotFoundError(f"{key[0]}/{key[1]} not found")
        self._objects[key] = copy.deepcopy(obj)
        return copy.deepcopy(obj)


class InMemorySlothClient:
    """In-memory client for ``PrometheusServiceLevel`` resources."""

    def __init__(self, *args: Manifest) -> None:
        self._store = _InMemoryStore(args)

    def list(self, namespace: str) -> List[Manifest]:
        """List resources in a namespace; an empty namespace lists all of them."""
        return self._store.list(namespace)

    def update_status(self, obj: Manifest) -> Manifest:
        """Replace only the status of a stored resource."""
        namespace, name = _object_key(obj)
        stored = self._store.get(namespace, name)
        stored["status"] = copy.deepcopy(obj.get("status") or {})
        return self._store.replace(stored)


class InMemoryMonitoringClient:
    """In-memory client for Prometheus operator ``PrometheusRule`` resources."""

    def __init__(self, *args: Manifest) -> None:
        self._store = _InMemoryStore(args)

    def get(self, namespace: str, name: str) -> Manifest:
        return self._store.get(namespace, name)

    def create(self, obj: Manifest) -> Manifest:
        return self._store.create(obj)

    def update(self, obj: Manifest) -> Manifest:
        return self._store.replace(obj)

    def list(self, namespace: str) -> List[Manifest]:
        return self._store.list(namespace)


class _SlothClient(Protocol):
    def list(self, namespace: str) -> List[Manifest]: ...

    def update_status(self, obj: Manifest) -> Manifest: ...


class _MonitoringClient(Protocol):
    def get(self, namespace: str, name: str) -> Manifest: ...

    def create(self, obj: Manifest) -> Manifest: ...

    def update(self, obj: Manifest) -> Manifest: ...


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class ApiserverRepository:
    """Stores SLO state and generated rules through Kubernetes API clients."""

    def __init__(
        self,
        sloth_client: _SlothClient,
        monitoring_client: _MonitoringClient,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._sloth_client = sloth_client
        self._monitoring_client = monitoring_client
        self._logger = logger or logging.getLogger(__name__)

    def list_prometheus_service_levels(self, namespace: str) -> List[Manifest]:
        return self._sloth_client.list(namespace)

    def ensure_prometheus_service_level_status(
        self, slo: Manifest, error: Optional[BaseException]
    ) -> Manifest:
        """Update the resource status from the result of a rules generation.

        Updating a status triggers a watch event, so a controller must break
        the resulting loop itself.
        """
        slo = copy.deepcopy(slo)
        slos = (slo.get("spec") or {}).get("slos") or []
        status = slo.setdefault("status", {})
        status["promOpRulesGenerated"] = False
        status["promOpRulesGeneratedSLOs"] = 0
        status["processedSLOs"] = len(slos)
        status["observedGeneration"] = (slo.get("metadata") or {}).get("generation", 0)

        if error is None:
            status["promOpRulesGenerated"] = True
            status["promOpRulesGeneratedSLOs"] = len(slos)
            status["lastPromOpRulesSuccessfulGenerated"] = _now_rfc3339()

        return self._sloth_client.update_status(slo)

    def store_slos(self, kmeta: K8sMeta, slos: Sequence[SLORulesResult]) -> None:
        rule = map_model_to_prometheus_operator(kmeta, slos)
        rule["metadata"].setdefault("ownerReferences", []).append(
            {
                "apiVersion": kmeta.api_version,
                "kind": kmeta.kind,
                "name": kmeta.name,
                "uid": kmeta.uid,
            }
        )
        self._ensure_prometheus_rule(rule)

    def _ensure_prometheus_rule(self, rule: Manifest) -> None:
        rule = copy.deepcopy(rule)
        namespace, name = _object_key(rule)
        try:
            stored = self._monitoring_client.get(namespace, name)
        except NotFoundError:
            self._monitoring_client.create(rule)
            self._logger.debug("PrometheusRule %s/%s has been created", namespace, name)
            return

        # Force overwrite.
        resource_version = (stored.get("metadata") or {}).get("resourceVersion")
        if resource_version is not None:
            rule["metadata"]["resourceVersion"] = resource_version
        self._monitoring_client.update(rule)
        self._logger.debug("PrometheusRule %s/%s has been overwritten", namespace, name)


class DryRunApiserverRepository:
    """Runs only read operations for real; writes are logged and skipped."""

    def __init__(self, repo: ApiserverRepository, logger: Optional[logging.Logger] = None) -> None:
        self._repo = repo
        self._logger = logger or logging.getLogger(__name__)

    def list_prometheus_service_levels(self, namespace: str) -> List[Manifest]:
        return self._repo.list_prometheus_service_levels(namespace)

    def ensure_prometheus_service_level_status(
        self, slo: Manifest, error: Optional[BaseException]
    ) -> None:
        self._logger.info("Dry run ensure_prometheus_service_level_status")

    def store_slos(self, kmeta: K8sMeta, slos: Sequence[SLORulesResult]) -> None:
        self._logger.info("Dry run store_slos")


def _fake_prometheus_service_levels() -> List[Manifest]:
    return [
        {
            "apiVersion": _SLOTH_API_VERSION,
            "kind": _SLOTH_KIND,
            "metadata": {"name": "fake01", "labels": {"prometheus": "default"}},
            "spec": {
                "service": "svc01",
                "labels": {"globalk1": "globalv1"},
                "slos": [
                    {
                        "name": "slo01",
                        "objective": 99.9,
                        "labels": {"slo01k1": "slo01v1"},
                        "sli": {
                            "events": {
                                "errorQuery": 'sum(rate(http_request_duration_seconds_count{job="myservice",code=~"(5..|429)"}[{{.window}}]))',
                                "totalQuery": 'sum(rate(http_request_duration_seconds_count{job="myservice"}[{{.window}}]))',
                            }
                        },
                        "alerting": {
                            "name": "myServiceAlert",
                            "labels": {"alert01k1": "alert01v1"},
                            "annotations": {"alert02k1": "alert02v1"},
                            "pageAlert": {},
                            "ticketAlert": {},
                        },
                    },
                    {
                        "name": "slo02",
                        "objective": 99.99,
                        "sli": {
                            "raw": {
                                "errorRatioQuery": (
                                    "\n"
                                    'sum(rate(http_request_duration_seconds_count{job="myservice2",code=~"(5..|429)"}[{{.window}}]))\n'
                                    "/\n"
                                    'sum(rate(http_request_duration_seconds_count{job="myservice2"}[{{.window}}]))\n'
                                )
                            }
                        },
                        "alerting": {
                            "pageAlert": {"disable": True},
                            "ticketAlert": {"disable": True},
                        },
                    },
                ],
            },
        }
    ]


class FakeApiserverRepository:
    """Repository backed by in-memory clients seeded with sample resources."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._repo = ApiserverRepository(
            InMemorySlothClient(*_fake_prometheus_service_levels()),
            InMemoryMonitoringClient(),
            logger,
        )

    def list_prometheus_service_levels(self, namespace: str) -> List[Manifest]:
        return self._repo.list_prometheus_service_levels(namespace)

    def ensure_prometheus_service_level_status(
        self, slo: Manifest, error: Optional[BaseException]
    ) -> Manifest:
        return self._repo.ensure_prometheus_service_level_status(slo, error)

    def store_slos(self, kmeta: K8sMeta, slos: Sequence[SLORulesResult]) -> None:
        self._repo.store_slos(kmeta, slos)