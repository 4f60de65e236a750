"""Loader for OpenSLO ``openslo/v1alpha`` YAML SLO specs."""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Any, List, Mapping, Union

from .model import PromAlertMeta, PromSLI, PromSLIRaw, PromSLO, PromSLOGroup, SpecError
from .sloth_spec import _as_text, _mapping, _parse_yaml, _string

API_VERSION = "openslo/v1alpha"

_KIND_REGEX = re.compile(r"""^kind: +['"]?SLO['"]? *$""", re.MULTILINE)
_API_VERSION_REGEX = re.compile(r"""^apiVersion: +['"]?openslo/v1alpha['"]? *$""", re.MULTILINE)

_ERROR_RATIO_RAW_QUERY = """
  1 - (
    (
      {good}
    )
    /
    (
      {total}
    )
  )
"""

_SUPPORTED_SOURCES = ("prometheus", "sloth")


def _list(value: Any, what: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise SpecError(f"{what} must be a list")
    return value


def _validate_time_windows(time_windows: List[Any]) -> None:
    """Only a single day based time window is supported."""
    if not time_windows:
        return
    if len(time_windows) > 1:
        raise SpecError("only 1 time window is supported")
    window = _mapping(time_windows[0], "time window")
    if _string(window.get("unit")).lower() != "day":
        raise SpecError("only days based time windows are supported")


def _get_sli(objective: Mapping[str, Any]) -> PromSLI:
    """Map a ratio objective to a raw error ratio SLI.

    OpenSLO ratios use good/total events while the model uses errors, so the
    good ratio is subtracted from one.
    """
    ratio = objective.get("ratioMetrics")
    if ratio is None:
        raise SpecError("missing ratioMetrics")
    ratio = _mapping(ratio, "ratioMetrics")
    good = _mapping(ratio.get("good"), "good")
    total = _mapping(ratio.get("total"), "total")

    good_source = _string(good.get("source"))
    total_source = _string(total.get("source"))
    if good_source not in _SUPPORTED_SOURCES:
        raise SpecError("prometheus or sloth query ratio 'good' source is required")
    if total_source != "prometheus" and good_source != "sloth":
        raise SpecError("prometheus or sloth query ratio 'total' source is required")

    good_type = _string(good.get("queryType"))
    total_type = _string(total.get("queryType"))
    if good_type != "promql":
        raise SpecError(f"unsupported 'good' indicator query type: {good_type}")
    if total_type != "promql":
        raise SpecError(f"unsupported 'total' indicator query type: {total_type}")

    query = _ERROR_RATIO_RAW_QUERY.format(good=_string(good.get("query")), total=_string(total.get("query")))
    return PromSLI(raw=PromSLIRaw(error_ratio_query=query))


class OpenSLOYAMLSpecLoader:
    """Loads OpenSLO YAML specs; every objective becomes an SLO of its own."""

    def __init__(self, window_period: timedelta) -> None:
        self._window_period = window_period

    def is_spec_type(self, data: Union[bytes, str]) -> bool:
        text = _as_text(data)
        return bool(_KIND_REGEX.search(text)) and bool(_API_VERSION_REGEX.search(text))

    def load_spec(self, data: Union[bytes, str]) -> PromSLOGroup:
        text = _as_text(data)
        if not text:
            raise SpecError("spec is required")

        doc = _parse_yaml(text)
        if doc.get("apiVersion") != API_VERSION:
            raise SpecError(f"invalid spec version, should be {API_VERSION!r}")

        spec = _mapping(doc.get("spec"), "spec")
        objectives = _list(spec.get("objectives"), "objectives")
        if not objectives:
            raise SpecError("at least one SLO is required")

        time_windows = _list(spec.get("timeWindows"), "timeWindows")
        try:
            _validate_time_windows(time_windows)
        except SpecError as err:
            raise SpecError(f"invalid SLO time windows: {err}") from err

        try:
            slos = self._get_slos(doc, spec, objectives, time_windows)
        except SpecError as err:
            raise SpecError(f"could not map to model: could not map SLOs correctly: {err}") from err

        return PromSLOGroup(slos=slos, original_source=doc)

    def _get_slos(
        self,
        doc: Mapping[str, Any],
        spec: Mapping[str, Any],
        objectives: List[Any],
        time_windows: List[Any],
    ) -> List[PromSLO]:
        metadata = _mapping(doc.get("metadata"), "metadata")
        name = _string(metadata.get("name"))
        service = _string(spec.get("service"))
        description = _string(spec.get("description"))

        time_window = self._window_period
        if time_windows:
            count = _mapping(time_windows[0], "time window").get("count") or 0
            time_window = timedelta(days=int(count))

        slos: List[PromSLO] = []
        for idx, raw_objective in enumerate(objectives):
            objective = _mapping(raw_objective, "objective")
            try:
                sli = _get_sli(objective)
            except SpecError as err:
                raise SpecError(f"could not map SLI: {err}") from err

            target = objective.get("target")
            if target is None:
                raise SpecError("objective target is required")

            slos.append(
                PromSLO(
                    id=f"{service}-{name}-{idx}",
                    name=f"{name}-{idx}",
                    service=service,
                    description=description,
                    time_window=time_window,
                    sli=sli,
                    # OpenSLO targets are ratios, the model uses percents.
                    objective=float(target) * 100,
                    page_alert_meta=PromAlertMeta(disable=True),
                    ticket_alert_meta=PromAlertMeta(disable=True),
                )
            )
        return slos