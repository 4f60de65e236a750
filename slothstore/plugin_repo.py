"""Repository of SLI and SLO plugins discovered on the file system."""

from __future__ import annotations

import logging
import os
import re
import threading
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, Optional, Protocol, Tuple

from .model import NotFoundError, SLIPlugin, SLOPlugin

_PLUGIN_FILE_REGEX = re.compile(r"plugin.go$")


class _SLIPluginLoader(Protocol):
    def load_raw_sli_plugin(self, src: str) -> SLIPlugin: ...


class _SLOPluginLoader(Protocol):
    def load_raw_plugin(self, src: str) -> SLOPlugin: ...


class PluginAlreadyLoadedError(ValueError):
    """Two plugin files declare the same plugin ID."""


def _iter_files(directory: Path, relative: PurePosixPath = PurePosixPath()) -> Iterator[Tuple[str, Path]]:
    """Yield (relative posix path, path) of every file, walking in lexical order."""
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        rel = relative / entry.name
        if entry.is_dir():
            yield from _iter_files(entry, rel)
        else:
            yield str(rel), entry


class FilePluginRepo:
    """Loads SLI and SLO plugins from plugin files found under the given roots."""

    def __init__(
        self,
        logger: Optional[logging.Logger],
        sli_plugin_loader: _SLIPluginLoader,
        slo_plugin_loader: _SLOPluginLoader,
        *args: "os.PathLike[str] | str",
    ) -> None:
        self._roots = tuple(Path(root) for root in args)
        self._sli_loader = sli_plugin_loader
        self._slo_loader = slo_plugin_loader
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._slo_plugins: Dict[str, SLOPlugin] = {}
        self._sli_plugins: Dict[str, SLIPlugin] = {}
        self.reload()

    def reload(self) -> None:
        """Discover and load all plugins again, replacing the loaded ones."""
        slo_plugins, sli_plugins = self._load_plugins()
        with self._lock:
            self._slo_plugins = slo_plugins
            self._sli_plugins = sli_plugins
        self._logger.info(
            "Plugins loaded (slo-plugins=%d, sli-plugins=%d)", len(slo_plugins), len(sli_plugins)
        )

    def get_slo_plugin(self, plugin_id: str) -> SLOPlugin:
        with self._lock:
            try:
                return self._slo_plugins[plugin_id]
            except KeyError:
                raise NotFoundError(f"plugin {plugin_id!r} not found") from None

    def list_slo_plugins(self) -> Dict[str, SLOPlugin]:
        with self._lock:
            return dict(self._slo_plugins)

    def get_sli_plugin(self, plugin_id: str) -> SLIPlugin:
        with self._lock:
            try:
                return self._sli_plugins[plugin_id]
            except KeyError:
                raise NotFoundError(f"plugin {plugin_id!r} not found") from None

    def list_sli_plugins(self) -> Dict[str, SLIPlugin]:
        with self._lock:
            return dict(self._sli_plugins)

    def _load_plugins(self) -> Tuple[Dict[str, SLOPlugin], Dict[str, SLIPlugin]]:
        slo_plugins: Dict[str, SLOPlugin] = {}
        sli_plugins: Dict[str, SLIPlugin] = {}

        for root in self._roots:
            for rel_path, path in _iter_files(root):
                if not _PLUGIN_FILE_REGEX.search(rel_path):
                    continue

                source = path.read_text(encoding="utf-8")

                # Try as SLI plugin first, then as SLO plugin.
                try:
                    sli_plugin = self._sli_loader.load_raw_sli_plugin(source)
                except Exception as sli_err:
                    try:
                        slo_plugin = self._slo_loader.load_raw_plugin(source)
                    except Exception as slo_err:
                        self._logger.error(
                            "could not load %r as SLI or SLO plugin: (SLI plugin error: %s | SLO plugin error: %s)",
                            rel_path, sli_err, slo_err,
                        )
                        continue
                    if slo_plugin.id in slo_plugins:
                        raise PluginAlreadyLoadedError(f"plugin {slo_plugin.id!r} already loaded")
                    slo_plugins[slo_plugin.id] = slo_plugin
                    self._logger.debug("SLO plugin discovered and loaded: %s", slo_plugin.id)
                    continue

                if sli_plugin.id in sli_plugins:
                    raise PluginAlreadyLoadedError(f"plugin {sli_plugin.id!r} already loaded")
                sli_plugins[sli_plugin.id] = sli_plugin
                self._logger.debug("SLI plugin discovered and loaded: %s", sli_plugin.id)

        return slo_plugins, sli_plugins