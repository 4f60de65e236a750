"""Load SLO specs and plugins, and store generated Prometheus SLO rules."""

__version__ = "0.1.0"

__all__ = [
    "apiserver",
    "k8s_spec",
    "model",
    "openslo",
    "plugin_repo",
    "rules_output",
    "sloth_spec",
]