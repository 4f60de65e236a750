[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "slothstore"
version = "0.1.0"
description = "Load SLO specs (Sloth, Kubernetes, OpenSLO), discover SLI/SLO plugins and store generated Prometheus SLO rules."
requires-python = ">=3.10"
keywords = ["slo", "sli", "prometheus", "prometheus-operator", "openslo", "monitoring", "alerting"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]
dependencies = [
    "pyyaml>=6.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["slothstore"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
