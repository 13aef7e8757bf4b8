[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fluentkit"
version = "0.1.0"
description = "Kubernetes manifest builders, route labels, file watchers and process supervisors for Fluent Bit and Fluentd"
requires-python = ">=3.10"
keywords = [
    "fluent-bit",
    "fluentd",
    "logging",
    "kubernetes",
    "manifests",
    "supervisor",
    "file-watcher",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Logging",
    "Topic :: System :: Monitoring",
]
dependencies = [
    "watchdog",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
fluentkit-receiver = "fluentkit.receiver:main"
fluentkit-fluentbit-watcher = "fluentkit.fluentbit_watcher:main"
fluentkit-fluentd-watcher = "fluentkit.fluentd_watcher:main"

[tool.hatch.build.targets.wheel]
packages = ["fluentkit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
