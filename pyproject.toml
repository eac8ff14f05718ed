[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "policyprop"
version = "0.1.0"
description = "Governance policy, placement and policy-automation models with the reconciliation logic that launches Ansible jobs from compliance events"
requires-python = ">=3.10"
dependencies = []
keywords = ["policy", "governance", "compliance", "automation", "ansible", "reconciler"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["policyprop"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
