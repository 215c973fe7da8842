[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "unikern"
version = "0.1.0"
description = "Unikernel runtime model: kernel threads, wait queues, cooperative and preemptive schedulers, signal sets, random sources, trap reports and calendar time conversion"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "unikernel",
    "scheduler",
    "threads",
    "wait-queue",
    "signals",
    "round-robin",
    "cooperative",
    "calendar",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System Kernels",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["unikern"]

[tool.hatch.build.targets.sdist]
include = ["unikern", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
