[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "benchkit"
version = "0.1.0"
description = "Micro-benchmark registration, argument ranges and an adaptive iteration runner"
requires-python = ">=3.10"
dependencies = []
keywords = ["benchmark", "microbenchmark", "timing", "performance"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Benchmark",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["benchkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
