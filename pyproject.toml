[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "provchain"
version = "0.1.0"
description = "Configuration parsing and signature storage backends for supply-chain provenance of task runs"
requires-python = ">=3.10"
dependencies = []
keywords = ["provenance", "signing", "supply-chain", "attestation", "storage", "configuration"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["provchain"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
