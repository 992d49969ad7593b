[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tydb"
version = "0.1.0"
description = "Storage, manifest records, sorted table writing and block decoding for an LSM key/value store"
requires-python = ">=3.10"
dependencies = []
keywords = ["leveldb", "lsm", "key-value", "sstable", "storage", "database"]
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
    "Topic :: Database :: Database Engines/Servers",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tydb"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
