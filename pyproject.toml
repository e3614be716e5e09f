[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "qemutrace"
version = "0.1.0"
description = "Post-processing tools for QEMU memory access traces: log merging, RowClone detection and cache filtering"
requires-python = ">=3.10"
keywords = ["qemu", "trace", "memory", "rowclone", "cache", "ramulator"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
qemutrace-merge = "qemutrace.log_merger:main"
qemutrace-rowclone = "qemutrace.rowclone:main"
qemutrace-cache = "qemutrace.cache:main"

[tool.hatch.build.targets.wheel]
packages = ["qemutrace"]

[tool.pytest.ini_options]
addopts = "-ra"
