[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mapcore"
version = "0.1.0"
description = "Building blocks of a shared-memory MapReduce runtime: splitting, grouping, reducing, parallel sample sort, a radix array and a size-class allocator"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "mapreduce",
    "psrs",
    "parallel-sort",
    "radix-tree",
    "allocator",
    "thread-pool",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mapcore-gen = "mapcore.wordgen:main"
mapcore-merge = "mapcore.filecat:main"

[tool.hatch.build.targets.wheel]
packages = ["mapcore"]

[tool.hatch.build.targets.sdist]
include = ["mapcore", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
