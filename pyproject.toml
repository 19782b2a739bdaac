[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "psyne"
version = "2.0.0"
description = "Backpressure policies, slab allocators, substrate-aware messages and tensor-aware TDT compression"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "messaging",
    "backpressure",
    "allocator",
    "tensor",
    "compression",
    "run-length-encoding",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
    "Topic :: System :: Archiving :: Compression",
    "Topic :: System :: Benchmark",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
psyne-tdt-bench = "psyne.tdt_benchmark:main"

[tool.hatch.build.targets.wheel]
packages = ["psyne"]

[tool.hatch.build.targets.sdist]
include = [
    "psyne",
    "tests",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
