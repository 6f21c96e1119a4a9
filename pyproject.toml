[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "freyr"
version = "0.1.0"
description = "Scales a pool of workers to a time-varying target: a ship reconciler, a captain that tracks conscripts, and conscripts that enlist with it"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "kubernetes",
    "reconciler",
    "autoscaling",
    "load-generation",
    "sine-wave",
    "openweather",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Clustering",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
freyr-captain = "freyr.captain:main"
freyr-conscript = "freyr.conscript:main"
freyr-cli = "freyr.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["freyr"]

[tool.hatch.build.targets.sdist]
include = ["freyr", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
