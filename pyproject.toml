[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "simplebank"
version = "0.1.0"
description = "A small in-memory banking HTTP API: users, accounts, cards, payments, transfers, deposits and loans."
requires-python = ">=3.10"
keywords = ["bank", "banking", "loans", "annuity", "payments", "rest", "api", "flask"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Office/Business :: Financial",
]
dependencies = [
    "bcrypt",
    "flask",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
simplebank = "simplebank.app:main"

[tool.hatch.build.targets.wheel]
packages = ["simplebank"]

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
