[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ktpsock"
version = "0.1.0"
description = "KTP: a reliable, windowed message transport over UDP with a socket-style API"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "udp",
    "reliable transport",
    "sliding window",
    "sockets",
    "retransmission",
    "networking",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ktpsock-daemon = "ktpsock.daemon:main"
ktpsock-transfer = "ktpsock.transfer:main"
ktpsock-demo = "ktpsock.demo:main"

[tool.hatch.build.targets.wheel]
packages = ["ktpsock"]

[tool.hatch.build.targets.sdist]
include = ["ktpsock", "tests", "README.md", "pyproject.toml"]

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
