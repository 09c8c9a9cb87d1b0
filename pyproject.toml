[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "winewarden"
version = "0.1.0"
description = "Calm protection for Windows games on Linux: policy, monitoring and reporting around Wine sessions"
requires-python = ">=3.11"
keywords = ["wine", "gaming", "security", "policy", "monitoring", "trust"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Topic :: Games/Entertainment",
]
dependencies = [
    "platformdirs>=3.0",
    "tomli-w>=1.0",
    "watchdog>=3.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[project.scripts]
winewarden = "winewarden.cli:main"
winewarden-daemon = "winewarden.daemon:main"

[tool.hatch.build.targets.wheel]
packages = ["winewarden"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
