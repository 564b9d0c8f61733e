[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "switchnet"
version = "0.1.0"
description = "A simulated network of switches and systems that exchange files over pipes, driven from an interactive console"
requires-python = ">=3.10"
dependencies = []
keywords = ["network", "switch", "simulation", "pipes", "fifo", "spanning-tree", "ipc"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
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
switchnet = "switchnet.loadbalancer:main"

[tool.setuptools.packages.find]
include = ["switchnet*"]

[tool.pytest.ini_options]
addopts = "-ra"
