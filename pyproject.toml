[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "labrpc"
version = "0.1.0"
description = "Small remote-procedure-call services over TCP with XDR payloads: a calculator, a word dictionary, a bakery ticket queue and a producer/consumer letter buffer"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "rpc",
    "xdr",
    "bakery algorithm",
    "producer consumer",
    "distributed computing",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
labrpc-calc = "labrpc.calculator:main"
labrpc-calc-server = "labrpc.calculator:serve"
labrpc-dict = "labrpc.dictionary:main"
labrpc-dict-server = "labrpc.dictionary:serve"
labrpc-bakery = "labrpc.bakery:main"
labrpc-bakery-server = "labrpc.bakery:serve"
labrpc-pc = "labrpc.prodcons:main"
labrpc-pc-server = "labrpc.prodcons:serve"

[tool.hatch.build.targets.wheel]
packages = ["labrpc"]

[tool.hatch.build.targets.sdist]
include = ["labrpc", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
