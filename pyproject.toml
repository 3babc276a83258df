[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nbml"
version = "0.1.5"
description = "Machine learning primitives on NumPy: dense, attention and recurrent layers, optimizers and reinforcement-learning agents"
requires-python = ">=3.10"
dependencies = [
    "numpy",
    "matplotlib",
]
keywords = [
    "machine-learning",
    "neural-networks",
    "transformer",
    "attention",
    "recurrent",
    "reinforcement-learning",
    "ppo",
    "td3",
    "sac",
    "numpy",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
nbml-demo = "nbml.demos:main"

[tool.hatch.build.targets.wheel]
packages = ["nbml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
