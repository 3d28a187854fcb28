[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "raycluster"
version = "0.1.0"
description = "Vector math, command-line parsing and a clustered tile-rendering protocol for a ray tracer"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = [
    "raytracer",
    "ray tracing",
    "rendering",
    "cluster",
    "distributed rendering",
    "tiles",
    "vector math",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Graphics :: 3D Rendering",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["raycluster"]

[tool.hatch.build.targets.sdist]
include = [
    "raycluster",
    "tests",
    "README.md",
]

[tool.pytest.ini_options]
addopts = "-ra"
