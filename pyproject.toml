[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "inception"
version = "0.1.0"
description = "Scene, resource and glTF loading core of a small 3D rendering engine"
requires-python = ">=3.10"
keywords = ["3d", "rendering", "gltf", "scene graph", "entity component system", "pbr"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Graphics :: 3D Rendering",
]
dependencies = [
    "numpy",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["inception"]

[tool.pytest.ini_options]
addopts = "-ra"
