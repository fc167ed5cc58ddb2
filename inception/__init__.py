"""Scene, resource and glTF loading core of a small 3D rendering engine."""

__version__ = "0.1.0"