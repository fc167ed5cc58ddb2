"""Physically based shading terms and the light records sent to shaders."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

PI = 3.14159265359

MAX_POINT_LIGHT_COUNT = 4
MAX_SPOT_LIGHT_COUNT = 4


def _vector(value, size: int, name: str) -> np.ndarray:
    array = np.asarray(value, dtype=float)
    if array.shape != (size,):
        raise ValueError(f"{name} must have {size} components, got shape {array.shape}")
    return array


def distribution_ggx(normal, halfway, roughness: float) -> float:
    """GGX normal distribution term."""
    a2 = roughness * roughness
    roughness_sq = a2 * a2
    n_dot_h = max(float(np.dot(normal, halfway)), 0.0)
    denom = n_dot_h * n_dot_h * (roughness_sq - 1.0) + 1.0
    return roughness_sq / (PI * denom * denom)


def geometry_schlick_ggx(n_dot_v: float, roughness: float) -> float:
    """Schlick-GGX geometry term for a single direction."""
    r = roughness + 1.0
    k = (r * r) / 8.0
    return n_dot_v / (n_dot_v * (1.0 - k) + k)


def geometry_smith(normal, view, light, roughness: float) -> float:
    """Smith geometry term combining view and light occlusion."""
    n_dot_v = max(float(np.dot(normal, view)), 0.0)
    n_dot_l = max(float(np.dot(normal, light)), 0.0)
    return geometry_schlick_ggx(n_dot_l, roughness) * geometry_schlick_ggx(n_dot_v, roughness)


def fresnel_schlick(cos_theta: float, f0) -> np.ndarray:
    """Schlick's approximation of the Fresnel reflectance."""
    base = np.asarray(f0, dtype=float)
    return base + (1.0 - base) * np.clip(1.0 - cos_theta, 0.0, 1.0) ** 5.0


@dataclass
class DirectionalLight:
    """A light shining from infinitely far along one direction."""

    direction: np.ndarray
    ambient: np.ndarray

    def __post_init__(self) -> None:
        self.direction = _vector(self.direction, 4, "direction")
        self.ambient = _vector(self.ambient, 4, "ambient")


@dataclass
class PointLight:
    """A light radiating from a point with distance attenuation."""

    position: np.ndarray
    ambient: np.ndarray
    diffuse: np.ndarray
    specular: np.ndarray
    constant: float
    linear: float
    quadratic: float

    def __post_init__(self) -> None:
        self.position = _vector(self.position, 3, "position")
        self.ambient = _vector(self.ambient, 3, "ambient")
        self.diffuse = _vector(self.diffuse, 3, "diffuse")
        self.specular = _vector(self.specular, 3, "specular")


@dataclass
class SpotLight:
    """A cone-shaped light with its view-projection matrix for shadows."""

    vp_matrix: np.ndarray
    color: np.ndarray
    position: np.ndarray
    inner_cone_angle: float
    direction: np.ndarray
    outer_cone_angle: float

    def __post_init__(self) -> None:
        matrix = np.asarray(self.vp_matrix, dtype=float)
        if matrix.shape != (4, 4):
            raise ValueError(f"vp_matrix must be 4x4, got shape {matrix.shape}")
        self.vp_matrix = matrix
        self.color = _vector(self.color, 4, "color")
        self.position = _vector(self.position, 3, "position")
        self.direction = _vector(self.direction, 3, "direction")