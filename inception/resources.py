"""Resource records shared by the loaders and the resource system."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .gltf_loader import GltfModel, MeshData


class ResourceType(enum.IntEnum):
    """Kinds of resource kept by the resource system."""

    UNKNOWN = 0
    MESH = 1
    TEXTURE = 2
    GLTF = 3
    MATERIAL = 4


class Filter(enum.IntEnum):
    """Texture filtering used when sampling."""

    NEAREST = 0
    LINEAR = 1


class AddressMode(enum.IntEnum):
    """How texture coordinates outside [0, 1] are resolved."""

    REPEAT = 0
    MIRRORED_REPEAT = 1
    CLAMP_TO_EDGE = 2


@dataclass
class Resource:
    """Common identity of every loaded resource."""

    resource_id: str = ""
    resource_type: ResourceType = ResourceType.UNKNOWN


@dataclass
class SamplerResource(Resource):
    """Sampling state attached to a texture."""

    mag_filter: Filter = Filter.NEAREST
    min_filter: Filter = Filter.NEAREST
    address_mode_u: AddressMode = AddressMode.REPEAT
    address_mode_v: AddressMode = AddressMode.REPEAT
    address_mode_w: AddressMode = AddressMode.REPEAT


@dataclass
class ImageResource(Resource):
    """Decoded pixel data of a texture together with its sampler."""

    resource_type: ResourceType = ResourceType.TEXTURE
    pixels: bytes = b""
    width: int = 0
    height: int = 0
    channels: int = 4
    mipmap_level: int = 1
    sampler: SamplerResource = field(default_factory=SamplerResource)

    def __post_init__(self) -> None:
        self.pixels = bytes(self.pixels)
        expected = self.width * self.height * self.channels
        if len(self.pixels) != expected:
            raise ValueError(
                f"pixel buffer holds {len(self.pixels)} bytes, "
                f"{self.width}x{self.height}x{self.channels} needs {expected}"
            )


@dataclass
class MeshResource(Resource):
    """Geometry of one mesh primitive and the material it is drawn with."""

    resource_type: ResourceType = ResourceType.MESH
    mesh_data: MeshData | None = None
    material: Any = None


@dataclass
class GLTFSceneResource(Resource):
    """A parsed glTF document waiting to be turned into scene entities."""

    resource_type: ResourceType = ResourceType.GLTF
    model: GltfModel | None = None
    mesh_resources: list[list[MeshResource]] = field(default_factory=list)
    scene_loaded: bool = False