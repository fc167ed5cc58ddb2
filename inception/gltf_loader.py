"""Reading meshes, samplers and node transforms from glTF 2.0 documents."""

from __future__ import annotations

import base64
import binascii
import itertools
import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import unquote

import numpy as np

from .resources import AddressMode, Filter, ImageResource, MeshResource, ResourceType, SamplerResource

log = logging.getLogger(__name__)

COMPONENT_UNSIGNED_BYTE = 5121
COMPONENT_UNSIGNED_SHORT = 5123
COMPONENT_UNSIGNED_INT = 5125
COMPONENT_FLOAT = 5126

_COMPONENT_DTYPES = {
    5120: np.dtype("i1"),
    COMPONENT_UNSIGNED_BYTE: np.dtype("u1"),
    5122: np.dtype("<i2"),
    COMPONENT_UNSIGNED_SHORT: np.dtype("<u2"),
    COMPONENT_UNSIGNED_INT: np.dtype("<u4"),
    COMPONENT_FLOAT: np.dtype("<f4"),
}

_INDEX_COMPONENTS = (COMPONENT_UNSIGNED_INT, COMPONENT_UNSIGNED_SHORT, COMPONENT_UNSIGNED_BYTE)

_TYPE_COMPONENTS = {
    "SCALAR": 1,
    "VEC2": 2,
    "VEC3": 3,
    "VEC4": 4,
    "MAT2": 4,
    "MAT3": 9,
    "MAT4": 16,
}

_WRAP_MODES = {
    -1: AddressMode.REPEAT,
    10497: AddressMode.REPEAT,
    33071: AddressMode.CLAMP_TO_EDGE,
    33648: AddressMode.MIRRORED_REPEAT,
}

_FILTER_MODES = {
    -1: Filter.NEAREST,
    9728: Filter.NEAREST,
    9729: Filter.LINEAR,
    9984: Filter.NEAREST,
    9985: Filter.NEAREST,
    9986: Filter.LINEAR,
    9987: Filter.LINEAR,
}

_ZERO3 = (0.0, 0.0, 0.0)
_ZERO2 = (0.0, 0.0)


class GltfError(ValueError):
    """Raised when a glTF document cannot be read."""


@dataclass(frozen=True)
class Vertex:
    """One vertex with position, normal, colour and texture coordinate."""

    position: tuple[float, float, float] = _ZERO3
    normal: tuple[float, float, float] = _ZERO3
    color: tuple[float, float, float] = _ZERO3
    tex_coord: tuple[float, float] = _ZERO2


@dataclass
class MeshData:
    """Vertices and triangle indices of one mesh."""

    vertices: list[Vertex] = field(default_factory=list)
    indices: list[int] = field(default_factory=list)
    vertex_format: str = "PNCV_F32"
    image: ImageResource | None = None


@dataclass
class GltfModel:
    """A parsed glTF document with lazily decoded buffers."""

    document: dict[str, Any]
    base_path: Path = field(default_factory=Path)
    _buffer_cache: dict[int, bytes] = field(default_factory=dict, init=False, repr=False)

    def _section(self, name: str) -> list[dict[str, Any]]:
        return self.document.get(name, [])

    @property
    def accessors(self) -> list[dict[str, Any]]:
        return self._section("accessors")

    @property
    def buffer_views(self) -> list[dict[str, Any]]:
        return self._section("bufferViews")

    @property
    def buffers(self) -> list[dict[str, Any]]:
        return self._section("buffers")

    @property
    def meshes(self) -> list[dict[str, Any]]:
        return self._section("meshes")

    @property
    def nodes(self) -> list[dict[str, Any]]:
        return self._section("nodes")

    @property
    def scenes(self) -> list[dict[str, Any]]:
        return self._section("scenes")

    @property
    def samplers(self) -> list[dict[str, Any]]:
        return self._section("samplers")

    @property
    def textures(self) -> list[dict[str, Any]]:
        return self._section("textures")

    @property
    def images(self) -> list[dict[str, Any]]:
        return self._section("images")

    @property
    def materials(self) -> list[dict[str, Any]]:
        return self._section("materials")

    @property
    def default_scene(self) -> int:
        return self.document.get("scene", -1)

    def buffer_bytes(self, index: int) -> bytes:
        """Return the raw bytes of buffer ``index``, decoding or reading them once."""
        cached = self._buffer_cache.get(index)
        if cached is not None:
            return cached
        buffer = _item(self.buffers, index, "buffer")
        uri = buffer.get("uri")
        if uri is None:
            raise GltfError(f"buffer {index} has no uri")
        if uri.startswith("data:"):
            header, _, payload = uri.partition(",")
            if not header.endswith(";base64"):
                raise GltfError(f"buffer {index} uses an unsupported data uri")
            try:
                data = base64.b64decode(payload, validate=True)
            except binascii.Error as exc:
                raise GltfError(f"buffer {index} holds invalid base64") from exc
        else:
            try:
                data = (self.base_path / unquote(uri)).read_bytes()
            except OSError as exc:
                raise GltfError(f"cannot read buffer {index}: {exc}") from exc
        self._buffer_cache[index] = data
        return data


def _item(items: Sequence[Any], index: int, what: str) -> Any:
    if not 0 <= index < len(items):
        raise GltfError(f"{what} {index} does not exist")
    return items[index]


def _resolve(index: int) -> int:
    return index if index > -1 else 0


def load_gltf(path) -> GltfModel:
    """Parse a JSON glTF file; buffers are resolved relative to its folder."""
    path = Path(path)
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise GltfError(f"cannot read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise GltfError(f"failed to parse {path}: {exc}") from exc
    if not isinstance(document, dict):
        raise GltfError(f"{path} does not hold a glTF object")
    return GltfModel(document, base_path=path.parent)


def read_accessor(model: GltfModel, accessor_index: int) -> bytes:
    """Gather an accessor's elements into a tightly packed byte string."""
    accessor = _item(model.accessors, accessor_index, "accessor")
    if "bufferView" not in accessor:
        raise GltfError(f"accessor {accessor_index} has no buffer view")
    view = _item(model.buffer_views, accessor["bufferView"], "buffer view")
    try:
        component = _COMPONENT_DTYPES[accessor["componentType"]]
        components = _TYPE_COMPONENTS[accessor["type"]]
    except KeyError as exc:
        raise GltfError(f"accessor {accessor_index} has unknown layout {exc}") from exc

    element_size = component.itemsize * components
    stride = view.get("byteStride", 0) or element_size
    start = view.get("byteOffset", 0) + accessor.get("byteOffset", 0)
    count = accessor["count"]
    data = memoryview(model.buffer_bytes(view["buffer"]))

    if count and start + stride * (count - 1) + element_size > len(data):
        raise GltfError(f"accessor {accessor_index} reads past the end of its buffer")
    return b"".join(
        data[offset:offset + element_size]
        for offset in range(start, start + stride * count, stride)
    )


def load_index_buffer(primitive: dict[str, Any], model: GltfModel) -> list[int]:
    """Read a primitive's indices; unsupported index types give zeros."""
    accessor_index = _resolve(primitive.get("indices", -1))
    accessor = _item(model.accessors, accessor_index, "accessor")
    raw = read_accessor(model, accessor_index)
    count = accessor["count"]
    component_type = accessor["componentType"]
    if component_type not in _INDEX_COMPONENTS:
        log.warning("Unsupported index format")
        return [0] * count
    dtype = _COMPONENT_DTYPES[component_type]
    return np.frombuffer(raw, dtype=dtype, count=count).astype(np.int64).tolist()


def _float_rows(model: GltfModel, accessor_index: int, kind: str, attribute: str) -> list[tuple[float, ...]]:
    accessor = _item(model.accessors, accessor_index, "accessor")
    if accessor.get("type") != kind or accessor.get("componentType") != COMPONENT_FLOAT:
        raise GltfError(f"{attribute} must be a float {kind} accessor")
    array = np.frombuffer(read_accessor(model, accessor_index), dtype="<f4")
    return [tuple(row) for row in array.reshape(-1, _TYPE_COMPONENTS[kind]).tolist()]


def load_vertex_buffer(primitive: dict[str, Any], model: GltfModel) -> list[Vertex]:
    """Build vertices from POSITION and the optional NORMAL, COLOR_0, TEXCOORD_0."""
    attributes = primitive.get("attributes", {})
    if "POSITION" not in attributes:
        raise GltfError("primitive has no POSITION attribute")
    positions = _float_rows(model, _resolve(attributes["POSITION"]), "VEC3", "POSITION")

    def column(name: str, kind: str, default: tuple[float, ...]) -> Iterable[tuple[float, ...]]:
        if name not in attributes:
            return itertools.repeat(default)
        rows = _float_rows(model, _resolve(attributes[name]), kind, name)
        if len(rows) < len(positions):
            raise GltfError(f"{name} has fewer elements than POSITION")
        return rows

    return [
        Vertex(position=position, normal=normal, color=color, tex_coord=tex_coord)
        for position, normal, color, tex_coord in zip(
            positions,
            column("NORMAL", "VEC3", _ZERO3),
            column("COLOR_0", "VEC3", _ZERO3),
            column("TEXCOORD_0", "VEC2", _ZERO2),
        )
    ]


def wrap_mode(value: int) -> AddressMode:
    """Map a glTF wrap constant to an address mode."""
    mode = _WRAP_MODES.get(value)
    if mode is None:
        log.error("Unknown wrap mode: %s", value)
        return AddressMode.REPEAT
    return mode


def filter_mode(value: int) -> Filter:
    """Map a glTF filter constant to a filter."""
    mode = _FILTER_MODES.get(value)
    if mode is None:
        log.error("Unknown filter mode: %s", value)
        return Filter.NEAREST
    return mode


def load_texture_samplers(model: GltfModel) -> list[SamplerResource]:
    """Create a sampler resource for every sampler in the document."""
    samplers = []
    for sampler in model.samplers:
        address_v = wrap_mode(sampler.get("wrapT", 10497))
        samplers.append(
            SamplerResource(
                min_filter=filter_mode(sampler.get("minFilter", -1)),
                mag_filter=filter_mode(sampler.get("magFilter", -1)),
                address_mode_u=wrap_mode(sampler.get("wrapS", 10497)),
                address_mode_v=address_v,
                address_mode_w=address_v,
            )
        )
    return samplers


def load_meshes(model: GltfModel, materials: Sequence[Any]) -> list[list[MeshResource]]:
    """Create one mesh resource per primitive, grouped by mesh."""
    meshes = []
    for mesh in model.meshes:
        name = mesh.get("name") or "AnonymousMesh"
        primitives = []
        for number, primitive in enumerate(mesh.get("primitives", [])):
            mesh_data = MeshData(
                indices=load_index_buffer(primitive, model),
                vertices=load_vertex_buffer(primitive, model),
            )
            material_index = primitive.get("material", -1)
            material = materials[material_index] if 0 <= material_index < len(materials) else None
            primitives.append(
                MeshResource(
                    resource_id=f"{name}_Primitive{number}",
                    resource_type=ResourceType.MESH,
                    mesh_data=mesh_data,
                    material=material,
                )
            )
        meshes.append(primitives)
    return meshes


def _rotation_matrix(x: float, y: float, z: float, w: float) -> np.ndarray:
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y), 0.0],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x), 0.0],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y), 0.0],
            [0.0, 0.0, 0.0, 1.0],
        ]
    )


def node_matrix(node: dict[str, Any]) -> np.ndarray:
    """Local transform of a node as a 4x4 matrix acting on column vectors."""
    matrix = node.get("matrix")
    if matrix:
        return np.asarray(matrix, dtype=float).reshape(4, 4).T

    translation = np.eye(4)
    if node.get("translation"):
        translation[:3, 3] = node["translation"][:3]

    rotation = np.eye(4)
    if node.get("rotation"):
        rotation = _rotation_matrix(*node["rotation"][:4])

    scale = np.eye(4)
    if node.get("scale"):
        scale[:3, :3] = np.diag(node["scale"][:3])

    return translation @ rotation @ scale