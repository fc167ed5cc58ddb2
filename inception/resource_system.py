"""Central store of loaded resources with a background loading queue."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import queue
import threading
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import unquote

from PIL import Image

from .gltf_loader import (
    GltfError,
    GltfModel,
    load_gltf,
    load_meshes,
    load_texture_samplers,
)
from .resources import (
    AddressMode,
    Filter,
    GLTFSceneResource,
    ImageResource,
    MeshResource,
    Resource,
    ResourceType,
    SamplerResource,
)

log = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05


class ResourceLoadError(RuntimeError):
    """Raised when a resource file cannot be decoded."""


@dataclass(frozen=True)
class ResourceLoadTask:
    """A request to load a file of the given kind on the loading thread."""

    resource_type: ResourceType
    path: Path


def _decode_image(source: Any) -> tuple[bytes, int, int]:
    try:
        with Image.open(source) as image:
            rgba = image.convert("RGBA")
            return rgba.tobytes(), rgba.width, rgba.height
    except OSError as exc:
        raise ResourceLoadError("failed to load texture!") from exc


def _texture_index(info: dict[str, Any] | None) -> int:
    return (info or {}).get("index", -1)


def _describe_materials(model: GltfModel, images: list[str]) -> list[dict[str, Any] | None]:
    """Turn glTF materials into PBR material descriptions; non-opaque ones become None."""
    materials: list[dict[str, Any] | None] = []
    for material in model.materials:
        if material.get("alphaMode", "OPAQUE") != "OPAQUE":
            materials.append(None)
            continue

        pbr = material.get("pbrMetallicRoughness", {})
        textures: dict[str, str] = {}

        base_index = max(_texture_index(pbr.get("baseColorTexture")), 0)
        if base_index < len(images):
            textures["baseColorTexture"] = images[base_index]

        optional = {
            "metallicRoughnessTexture": pbr.get("metallicRoughnessTexture"),
            "normalTexture": material.get("normalTexture"),
            "occlusionTexture": material.get("occlusionTexture"),
            "emissiveTexture": material.get("emissiveTexture"),
        }
        for name, info in optional.items():
            index = _texture_index(info)
            if index >= 0:
                if index >= len(images):
                    raise GltfError(f"texture {index} does not exist")
                textures[name] = images[index]

        emissive = list(material.get("emissiveFactor", [0.0, 0.0, 0.0]))[:3]
        materials.append(
            {
                "shading_model": "PBR_LIT",
                "textures": textures,
                "vectors": {
                    "baseColorFactor": tuple(pbr.get("baseColorFactor", [1.0, 1.0, 1.0, 1.0])),
                    "emissiveFactor": (*emissive, 0.0),
                },
                "scalars": {
                    "metallicFactor": float(pbr.get("metallicFactor", 1.0)),
                    "roughnessFactor": float(pbr.get("roughnessFactor", 1.0)),
                },
            }
        )
    return materials


class ResourceSystem:
    """Keeps resources by type and id and loads queued files one at a time."""

    def __init__(self) -> None:
        self.resources: dict[ResourceType, dict[str, Resource]] = defaultdict(dict)
        self._lock = threading.Lock()
        self._tasks: queue.Queue[ResourceLoadTask] = queue.Queue()
        self._stop = threading.Event()
        self._worker: threading.Thread | None = None

    def __enter__(self) -> ResourceSystem:
        self.initialize()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def initialize(self) -> bool:
        """Start the loading thread that drains the request queue."""
        if self._worker is not None and self._worker.is_alive():
            return True
        self._stop.clear()
        self._worker = threading.Thread(target=self._run, name="resource-loader", daemon=True)
        self._worker.start()
        return True

    def shutdown(self) -> None:
        """Stop the loading thread and wait for it to finish."""
        self._stop.set()
        if self._worker is not None:
            self._worker.join()
            self._worker = None

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                task = self._tasks.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            try:
                self._process(task)
            except Exception:
                log.exception("Loading %s failed", task.path)

    def _store(self, resource_type: ResourceType, resource: Resource) -> None:
        with self._lock:
            self.resources[resource_type][resource.resource_id] = resource

    def load_image_resource(self, path, sampler: SamplerResource | None = None) -> ImageResource:
        """Decode an image file to RGBA and register it under the file's stem."""
        path = Path(path)
        pixels, width, height = _decode_image(path)
        image = ImageResource(
            resource_id=path.stem,
            pixels=pixels,
            width=width,
            height=height,
            channels=4,
            mipmap_level=max(width, height).bit_length(),
            sampler=sampler if sampler is not None else SamplerResource(),
        )
        self._store(ResourceType.TEXTURE, image)
        return image

    def add_image_resource(self, resource: ImageResource) -> ImageResource:
        """Register an already decoded image."""
        self._store(ResourceType.TEXTURE, resource)
        return resource

    def add_mesh_resource(self, resource: MeshResource) -> MeshResource:
        """Register a mesh resource."""
        self._store(ResourceType.MESH, resource)
        return resource

    def _embedded_image_bytes(self, model: GltfModel, image: dict[str, Any]) -> bytes:
        uri = image.get("uri", "")
        if uri.startswith("data:"):
            _, _, payload = uri.partition(",")
            try:
                return base64.b64decode(payload, validate=True)
            except binascii.Error as exc:
                raise GltfError("image holds invalid base64") from exc
        if "bufferView" in image:
            views = model.buffer_views
            index = image["bufferView"]
            if not 0 <= index < len(views):
                raise GltfError(f"buffer view {index} does not exist")
            view = views[index]
            data = model.buffer_bytes(view["buffer"])
            offset = view.get("byteOffset", 0)
            return data[offset:offset + view["byteLength"]]
        raise GltfError("image has neither uri nor buffer view")

    def _load_textures(self, model: GltfModel, samplers: list[SamplerResource]) -> list[str]:
        image_ids: list[str] = []
        images = model.images
        for texture in model.textures:
            source = texture.get("source", 0)
            if not 0 <= source < len(images):
                raise GltfError(f"image {source} does not exist")
            image = images[source]

            sampler_index = texture.get("sampler", -1)
            if sampler_index == -1:
                sampler = SamplerResource(
                    mag_filter=Filter.LINEAR,
                    min_filter=Filter.LINEAR,
                    address_mode_u=AddressMode.REPEAT,
                    address_mode_v=AddressMode.REPEAT,
                    address_mode_w=AddressMode.REPEAT,
                )
            elif 0 <= sampler_index < len(samplers):
                sampler = samplers[sampler_index]
            else:
                raise GltfError(f"sampler {sampler_index} does not exist")

            uri = image.get("uri", "")
            if uri and not uri.startswith("data:"):
                resource = self.load_image_resource(model.base_path / unquote(uri), sampler)
            else:
                pixels, width, height = _decode_image(io.BytesIO(self._embedded_image_bytes(model, image)))
                resource = self.add_image_resource(
                    ImageResource(
                        resource_id=f"Anonymous_{source}",
                        pixels=pixels,
                        width=width,
                        height=height,
                        channels=4,
                        mipmap_level=max(width, height).bit_length() - 1,
                        sampler=sampler,
                    )
                )
            image_ids.append(resource.resource_id)
        return image_ids

    def load_gltf_resource(self, path) -> bool:
        """Load a glTF file's textures, materials and meshes; False if it cannot be parsed."""
        path = Path(path)
        try:
            model = load_gltf(path)
            samplers = load_texture_samplers(model)
            images = self._load_textures(model, samplers)
            materials = _describe_materials(model, images)
            meshes = load_meshes(model, materials)
        except GltfError as exc:
            log.error("Load gltf error: %s", exc)
            return False

        for primitives in meshes:
            for mesh in primitives:
                self.add_mesh_resource(mesh)

        self._store(
            ResourceType.GLTF,
            GLTFSceneResource(resource_id="Scene", model=model, mesh_resources=meshes),
        )
        return True

    def request_async_load(self, resource_type: ResourceType, path) -> bool:
        """Queue a file to be loaded later."""
        self._tasks.put(ResourceLoadTask(ResourceType(resource_type), Path(path)))
        return True

    def _process(self, task: ResourceLoadTask) -> None:
        if task.resource_type is ResourceType.GLTF:
            self.load_gltf_resource(task.path)

    def update(self) -> bool:
        """Handle at most one queued request; return whether one was taken."""
        try:
            task = self._tasks.get_nowait()
        except queue.Empty:
            return False
        self._process(task)
        return True

    def find_resource(self, resource_type: ResourceType, resource_id: str) -> Resource | None:
        """Return the resource with this type and id, or None."""
        with self._lock:
            return self.resources.get(ResourceType(resource_type), {}).get(resource_id)