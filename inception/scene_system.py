"""The scene: entity hierarchy, scene files and glTF scene instantiation."""

from __future__ import annotations

import json
import math
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np

from .entity import Component, Entity, EntityDataComponent, Registry, XFormComponent
from .gltf_loader import GltfModel, node_matrix
from .resources import GLTFSceneResource, MeshResource, Resource, ResourceType


class SceneFormatError(ValueError):
    """Raised when a scene file does not have the expected layout."""


@dataclass(eq=False)
class CameraComponent(Component):
    """Projection and movement settings of a camera."""

    clear_color: np.ndarray = field(default_factory=lambda: np.zeros(3))
    fov: float = math.radians(45.0)
    near: float = 0.1
    far: float = 100.0
    camera_speed: float = 0.001
    camera_rotation_speed: float = math.radians(0.1)
    view_dir: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, -1.0]))
    up_dir: np.ndarray = field(default_factory=lambda: np.array([0.0, 1.0, 0.0]))


@dataclass(eq=False)
class MeshRendererComponent(Component):
    """Draws a mesh resource with a material; holds its per-object constants."""

    mesh_res_id: str = ""
    mesh_vertex_indices_num: int = 0
    material: Any = None
    model_matrix: np.ndarray | None = None
    normal_matrix: np.ndarray | None = None


def _vec(values) -> list[float]:
    return [float(v) for v in values]


def _quat_from_euler(x: float, y: float, z: float) -> tuple[float, float, float, float]:
    """Quaternion (w, x, y, z) from Euler angles in radians."""
    cx, cy, cz = math.cos(x * 0.5), math.cos(y * 0.5), math.cos(z * 0.5)
    sx, sy, sz = math.sin(x * 0.5), math.sin(y * 0.5), math.sin(z * 0.5)
    return (
        cx * cy * cz + sx * sy * sz,
        sx * cy * cz - cx * sy * sz,
        cx * sy * cz + sx * cy * sz,
        cx * cy * sz - sx * sy * cz,
    )


def _link(child: XFormComponent, parent: XFormComponent) -> None:
    child.parent = parent
    parent.children.append(child)


def _default_scene_document() -> dict[str, Any]:
    camera = {
        "entity": {
            "components": [
                {"type": "EntityDataComponent", "name": "camera", "guid": str(uuid.uuid4())},
                {
                    "type": "XFormComponent",
                    "translation": [0.0, 0.0, 5.0],
                    "rotation": [0.0, 0.0, 0.0],
                    "quaternion": [1.0, 0.0, 0.0, 0.0],
                    "scale": [1.0, 1.0, 1.0],
                },
                {
                    "type": "CameraComponent",
                    "clear_color": [0.0, 0.0, 0.0],
                    "fov": math.radians(45.0),
                    "near": 0.1,
                    "far": 100.0,
                    "camera_speed": 0.001,
                    "camera_rotation_speed": math.radians(0.1),
                    "view_dir": [0.0, 0.0, -1.0],
                    "up_dir": [0.0, 1.0, 0.0],
                },
            ]
        },
        "children": [],
    }
    mesh_euler = (math.radians(-90.0), 0.0, math.radians(-90.0))
    mesh = {
        "entity": {
            "components": [
                {"type": "EntityDataComponent", "name": "Mesh", "guid": str(uuid.uuid4())},
                {
                    "type": "XFormComponent",
                    "translation": [0.0, 0.0, 0.0],
                    "rotation": list(mesh_euler),
                    "quaternion": list(_quat_from_euler(*mesh_euler)),
                    "scale": [1.0, 1.0, 1.0],
                },
                {
                    "type": "MeshRendererComponent",
                    "mesh_res_id": "viking_room",
                    "texture_res_id": "viking_room_img",
                },
            ]
        },
        "children": [],
    }
    return {"name": "firstScene", "roots": [camera, mesh]}


class SceneSystem:
    """Owns the entity registry and the list of root entities."""

    def __init__(self) -> None:
        self.registry = Registry()
        self.scene_roots: list[Entity] = []

    def create_entity(self, name: str, parent: Entity | None = None) -> Entity:
        """Create a named entity with a transform, below ``parent`` or as a root."""
        entity = Entity(self.registry)
        entity.install_component(EntityDataComponent(name=name, guid=uuid.uuid4()))
        xform = entity.install_component(XFormComponent())
        if parent is None:
            self.scene_roots.append(entity)
        else:
            _link(xform, parent.access_component(XFormComponent))
        return entity

    def root_entities(self) -> list[Entity]:
        """The entities at the top of the hierarchy."""
        return list(self.scene_roots)

    def save_scene(self, path) -> None:
        """Write the default camera-and-mesh scene to ``path``."""
        Path(path).write_text(json.dumps(_default_scene_document(), indent=2), encoding="utf-8")

    def load_scene(self, path) -> str:
        """Add the entities of a scene file to the hierarchy; return the scene's name."""
        raw = Path(path).read_bytes()
        try:
            document = json.loads(raw)
            name = str(document["name"])
            for node in document["roots"]:
                self._add_node(node, None)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise SceneFormatError(f"{path} is not a scene file: {exc}") from exc
        except (KeyError, TypeError, IndexError, ValueError) as exc:
            raise SceneFormatError(f"malformed scene node in {path}: {exc!r}") from exc
        return name

    def _add_node(self, node: dict[str, Any], parent: Entity | None) -> Entity:
        entity = self._entity_from_node(node)
        if parent is None:
            self.scene_roots.append(entity)
        else:
            _link(entity.access_component(XFormComponent), parent.access_component(XFormComponent))
        for child in node.get("children", []):
            self._add_node(child, entity)
        return entity

    def _entity_from_node(self, node: dict[str, Any]) -> Entity:
        entity = Entity(self.registry)
        for component in node["entity"]["components"]:
            kind = component["type"]
            if kind == "EntityDataComponent":
                entity.install_component(
                    EntityDataComponent(name=str(component["name"]), guid=uuid.UUID(component["guid"]))
                )
            elif kind == "XFormComponent":
                entity.install_component(
                    XFormComponent(
                        translation=np.array(_vec(component["translation"])),
                        rotation=np.array(_vec(component["rotation"])),
                        quaternion=np.array(_vec(component["quaternion"])),
                        scale=np.array(_vec(component["scale"])),
                    )
                )
            elif kind == "CameraComponent":
                entity.install_component(
                    CameraComponent(
                        clear_color=np.array(_vec(component["clear_color"])),
                        fov=float(component["fov"]),
                        near=float(component["near"]),
                        far=float(component["far"]),
                        camera_speed=float(component["camera_speed"]),
                        camera_rotation_speed=float(component["camera_rotation_speed"]),
                        view_dir=np.array(_vec(component["view_dir"])),
                        up_dir=np.array(_vec(component["up_dir"])),
                    )
                )
            elif kind == "MeshRendererComponent":
                entity.install_component(MeshRendererComponent(mesh_res_id=str(component["mesh_res_id"])))
        if not entity.has_component(XFormComponent):
            entity.install_component(XFormComponent())
        return entity

    def create_mesh_entity(self, mesh_resource: Resource) -> Entity:
        """Create a root entity drawing ``mesh_resource`` with an unlit material."""
        entity = Entity(self.registry)
        self.scene_roots.append(entity)
        entity.install_component(EntityDataComponent(name=mesh_resource.resource_id, guid=uuid.uuid4()))
        entity.install_component(XFormComponent())
        index_count = 0
        mesh_data = getattr(mesh_resource, "mesh_data", None)
        if mesh_data is not None:
            index_count = len(mesh_data.indices)
        entity.install_component(
            MeshRendererComponent(
                mesh_res_id=mesh_resource.resource_id,
                mesh_vertex_indices_num=index_count,
                material={
                    "shading_model": "UNLIT",
                    "textures": {"baseColorTexture": mesh_resource.resource_id},
                    "vectors": {},
                    "scalars": {},
                },
            )
        )
        return entity

    def load_gltf_scene(self, model: GltfModel, mesh_resources: list[list[MeshResource]]) -> list[Entity]:
        """Create entities for every node of the model's default scene; return them."""
        scenes = model.scenes
        scene_index = max(model.default_scene, 0)
        if not 0 <= scene_index < len(scenes):
            raise IndexError(f"scene {scene_index} does not exist")
        created: list[Entity] = []
        for node_index in scenes[scene_index].get("nodes", []):
            self._load_gltf_node(model, node_index, None, mesh_resources, created)
        return created

    def _load_gltf_node(
        self,
        model: GltfModel,
        node_index: int,
        parent: Entity | None,
        mesh_resources: list[list[MeshResource]],
        created: list[Entity],
    ) -> None:
        nodes = model.nodes
        if not 0 <= node_index < len(nodes):
            raise IndexError(f"node {node_index} does not exist")
        node = nodes[node_index]
        local = node_matrix(node)

        this_entity: Entity | None = None
        mesh_index = node.get("mesh", -1)
        if mesh_index > -1:
            for primitive in mesh_resources[mesh_index]:
                if not primitive.material:
                    continue
                entity = self.create_entity(primitive.resource_id, parent)
                entity.access_component(XFormComponent).transform = local.copy()
                index_count = len(primitive.mesh_data.indices) if primitive.mesh_data else 0
                entity.install_component(
                    MeshRendererComponent(
                        mesh_res_id=primitive.resource_id,
                        mesh_vertex_indices_num=index_count,
                        material=primitive.material,
                    )
                )
                created.append(entity)
                this_entity = entity

        for child_index in node.get("children", []):
            self._load_gltf_node(model, child_index, this_entity, mesh_resources, created)

    def load_pending_gltf_scenes(self, resource_system) -> int:
        """Instantiate every glTF scene resource not yet loaded; return how many were."""
        pending = list(resource_system.resources.get(ResourceType.GLTF, {}).values())
        loaded = 0
        for resource in pending:
            if not isinstance(resource, GLTFSceneResource) or resource.scene_loaded:
                continue
            if resource.model is not None:
                self.load_gltf_scene(resource.model, resource.mesh_resources)
            resource.scene_loaded = True
            resource.model = None
            loaded += 1
        return loaded

    def find_entity(self, guid: uuid.UUID) -> Entity | None:
        """Return the entity whose data component carries ``guid``, or None."""
        for _, data in self.registry.view(EntityDataComponent):
            if data.guid == guid:
                return data.possessor
        return None

    def update(self, resource_system) -> None:
        """Instantiate pending glTF scenes and refresh per-mesh constants."""
        self.load_pending_gltf_scenes(resource_system)
        self._update_meshes()

    def _update_meshes(self) -> None:
        for _, renderer, xform in self.registry.view(MeshRendererComponent, XFormComponent):
            material = renderer.material
            if not isinstance(material, dict) or material.get("shading_model") != "PBR_LIT":
                continue
            model = np.asarray(xform.transform, dtype=float)
            try:
                normal = np.linalg.inv(model[:3, :3]).T
            except np.linalg.LinAlgError:
                continue
            renderer.model_matrix = model.copy()
            renderer.normal_matrix = normal