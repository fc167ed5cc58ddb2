# inception

The scene and resource core of a small 3D engine. It has these parts:

- an entity/component registry with a transform hierarchy;
- a thread-safe resource store with a background loading queue;
- a glTF loader that decodes meshes, samplers and node transforms;
- the PBR lighting terms that the shaders use.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

### `inception.resources`

Resource records:

- `ResourceType`: the kinds of resource.
- `Filter`, `AddressMode` and `SamplerResource`: sampler settings.
- `ImageResource`: RGBA pixel data. The size of the pixel buffer is checked against the width, height and channel count.
- `MeshResource` and `GLTFSceneResource`.

### `inception.lighting`

- Light records `DirectionalLight`, `PointLight` and `SpotLight`. Their vector and matrix shapes are checked when they are created.
- The Cook-Torrance terms `distribution_ggx`, `geometry_schlick_ggx`, `geometry_smith` and `fresnel_schlick`.

### `inception.gltf_loader`

- `load_gltf` reads a JSON `.gltf` file into a `GltfModel`. `GltfModel.buffer_bytes` resolves a buffer from a base64 data URI or from a file next to the document. A buffer is decoded once and then cached.
- `read_accessor` gathers an accessor's strided data into a packed byte string.
- `load_index_buffer` and `load_vertex_buffer` decode data into indices and `Vertex` objects. A vertex takes its position, normal, colour and texture coordinate from the attributes that the primitive has.
- `load_texture_samplers`, `wrap_mode` and `filter_mode` map glTF sampler codes. An unknown code falls back to repeat or nearest.
- `load_meshes` builds one `MeshResource` per primitive. Each primitive's `MeshData` is named `<mesh>_Primitive<n>`.
- `node_matrix` gives a node's local 4x4 transform, from either its matrix or its translation, rotation and scale.
- Unreadable documents raise `GltfError`.

### `inception.resource_system`

`ResourceSystem` stores resources by type and id.

- `load_image_resource` decodes an image file to RGBA with Pillow and registers it under the file's stem.
- `add_image_resource` and `add_mesh_resource` register records that already exist.
- `load_gltf_resource` loads a glTF file and registers its textures and meshes. It also stores a `GLTFSceneResource` under the id `"Scene"`. It returns `False` if the file cannot be read.
- `request_async_load` queues a `ResourceLoadTask`.
- `update` handles one queued task. `initialize` starts a worker thread that drains the queue, and `shutdown` stops it. The class is also a context manager that does both.
- `find_resource` looks a resource up.
- An image that cannot be decoded raises `ResourceLoadError`.

### `inception.entity`

- `Registry` maps entity handles to at most one component of each type, with `create`, `emplace`, `has`, `get`, `remove` and `view`.
- `Entity` wraps a handle with `install_component`, `has_component`, `access_component` and `uninstall_component`.
- Components: `Component`, `EntityDataComponent` (a guid and a name) and `XFormComponent` (parent and children links, translation, rotation, quaternion, scale and a transform matrix).

### `inception.scene_system`

`SceneSystem` owns a registry and the list of root entities.

- `create_entity` makes a named entity with a transform. The entity is added under a parent or as a new root.
- `save_scene` writes a fixed default scene, a camera and a mesh, as a JSON file. It does not write the current hierarchy.
- `load_scene` adds the entities of such a file and returns the scene's name. A malformed file raises `SceneFormatError`.
- `create_mesh_entity` creates an entity that draws a mesh resource with an unlit material.
- `load_gltf_scene` turns the nodes of a model's default scene into entities with `MeshRendererComponent`s. Primitives that have no material are skipped.
- `load_pending_gltf_scenes` does the same for every glTF resource in a `ResourceSystem` that has not been loaded yet.
- `update` runs that step, then refreshes the model and normal matrices of renderers that use PBR materials.
- `find_entity` looks an entity up by guid.

## Example

```python
from inception.resource_system import ResourceSystem
from inception.scene_system import SceneSystem

resources = ResourceSystem()
resources.load_gltf_resource("models/scene.gltf")

scene = SceneSystem()
scene.update(resources)

for entity in scene.root_entities():
    print(entity)
```

The lighting terms accept plain sequences or numpy arrays:

```python
from inception.lighting import distribution_ggx, fresnel_schlick

d = distribution_ggx((0, 1, 0), (0, 1, 0), 0.5)
f = fresnel_schlick(0.3, (0.04, 0.04, 0.04))
```

## What it does not do

This package prepares data for rendering but does not render.

- It has no GPU backend, window, editor interface or command-line program.
- Materials are plain dictionaries that describe textures, vectors and scalars. Nothing compiles them into shaders.
- Only JSON `.gltf` files are read. Binary `.glb` files and OBJ models are not supported.
- Scene files are the package's own JSON layout.