import base64
import json
import math

import numpy as np
import pytest

from inception.gltf_loader import (
    GltfError,
    GltfModel,
    MeshData,
    Vertex,
    filter_mode,
    load_gltf,
    load_index_buffer,
    load_meshes,
    load_texture_samplers,
    load_vertex_buffer,
    node_matrix,
    read_accessor,
    wrap_mode,
)
from inception.resources import AddressMode, Filter, ResourceType

FLOAT = 5126
UBYTE = 5121
USHORT = 5123
UINT = 5125

POSITIONS = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], dtype="<f4")
NORMALS = np.array([[0, 0, 1]] * 3, dtype="<f4")
COLORS = np.array([[1, 0, 0], [0, 1, 0], [0, 0, 1]], dtype="<f4")
TEXCOORDS = np.array([[0, 0], [1, 0], [0.5, 1]], dtype="<f4")
INDICES = np.array([0, 1, 2], dtype="<u2")


def _data_uri(raw):
    return "data:application/octet-stream;base64," + base64.b64encode(raw).decode()


class _Doc:
    def __init__(self):
        self.blob = bytearray()
        self.views = []
        self.accessors = []

    def add(self, values, component_type, kind):
        array = np.ascontiguousarray(values)
        raw = array.tobytes()
        offset = len(self.blob)
        self.blob += raw
        while len(self.blob) % 4:
            self.blob.append(0)
        self.views.append({"buffer": 0, "byteOffset": offset, "byteLength": len(raw)})
        self.accessors.append(
            {"bufferView": len(self.views) - 1, "componentType": component_type, "type": kind, "count": len(array)}
        )
        return len(self.accessors) - 1

    def model(self, **sections):
        document = {
            "asset": {"version": "2.0"},
            "buffers": [{"uri": _data_uri(bytes(self.blob)), "byteLength": len(self.blob)}],
            "bufferViews": self.views,
            "accessors": self.accessors,
            **sections,
        }
        return GltfModel(document)


def _triangle():
    doc = _Doc()
    primitive = {
        "indices": doc.add(INDICES, USHORT, "SCALAR"),
        "attributes": {
            "POSITION": doc.add(POSITIONS, FLOAT, "VEC3"),
            "NORMAL": doc.add(NORMALS, FLOAT, "VEC3"),
            "COLOR_0": doc.add(COLORS, FLOAT, "VEC3"),
            "TEXCOORD_0": doc.add(TEXCOORDS, FLOAT, "VEC2"),
        },
    }
    return doc, primitive


def _rows(array):
    return [tuple(row) for row in array.tolist()]


def test_read_accessor_packed_data_round_trips():
    doc, primitive = _triangle()
    model = doc.model()
    raw = read_accessor(model, primitive["attributes"]["POSITION"])
    assert raw == POSITIONS.tobytes()


def test_read_accessor_follows_stride_and_offset():
    interleaved = np.array(
        [[0, 1, 2, 0.5, 0.25], [3, 4, 5, 0.75, 1], [6, 7, 8, 0, 0.5]], dtype="<f4"
    )
    raw = interleaved.tobytes()
    model = GltfModel(
        {
            "buffers": [{"uri": _data_uri(raw), "byteLength": len(raw)}],
            "bufferViews": [{"buffer": 0, "byteOffset": 0, "byteLength": len(raw), "byteStride": 20}],
            "accessors": [
                {"bufferView": 0, "componentType": FLOAT, "type": "VEC3", "count": 3},
                {"bufferView": 0, "byteOffset": 12, "componentType": FLOAT, "type": "VEC2", "count": 3},
            ],
        }
    )
    positions = np.frombuffer(read_accessor(model, 0), dtype="<f4").reshape(-1, 3)
    tex = np.frombuffer(read_accessor(model, 1), dtype="<f4").reshape(-1, 2)
    assert np.array_equal(positions, interleaved[:, :3])
    assert np.array_equal(tex, interleaved[:, 3:])


def test_read_accessor_past_buffer_end_raises():
    doc, primitive = _triangle()
    model = doc.model()
    model.accessors[primitive["attributes"]["POSITION"]]["count"] = 100
    with pytest.raises(GltfError):
        read_accessor(model, primitive["attributes"]["POSITION"])


def test_read_missing_accessor_raises():
    doc, _ = _triangle()
    with pytest.raises(GltfError):
        read_accessor(doc.model(), 42)


@pytest.mark.parametrize(
    "dtype, component_type",
    [("u1", UBYTE), ("<u2", USHORT), ("<u4", UINT)],
)
def test_index_buffer_component_types(dtype, component_type):
    values = [3, 0, 7, 255, 1]
    doc = _Doc()
    index = doc.add(np.array(values, dtype=dtype), component_type, "SCALAR")
    assert load_index_buffer({"indices": index}, doc.model()) == values


def test_index_buffer_unsupported_type_gives_zeros():
    doc = _Doc()
    index = doc.add(np.array([1.5, 2.5, 3.5, 4.5], dtype="<f4"), FLOAT, "SCALAR")
    assert load_index_buffer({"indices": index}, doc.model()) == [0] * 4


def test_index_buffer_without_indices_uses_first_accessor():
    doc = _Doc()
    doc.add(np.array([2, 1, 0], dtype="u1"), UBYTE, "SCALAR")
    assert load_index_buffer({"attributes": {}}, doc.model()) == [2, 1, 0]


def test_vertex_buffer_reads_all_attributes():
    doc, primitive = _triangle()
    vertices = load_vertex_buffer(primitive, doc.model())
    assert [v.position for v in vertices] == _rows(POSITIONS)
    assert [v.normal for v in vertices] == _rows(NORMALS)
    assert [v.color for v in vertices] == _rows(COLORS)
    assert [v.tex_coord for v in vertices] == _rows(TEXCOORDS)


def test_vertex_buffer_defaults_missing_attributes():
    doc = _Doc()
    position = doc.add(POSITIONS, FLOAT, "VEC3")
    vertices = load_vertex_buffer({"attributes": {"POSITION": position}}, doc.model())
    default = Vertex()
    assert len(vertices) == len(POSITIONS)
    assert all(v.normal == default.normal and v.tex_coord == default.tex_coord for v in vertices)


def test_vertex_buffer_requires_position():
    doc, primitive = _triangle()
    del primitive["attributes"]["POSITION"]
    with pytest.raises(GltfError):
        load_vertex_buffer(primitive, doc.model())


def test_vertex_buffer_rejects_wrong_position_type():
    doc = _Doc()
    position = doc.add(TEXCOORDS, FLOAT, "VEC2")
    with pytest.raises(GltfError):
        load_vertex_buffer({"attributes": {"POSITION": position}}, doc.model())


@pytest.mark.parametrize(
    "value, expected",
    [(-1, AddressMode.REPEAT), (10497, AddressMode.REPEAT), (33071, AddressMode.CLAMP_TO_EDGE),
     (33648, AddressMode.MIRRORED_REPEAT), (12345, AddressMode.REPEAT)],
)
def test_wrap_mode(value, expected):
    assert wrap_mode(value) is expected


@pytest.mark.parametrize(
    "value, expected",
    [(-1, Filter.NEAREST), (9728, Filter.NEAREST), (9729, Filter.LINEAR), (9984, Filter.NEAREST),
     (9985, Filter.NEAREST), (9986, Filter.LINEAR), (9987, Filter.LINEAR), (1, Filter.NEAREST)],
)
def test_filter_mode(value, expected):
    assert filter_mode(value) is expected


def test_texture_samplers_copy_v_wrap_to_w():
    model = GltfModel(
        {"samplers": [{"minFilter": 9987, "magFilter": 9728, "wrapS": 33071, "wrapT": 33648}, {}]}
    )
    first, second = load_texture_samplers(model)
    assert first.min_filter is Filter.LINEAR
    assert first.mag_filter is Filter.NEAREST
    assert first.address_mode_u is AddressMode.CLAMP_TO_EDGE
    assert first.address_mode_w is first.address_mode_v is AddressMode.MIRRORED_REPEAT
    assert second.address_mode_u is AddressMode.REPEAT


def test_load_meshes_names_primitives_and_picks_materials():
    doc, primitive = _triangle()
    second = dict(primitive, material=1)
    model = doc.model(
        meshes=[
            {"name": "Box", "primitives": [dict(primitive, material=0)]},
            {"primitives": [primitive, second]},
        ]
    )
    meshes = load_meshes(model, ["stone", "wood"])
    assert [[m.resource_id for m in mesh] for mesh in meshes] == [
        ["Box_Primitive0"],
        ["AnonymousMesh_Primitive0", "AnonymousMesh_Primitive1"],
    ]
    assert meshes[0][0].material == "stone"
    assert meshes[1][0].material is None
    assert meshes[1][1].material == "wood"
    data = meshes[0][0].mesh_data
    assert isinstance(data, MeshData)
    assert data.indices == INDICES.tolist()
    assert meshes[0][0].resource_type is ResourceType.MESH


def test_load_gltf_reads_external_buffer(tmp_path):
    raw = POSITIONS.tobytes()
    (tmp_path / "mesh data.bin").write_bytes(raw)
    document = {
        "asset": {"version": "2.0"},
        "buffers": [{"uri": "mesh%20data.bin", "byteLength": len(raw)}],
        "bufferViews": [{"buffer": 0, "byteLength": len(raw)}],
        "accessors": [{"bufferView": 0, "componentType": FLOAT, "type": "VEC3", "count": 3}],
    }
    path = tmp_path / "scene.gltf"
    path.write_text(json.dumps(document))
    model = load_gltf(path)
    assert model.buffer_bytes(0) == raw
    assert [v.position for v in load_vertex_buffer({"attributes": {"POSITION": 0}}, model)] == _rows(POSITIONS)


def test_load_gltf_bad_json_raises(tmp_path):
    path = tmp_path / "broken.gltf"
    path.write_text("{not json")
    with pytest.raises(GltfError):
        load_gltf(path)


def test_load_gltf_missing_file_raises(tmp_path):
    with pytest.raises(GltfError):
        load_gltf(tmp_path / "absent.gltf")


def test_missing_buffer_file_raises(tmp_path):
    model = GltfModel({"buffers": [{"uri": "nowhere.bin"}]}, base_path=tmp_path)
    with pytest.raises(GltfError):
        model.buffer_bytes(0)


def test_node_matrix_from_column_major_list():
    values = [float(v) for v in range(16)]
    matrix = node_matrix({"matrix": values})
    assert matrix.T.flatten().tolist() == values


def test_node_matrix_empty_node_is_identity():
    assert np.array_equal(node_matrix({}), np.eye(4))


def test_node_matrix_translation_column():
    matrix = node_matrix({"translation": [1.0, -2.0, 3.5]})
    assert matrix[:3, 3].tolist() == [1.0, -2.0, 3.5]


def test_node_matrix_composes_translation_rotation_scale():
    h = math.sqrt(0.5)
    node = {"translation": [1.0, 2.0, 3.0], "rotation": [0.0, h, 0.0, h], "scale": [2.0, 3.0, 4.0]}
    combined = node_matrix(node)
    parts = (
        node_matrix({"translation": node["translation"]})
        @ node_matrix({"rotation": node["rotation"]})
        @ node_matrix({"scale": node["scale"]})
    )
    assert np.allclose(combined, parts)


def test_node_matrix_quaternion_rotates_x_to_y():
    h = math.sqrt(0.5)
    matrix = node_matrix({"rotation": [0.0, 0.0, h, h]})
    assert np.allclose(matrix @ np.array([1.0, 0.0, 0.0, 1.0]), [0.0, 1.0, 0.0, 1.0])