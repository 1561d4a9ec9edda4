import logging
import os
import tempfile
from typing import Sequence

import numpy as np
from pygltflib import (
    GLTF2,
    Scene,
    Node,
    Mesh as GLTFMesh,
    Primitive,
    Attributes,
    Accessor,
    BufferView,
    Buffer,
    Skin,
    Animation,
    AnimationSampler,
    AnimationChannel,
    AnimationChannelTarget,
    Material as GLTFMaterial,
    PbrMetallicRoughness,
    TextureInfo,
    Texture as GLTFTexture,
    Image as GLTFImage,
    Sampler,
    ARRAY_BUFFER,
    FLOAT,
    UNSIGNED_SHORT,
)

from rigkit.assets.animations.clip import AnimationClip
from rigkit.assets.animations.skeleton import Skeleton
from rigkit.errors import ExportError
from rigkit.gameobjects.material import Material
from rigkit.gameobjects.mesh import SkinnedMesh
from rigkit.gameobjects.texture import encode_png

_log = logging.getLogger("rigkit.glb")

# track property -> glTF channel path
CHANNEL_PATHS = {
    "position": "translation",
    "rotation": "rotation",
    "scale": "scale",
}

# glTF sampler constants
LINEAR = 9729
LINEAR_MIPMAP_LINEAR = 9987
REPEAT = 10497


class GLBWriter:
    """
    Builds a binary glTF 2.0 container: bone nodes, one skinned mesh,
    one material and any number of animation clips.
    """

    def __init__(self):
        self.gltf = GLTF2()
        self.buffer_data = bytearray()

        # bone name -> node index
        self.bone_nodes: dict[str, int] = {}

    # -------------------------------------------------
    # Buffer helpers
    # -------------------------------------------------

    def _add_buffer_data(self, data: bytes) -> tuple[int, int]:
        """Append data, 4-byte aligned. Returns (offset, length)."""
        offset = len(self.buffer_data)
        self.buffer_data.extend(data)

        while len(self.buffer_data) % 4 != 0:
            self.buffer_data.extend(b"\x00")

        return offset, len(data)

    def _create_buffer_view(self, byte_offset: int, byte_length: int, target: int | None = None) -> int:
        self.gltf.bufferViews.append(
            BufferView(buffer=0, byteOffset=byte_offset, byteLength=byte_length, target=target)
        )
        return len(self.gltf.bufferViews) - 1

    def _add_accessor(self, array: np.ndarray, component_type: int, type_: str,
                      target: int | None = None, with_bounds: bool = False) -> int:
        offset, length = self._add_buffer_data(array.tobytes())
        view = self._create_buffer_view(offset, length, target)

        accessor = Accessor(
            bufferView=view,
            componentType=component_type,
            count=int(array.shape[0]),
            type=type_,
        )
        if with_bounds:
            flat = array.reshape(array.shape[0], -1)
            accessor.min = flat.min(axis=0).tolist()
            accessor.max = flat.max(axis=0).tolist()

        self.gltf.accessors.append(accessor)
        return len(self.gltf.accessors) - 1

    # -------------------------------------------------
    # Scene content
    # -------------------------------------------------

    def add_skeleton(self, skeleton: Skeleton) -> list[int]:
        """
        One node per bone, in skeleton order. Returns joint node indices.
        """
        base = len(self.gltf.nodes)
        for i, bone in enumerate(skeleton.bones):
            node = Node(
                name=bone.name,
                translation=[float(v) for v in bone.translation],
                rotation=[float(v) for v in bone.rotation],
                scale=[float(v) for v in bone.scale],
            )
            self.gltf.nodes.append(node)
            self.bone_nodes[bone.name] = base + i

        for i, parent in enumerate(skeleton.parents):
            if parent < 0:
                continue
            parent_node = self.gltf.nodes[base + parent]
            if not parent_node.children:
                parent_node.children = []
            parent_node.children.append(base + i)

        return [base + i for i in range(skeleton.count)]

    def add_armature(self, skeleton: Skeleton, joint_nodes: list[int], name: str = "Armature") -> int:
        """
        Parent node carrying the skeleton's root transform. Returns the
        root joint's node when there is no transform to carry.
        """
        root_node = joint_nodes[skeleton.root]
        if np.allclose(skeleton.root_transform, np.eye(4)):
            return root_node

        # column-major
        matrix = [float(v) for v in skeleton.root_transform.T.flatten()]
        self.gltf.nodes.append(Node(name=name, matrix=matrix, children=[root_node]))
        return len(self.gltf.nodes) - 1

    def add_material(self, material: Material) -> int:
        pbr = PbrMetallicRoughness(
            baseColorFactor=[float(c) for c in material.color],
            metallicFactor=float(material.metalness),
            roughnessFactor=float(material.roughness),
        )

        if material.texture is not None:
            offset, length = self._add_buffer_data(encode_png(material.texture))
            view = self._create_buffer_view(offset, length)

            self.gltf.images.append(GLTFImage(bufferView=view, mimeType="image/png"))
            if not self.gltf.samplers:
                self.gltf.samplers.append(
                    Sampler(magFilter=LINEAR, minFilter=LINEAR_MIPMAP_LINEAR, wrapS=REPEAT, wrapT=REPEAT)
                )
            self.gltf.textures.append(GLTFTexture(source=len(self.gltf.images) - 1, sampler=0))
            pbr.baseColorTexture = TextureInfo(index=len(self.gltf.textures) - 1)

        self.gltf.materials.append(
            GLTFMaterial(name=material.name, pbrMetallicRoughness=pbr, doubleSided=material.double_sided)
        )
        return len(self.gltf.materials) - 1

    def _create_skin(self, skeleton: Skeleton, joint_nodes: list[int]) -> int:
        # glTF matrices are column-major
        inverse_bind = np.stack([m.T for m in skeleton.inverse_bind]).astype(np.float32)
        accessor = self._add_accessor(inverse_bind.reshape(skeleton.count, 16), FLOAT, "MAT4")

        self.gltf.skins.append(
            Skin(joints=joint_nodes, inverseBindMatrices=accessor, skeleton=joint_nodes[skeleton.root])
        )
        return len(self.gltf.skins) - 1

    def add_skinned_mesh(self, mesh: SkinnedMesh, joint_nodes: list[int], material_index: int | None) -> int:
        attributes = Attributes(
            POSITION=self._add_accessor(mesh.positions.astype(np.float32), FLOAT, "VEC3", ARRAY_BUFFER, True),
            NORMAL=self._add_accessor(mesh.normals.astype(np.float32), FLOAT, "VEC3", ARRAY_BUFFER),
            TEXCOORD_0=self._add_accessor(mesh.uvs.astype(np.float32), FLOAT, "VEC2", ARRAY_BUFFER),
            JOINTS_0=self._add_accessor(mesh.bone_ids.astype(np.uint16), UNSIGNED_SHORT, "VEC4", ARRAY_BUFFER),
            WEIGHTS_0=self._add_accessor(mesh.bone_weights.astype(np.float32), FLOAT, "VEC4", ARRAY_BUFFER),
        )

        self.gltf.meshes.append(
            GLTFMesh(name=mesh.name, primitives=[Primitive(attributes=attributes, material=material_index)])
        )
        skin = self._create_skin(mesh.skeleton, joint_nodes)

        self.gltf.nodes.append(Node(name=mesh.name, mesh=len(self.gltf.meshes) - 1, skin=skin))
        return len(self.gltf.nodes) - 1

    def add_animation(self, clip: AnimationClip) -> int | None:
        """
        Tracks whose bone has no node are skipped. Returns None when
        nothing of the clip could be written.
        """
        animation = Animation(name=clip.name, samplers=[], channels=[])

        for track in clip.tracks:
            node = self.bone_nodes.get(track.node)
            if node is None or len(track.times) == 0:
                continue

            times = track.times.astype(np.float32).reshape(-1, 1)
            values = track.values.astype(np.float32)
            type_ = "VEC4" if track.property == "rotation" else "VEC3"

            sampler = AnimationSampler(
                input=self._add_accessor(times, FLOAT, "SCALAR", with_bounds=True),
                output=self._add_accessor(values, FLOAT, type_),
                interpolation="LINEAR",
            )
            animation.samplers.append(sampler)
            animation.channels.append(
                AnimationChannel(
                    sampler=len(animation.samplers) - 1,
                    target=AnimationChannelTarget(node=node, path=CHANNEL_PATHS[track.property]),
                )
            )

        if not animation.channels:
            _log.warning("[GLB] clip %s has no tracks for this skeleton, not exported", clip.name)
            return None

        self.gltf.animations.append(animation)
        return len(self.gltf.animations) - 1

    # -------------------------------------------------
    # Output
    # -------------------------------------------------

    def to_bytes(self, scene_nodes: list[int]) -> bytes:
        self.gltf.scenes = [Scene(nodes=scene_nodes)]
        self.gltf.scene = 0
        self.gltf.buffers = [Buffer(byteLength=len(self.buffer_data))]
        self.gltf.set_binary_blob(bytes(self.buffer_data))
        return b"".join(self.gltf.save_to_bytes())


def serialize_glb(skeleton: Skeleton, mesh: SkinnedMesh, material: Material | None = None,
                  clips: Sequence[AnimationClip] = ()) -> bytes:
    """
    Skeleton + skinned mesh + material + baked clips as one GLB blob.
    Raises ExportError; never returns a partial container.
    """
    try:
        writer = GLBWriter()
        joint_nodes = writer.add_skeleton(skeleton)
        armature = writer.add_armature(skeleton, joint_nodes)

        material = material or mesh.material
        material_index = writer.add_material(material) if material is not None else None
        mesh_node = writer.add_skinned_mesh(mesh, joint_nodes, material_index)

        for clip in clips:
            writer.add_animation(clip)

        blob = writer.to_bytes([armature, mesh_node])
    except ExportError:
        raise
    except Exception as e:
        raise ExportError(f"GLB export failed: {e}") from e

    _log.info("[GLB] exported %d bones, %d vertices, %d animation(s), %d bytes",
              skeleton.count, mesh.vertex_count, len(writer.gltf.animations), len(blob))
    return blob


def write_glb(path: str, blob: bytes) -> str:
    """
    Atomically write a serialized container: either the whole file
    appears at `path` or nothing does.
    """
    directory = os.path.dirname(os.path.abspath(path))
    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(suffix=".glb.tmp", dir=directory)
        with os.fdopen(fd, "wb") as f:
            f.write(blob)
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise ExportError(f"Could not write {path}: {e}") from e
    return path
