from PIL import Image
import io
import logging
from pygltflib import GLTF2
import numpy as np
import struct
from typing import Optional

from rigkit.assets.animations.clip import AnimationClip, Track
from rigkit.assets.animations.skeleton import Bone, Skeleton
from rigkit.errors import ContainerError
from rigkit.gameobjects.animation.animation_utils import build_local_matrix, decompose_matrix
from rigkit.gameobjects.material import Material
from rigkit.gameobjects.mesh import Geometry, SkinnedMesh

_log = logging.getLogger("rigkit.glb")

# glTF channel path -> track property
TRACK_PROPERTIES = {
    "translation": "position",
    "rotation": "rotation",
    "scale": "scale",
}


class GLBLoader:
    def __init__(self, source):
        """
        source: GLB bytes or a path to a .glb file
        """
        try:
            if isinstance(source, (bytes, bytearray)):
                gltf = GLTF2.load_from_bytes(bytes(source))
            else:
                gltf = GLTF2().load(source)
        except Exception as e:
            raise ContainerError(f"Failed to load GLTF: {e}") from e

        if gltf is None:
            raise ContainerError("Failed to load GLTF")
        self.gltf: GLTF2 = gltf

        binary = self.gltf.binary_blob()
        if binary is None:
            raise ContainerError("GLTF has no binary blob (use .glb)")
        self._binary: bytes = binary

        # child node -> parent node
        self._parent_map = {}
        for parent_idx, node in enumerate(self.gltf.nodes):
            for child in node.children or []:
                self._parent_map[child] = parent_idx

    # -------------------------------------------------
    # Accessor helpers
    # -------------------------------------------------
    def _component_count(self, accessor_type: str) -> int:
        return {
            "SCALAR": 1,
            "VEC2": 2,
            "VEC3": 3,
            "VEC4": 4,
            "MAT4": 16,
        }[accessor_type]

    def _component_format(self, component_type: int):
        if component_type == 5126:  # FLOAT
            return "f", 4
        if component_type == 5125:  # UNSIGNED_INT
            return "I", 4
        if component_type == 5123:  # UNSIGNED_SHORT
            return "H", 2
        if component_type == 5121:  # UNSIGNED_BYTE
            return "B", 1
        raise ContainerError(f"Unsupported component type: {component_type}")

    def _read_accessor(self, acc_index: int) -> np.ndarray:
        acc = self.gltf.accessors[acc_index]
        if acc.bufferView is None:
            raise ContainerError("Accessor has no bufferView")

        view = self.gltf.bufferViews[acc.bufferView]
        comp_char, comp_size = self._component_format(acc.componentType)
        comps = self._component_count(acc.type)

        stride = view.byteStride or (comp_size * comps)
        offset = (view.byteOffset or 0) + (acc.byteOffset or 0)

        fmt = "<" + comp_char * comps
        out = np.empty((acc.count, comps), dtype=np.float32)

        buf: bytes = self._binary
        try:
            for i in range(acc.count):
                out[i] = struct.unpack_from(fmt, buf, offset + i * stride)
        except struct.error as e:
            raise ContainerError(f"Accessor {acc_index} runs past the binary chunk") from e

        return out

    def _node_name(self, node_idx: int) -> str:
        name = self.gltf.nodes[node_idx].name
        return name if name else f"node_{node_idx}"

    # -------------------------------------------------
    # Skeleton
    # -------------------------------------------------
    def joint_nodes(self) -> list[int]:
        if not self.gltf.skins:
            return []
        return list(self.gltf.skins[0].joints or [])

    def _node_trs(self, node_idx: int):
        node = self.gltf.nodes[node_idx]
        if node.matrix is not None:
            # column-major
            return decompose_matrix(np.array(node.matrix, dtype=np.float64).reshape(4, 4).T)
        return (
            node.translation or (0.0, 0.0, 0.0),
            node.rotation or (0.0, 0.0, 0.0, 1.0),
            node.scale or (1.0, 1.0, 1.0),
        )

    def _node_local_matrix(self, node_idx: int) -> np.ndarray:
        node = self.gltf.nodes[node_idx]
        if node.matrix is not None:
            return np.array(node.matrix, dtype=np.float32).reshape(4, 4).T
        return build_local_matrix(*self._node_trs(node_idx))

    def _ancestor_transform(self, node_idx: int) -> np.ndarray:
        """
        World matrix of everything above a node (armature, scene root, ...).
        """
        chain = []
        parent = self._parent_map.get(node_idx)
        while parent is not None:
            chain.append(parent)
            parent = self._parent_map.get(parent)

        m = np.eye(4, dtype=np.float32)
        for idx in reversed(chain):
            m = m @ self._node_local_matrix(idx)
        return m

    def _inverse_bind_matrices(self, skin, count: int):
        if skin.inverseBindMatrices is None:
            return None
        flat = self._read_accessor(skin.inverseBindMatrices)
        if flat.shape != (count, 16):
            raise ContainerError(f"Skin has {flat.shape[0]} inverse bind matrices for {count} joints")
        # column-major
        return [m.T for m in flat.reshape(count, 4, 4)]

    def load_skeleton(self) -> Skeleton:
        """
        Skeleton over the first skin's joints, in joint order.

        Joints whose parent is not a joint become roots. Non-joint nodes
        above the root (an armature scaling cm to m, say) become the
        skeleton's root transform, and the skin's own inverse bind
        matrices are kept when the file carries them.
        """
        joints = self.joint_nodes()
        if not joints:
            raise ContainerError("GLTF has no skin")

        joint_set = set(joints)
        bones = []
        roots = []
        for node_idx in joints:
            parent = self._parent_map.get(node_idx)
            if parent not in joint_set:
                roots.append(node_idx)
            translation, rotation, scale = self._node_trs(node_idx)
            bones.append(
                Bone(
                    self._node_name(node_idx),
                    self._node_name(parent) if parent in joint_set else None,
                    translation=translation,
                    rotation=rotation,
                    scale=scale,
                )
            )

        root_transform = self._ancestor_transform(roots[0]) if len(roots) == 1 else None
        inverse_bind = self._inverse_bind_matrices(self.gltf.skins[0], len(joints))

        try:
            return Skeleton(bones, root_transform=root_transform, inverse_bind=inverse_bind)
        except ValueError as e:
            raise ContainerError(f"Invalid skeleton: {e}") from e

    # -------------------------------------------------
    # Animation helpers
    # -------------------------------------------------
    def _read_animation_sampler(self, sampler):
        if sampler.input is None or sampler.output is None:
            return None, None

        times = self._read_accessor(sampler.input).flatten()
        values = self._read_accessor(sampler.output)
        if sampler.interpolation == "CUBICSPLINE":
            # (in-tangent, value, out-tangent) per key
            values = values.reshape(len(times), 3, -1)[:, 1, :]
        return times.astype(np.float32), values.astype(np.float32)

    def load_animations(self) -> list[AnimationClip]:
        clips = []
        for i, anim in enumerate(self.gltf.animations or []):
            tracks = []
            for ch in anim.channels:
                prop = TRACK_PROPERTIES.get(ch.target.path)
                if prop is None or ch.target.node is None:
                    # morph weights are not bone tracks
                    continue

                times, values = self._read_animation_sampler(anim.samplers[ch.sampler])
                if times is None or times.size == 0:
                    continue
                node_name = self._node_name(ch.target.node)
                try:
                    tracks.append(Track(node_name, prop, times, values))
                except ValueError as e:
                    raise ContainerError(f"Animation {anim.name or i}: {e}") from e

            clips.append(AnimationClip(anim.name or f"<unnamed_{i}>", tracks))

        if clips:
            _log.debug("[GLB] Found %d animation(s)", len(clips))
        return clips

    # -------------------------------------------------
    # Texture helpers
    # -------------------------------------------------
    def _image_from_view(self, image_index: int) -> Optional[Image.Image]:
        image = self.gltf.images[image_index]
        if image.bufferView is None:
            raise ContainerError("External textures (.gltf) not supported yet")

        view = self.gltf.bufferViews[image.bufferView]
        offset = view.byteOffset or 0
        length = view.byteLength

        img_bytes = self._binary[offset : offset + length]
        return Image.open(io.BytesIO(img_bytes)).convert("RGBA")

    def _load_basecolor_texture(self, prim) -> Optional[Image.Image]:
        if prim.material is None:
            return None

        material = self.gltf.materials[prim.material]
        if material.pbrMetallicRoughness is None:
            return None

        tex_info = material.pbrMetallicRoughness.baseColorTexture
        if tex_info is None:
            return None

        texture = self.gltf.textures[tex_info.index]
        return self._image_from_view(texture.source)

    def largest_basecolor_texture(self) -> Optional[Image.Image]:
        """
        The biggest base-color map used by any material.
        """
        best = None
        for material in self.gltf.materials or []:
            pbr = material.pbrMetallicRoughness
            if pbr is None or pbr.baseColorTexture is None:
                continue
            texture = self.gltf.textures[pbr.baseColorTexture.index]
            img = self._image_from_view(texture.source)
            if best is None or img.width * img.height > best.width * best.height:
                best = img
        return best

    # -------------------------------------------------
    # Public API
    # -------------------------------------------------
    def load_first_mesh(self) -> dict:
        if not self.gltf.meshes:
            raise ContainerError("No meshes found in GLTF")

        mesh = self.gltf.meshes[0]
        prim = mesh.primitives[0]

        if prim.attributes.POSITION is None:
            raise ContainerError("GLTF primitive has no POSITION attribute")

        positions = self._read_accessor(prim.attributes.POSITION)

        # --- Compute mesh bounds in model space ---
        min_bounds = positions.min(axis=0)
        max_bounds = positions.max(axis=0)

        model_height = max_bounds[1] - min_bounds[1]
        foot_offset = -min_bounds[1]  # distance from pivot to feet

        normals = (
            self._read_accessor(prim.attributes.NORMAL)
            if prim.attributes.NORMAL is not None
            else np.zeros_like(positions)
        )

        uvs = (
            self._read_accessor(prim.attributes.TEXCOORD_0)
            if prim.attributes.TEXCOORD_0 is not None
            else np.zeros((positions.shape[0], 2), dtype=np.float32)
        )

        joints = None
        weights = None
        if prim.attributes.JOINTS_0 is not None and prim.attributes.WEIGHTS_0 is not None:
            joints = self._read_accessor(prim.attributes.JOINTS_0).astype(np.uint16)
            weights = self._read_accessor(prim.attributes.WEIGHTS_0)

        indices = None
        if prim.indices is not None:
            idx = self._read_accessor(prim.indices)
            indices = idx.astype(np.uint32).flatten()

        return {
            "name": mesh.name,
            "positions": positions,
            "normals": normals,
            "uvs": uvs,
            "joints": joints,
            "weights": weights,
            "indices": indices,
            "albedo": self._load_basecolor_texture(prim),
            "material": prim.material,
            "bounds_min": min_bounds.astype(np.float32),
            "bounds_max": max_bounds.astype(np.float32),
            "model_height": float(model_height),
            "foot_offset": float(foot_offset),
        }

    def load_skinned_mesh(self, skeleton: Skeleton | None = None) -> SkinnedMesh:
        data = self.load_first_mesh()
        if data["joints"] is None:
            raise ContainerError("First mesh has no JOINTS_0/WEIGHTS_0")

        if skeleton is None:
            skeleton = self.load_skeleton()

        geometry = Geometry(
            {
                "position": data["positions"],
                "normal": data["normals"],
                "uv": data["uvs"],
                "skinIndex": data["joints"],
                "skinWeight": data["weights"],
            },
            index=data["indices"],
        )

        material = None
        if data["material"] is not None:
            src = self.gltf.materials[data["material"]]
            material = Material(texture=data["albedo"], double_sided=bool(src.doubleSided),
                                name=src.name or "Material")

        return SkinnedMesh(geometry.to_non_indexed(), skeleton, material, name=data["name"] or "Mesh")
