import logging
from typing import Callable, NamedTuple

import numpy as np
from PIL import Image

from rigkit.assets.animations.skeleton import Skeleton
from rigkit.config import DEFAULT_ARM_SPAN, DEFAULT_HEIGHT
from rigkit.gameobjects.animation.animation_utils import quat_from_axis_angle, quat_to_mat4
from rigkit.gameobjects.assets.vertec import generate_box, generate_cylinder, generate_sphere
from rigkit.gameobjects.material import Material
from rigkit.gameobjects.mesh import Geometry, SkinnedMesh, merge_geometries
from rigkit.gameobjects.player.mannequin.skeleton_builder import BONES
from rigkit.gameobjects.player.mannequin.uv_projector import WorldBounds, project_planar_uvs

_log = logging.getLogger("rigkit.synthesis")


class Part(NamedTuple):
    """
    One primitive body segment.

    anchor     : joint name (placed at joint + offset) or (from, to) joint
                 pair (centered between them, long axis along the segment)
    primitive  : () -> Geometry for joint parts, (length) -> Geometry for segments
    influences : ((bone name, weight), ...), at most 4
    """

    name: str
    primitive: Callable[..., Geometry]
    anchor: str | tuple[str, str]
    influences: tuple
    offset: tuple = (0.0, 0.0, 0.0)
    rotation: tuple = (0.0, 0.0, 0.0)
    scale: tuple = (1.0, 1.0, 1.0)


def _rigid(bone: str) -> tuple:
    return ((bone, 1.0),)


def _head_and_torso() -> list[Part]:
    return [
        Part("head", lambda: generate_sphere(0.1, 16, 16), BONES["HEAD"], _rigid(BONES["HEAD"]),
             offset=(0.0, 0.05, -0.02), scale=(0.92, 1.1, 1.0)),
        Part("jaw", lambda: generate_cylinder(0.09, 0.07, 0.16, 12), BONES["HEAD"], _rigid(BONES["HEAD"]),
             offset=(0.0, 0.01, 0.02), scale=(1.0, 1.0, 0.8)),
        Part("nose", lambda: generate_box(0.03, 0.06, 0.04), BONES["HEAD"], _rigid(BONES["HEAD"]),
             offset=(0.0, 0.02, 0.11), rotation=(-0.1, 0.0, 0.0)),
        Part("neck", lambda: generate_cylinder(0.065, 0.075, 0.15, 12), BONES["NECK"], _rigid(BONES["NECK"]),
             offset=(0.0, 0.05, 0.0)),
        # blended so the waist bends without a seam
        Part("chest", lambda: generate_cylinder(0.18, 0.14, 0.45, 12), BONES["CHEST"],
             ((BONES["CHEST"], 0.7), (BONES["SPINE"], 0.3)),
             offset=(0.0, 0.05, 0.0), scale=(1.0, 1.0, 0.7)),
        Part("pelvis", lambda: generate_cylinder(0.13, 0.14, 0.25, 12), BONES["ROOT"], _rigid(BONES["ROOT"]),
             offset=(0.0, 0.10, 0.0), scale=(1.0, 1.0, 0.75)),
    ]


def _limb_parts(side: str, s: float) -> list[Part]:
    def b(key):
        return BONES[f"{side}_{key}"]

    return [
        Part(f"{side}_shoulder", lambda length: generate_sphere(0.07, 12, 8), (b("SHOULDER"), b("ARM")),
             _rigid(b("SHOULDER"))),
        Part(f"{side}_upper_arm", lambda length: generate_cylinder(0.055, 0.05, length, 12),
             (b("ARM"), b("FOREARM")), _rigid(b("ARM"))),
        Part(f"{side}_elbow", lambda: generate_sphere(0.05, 12, 8), b("FOREARM"), _rigid(b("ARM"))),
        Part(f"{side}_forearm", lambda length: generate_cylinder(0.05, 0.04, length, 12),
             (b("FOREARM"), b("HAND")), _rigid(b("FOREARM"))),
        Part(f"{side}_hand", lambda: generate_box(0.08, 0.1, 0.04), b("HAND"), _rigid(b("HAND")),
             offset=(s * 0.04, 0.0, 0.0)),
        Part(f"{side}_hip", lambda: generate_sphere(0.08, 12, 8), b("UPLEG"), _rigid(b("UPLEG"))),
        Part(f"{side}_thigh", lambda length: generate_cylinder(0.08, 0.06, length, 12),
             (b("UPLEG"), b("LEG")), _rigid(b("UPLEG"))),
        Part(f"{side}_knee", lambda: generate_sphere(0.06, 12, 8), b("LEG"), _rigid(b("UPLEG"))),
        Part(f"{side}_shin", lambda length: generate_cylinder(0.06, 0.05, length, 12),
             (b("LEG"), b("FOOT")), _rigid(b("LEG"))),
        Part(f"{side}_foot", lambda: generate_box(0.08, 0.06, 0.18), b("FOOT"), _rigid(b("FOOT")),
             offset=(0.0, -0.08, 0.05)),
    ]


PART_TABLE: list[Part] = _head_and_torso() + _limb_parts("L", 1.0) + _limb_parts("R", -1.0)


# ------------------------------------------------------------
# Part construction
# ------------------------------------------------------------

def _align_y(direction: np.ndarray) -> np.ndarray:
    """
    Rotation taking +Y onto `direction`.
    """
    d = direction / np.linalg.norm(direction)
    up = np.array([0.0, 1.0, 0.0])
    dot = float(np.clip(np.dot(up, d), -1.0, 1.0))
    axis = np.cross(up, d)
    if np.linalg.norm(axis) < 1e-9:
        if dot > 0.0:
            return np.eye(4)
        axis = np.array([0.0, 0.0, 1.0])
    return quat_to_mat4(quat_from_axis_angle(axis, np.arccos(dot))).astype(np.float64)


def _skin_slots(influences, skeleton: Skeleton) -> tuple[list[int], list[float]]:
    if not 1 <= len(influences) <= 4:
        raise ValueError(f"A part needs 1 to 4 influences, got {len(influences)}")
    indices = [0, 0, 0, 0]
    weights = [0.0, 0.0, 0.0, 0.0]
    for slot, (bone, weight) in enumerate(influences):
        indices[slot] = skeleton.index_of(bone)
        weights[slot] = weight
    return indices, weights


def create_part(geometry: Geometry, position, bone_indices, bone_weights, bounds: WorldBounds,
                rotation=(0.0, 0.0, 0.0), scale=(1.0, 1.0, 1.0), orientation=None) -> Geometry:
    """
    Non-indexed copy of `geometry`, rotated, scaled and moved into place,
    with one skin binding for every vertex and planar UVs.
    """
    part = geometry.to_non_indexed()
    if orientation is not None:
        part.apply_matrix(orientation)
    part.rotate_x(rotation[0])
    part.rotate_y(rotation[1])
    part.rotate_z(rotation[2])
    part.scale(*scale)
    part.translate(*position)

    count = part.vertex_count
    part.set_attribute("skinIndex", np.tile(np.asarray(bone_indices, dtype=np.uint16), (count, 1)))
    part.set_attribute("skinWeight", np.tile(np.asarray(bone_weights, dtype=np.float32), (count, 1)))

    return project_planar_uvs(part, bounds)


def build_parts(skeleton: Skeleton, bounds: WorldBounds, table: list[Part] | None = None) -> list[Geometry]:
    parts = []
    for part in table or PART_TABLE:
        indices, weights = _skin_slots(part.influences, skeleton)

        if isinstance(part.anchor, tuple):
            start = skeleton.world_position(part.anchor[0])
            end = skeleton.world_position(part.anchor[1])
            length = float(np.linalg.norm(end - start))
            if length <= 0.0:
                raise ValueError(f"Segment {part.name} has zero length")
            primitive = part.primitive(length)
            # +Y (the wider end) points back toward the parent joint
            orientation = _align_y(start - end)
            position = (start + end) / 2.0 + np.asarray(part.offset)
        else:
            primitive = part.primitive()
            orientation = None
            position = skeleton.world_position(part.anchor) + np.asarray(part.offset)

        parts.append(
            create_part(primitive, position, indices, weights, bounds,
                        rotation=part.rotation, scale=part.scale, orientation=orientation)
        )
    return parts


def assemble_mannequin(skeleton: Skeleton, texture: Image.Image | None,
                       height: float = DEFAULT_HEIGHT, arm_span: float = DEFAULT_ARM_SPAN,
                       table: list[Part] | None = None) -> SkinnedMesh:
    """
    Primitive body parts bound to `skeleton`, merged into one skinned mesh
    textured with the portrait.
    """
    bounds = WorldBounds.for_body(height, arm_span)
    parts = build_parts(skeleton, bounds, table)
    geometry = merge_geometries(parts)

    material = Material(texture=texture)
    mesh = SkinnedMesh(geometry, skeleton, material)
    _log.info("[Rig] assembled %d parts, %d vertices, %d bones",
              len(parts), mesh.vertex_count, skeleton.count)
    return mesh
