import numpy as np

from rigkit.errors import GeometryError
from rigkit.gameobjects.animation.animation_utils import quat_from_axis_angle, quat_to_mat4

# attribute name -> components per vertex
ATTRIBUTE_WIDTH = {
    "position": 3,
    "normal": 3,
    "uv": 2,
    "skinIndex": 4,
    "skinWeight": 4,
}

REQUIRED_ATTRIBUTES = ("position", "normal", "uv")


class Geometry:
    def __init__(self, attributes: dict[str, np.ndarray] | None = None, index: np.ndarray | None = None):
        """
        attributes: name -> (V, width) array, one row per vertex
        index     : optional triangle index buffer (uint32)
        """
        self.attributes: dict[str, np.ndarray] = {}
        self.index = None if index is None else np.asarray(index, dtype=np.uint32).reshape(-1)
        for name, values in (attributes or {}).items():
            self.set_attribute(name, values)

    # -------------------------------------------------
    # Attributes
    # -------------------------------------------------

    @property
    def vertex_count(self) -> int:
        position = self.attributes.get("position")
        return 0 if position is None else position.shape[0]

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def get_attribute(self, name: str) -> np.ndarray:
        return self.attributes[name]

    def set_attribute(self, name: str, values):
        width = ATTRIBUTE_WIDTH.get(name)
        dtype = np.uint16 if name == "skinIndex" else np.float32
        arr = np.asarray(values, dtype=dtype)
        if width is not None:
            arr = arr.reshape(-1, width)

        if self.attributes and "position" in self.attributes and name != "position":
            if arr.shape[0] != self.vertex_count:
                raise GeometryError(
                    f"Attribute {name} has {arr.shape[0]} rows, geometry has {self.vertex_count} vertices"
                )
        self.attributes[name] = arr

    def clone(self) -> "Geometry":
        index = None if self.index is None else self.index.copy()
        return Geometry({k: v.copy() for k, v in self.attributes.items()}, index)

    def to_non_indexed(self) -> "Geometry":
        """
        One vertex per triangle corner, so per-vertex data can be
        assigned without touching shared vertices.
        """
        if self.index is None:
            return self.clone()
        return Geometry({k: v[self.index].copy() for k, v in self.attributes.items()})

    # -------------------------------------------------
    # Transforms
    # -------------------------------------------------

    def apply_matrix(self, m: np.ndarray) -> "Geometry":
        m = np.asarray(m, dtype=np.float64)
        if "position" in self.attributes:
            pos = self.attributes["position"].astype(np.float64)
            pos = pos @ m[:3, :3].T + m[:3, 3]
            self.attributes["position"] = pos.astype(np.float32)

        if "normal" in self.attributes:
            normal_matrix = np.linalg.inv(m[:3, :3]).T
            nrm = self.attributes["normal"].astype(np.float64) @ normal_matrix.T
            lengths = np.linalg.norm(nrm, axis=1, keepdims=True)
            lengths[lengths == 0.0] = 1.0
            self.attributes["normal"] = (nrm / lengths).astype(np.float32)
        return self

    def rotate_x(self, angle: float) -> "Geometry":
        return self.apply_matrix(quat_to_mat4(quat_from_axis_angle((1.0, 0.0, 0.0), angle)))

    def rotate_y(self, angle: float) -> "Geometry":
        return self.apply_matrix(quat_to_mat4(quat_from_axis_angle((0.0, 1.0, 0.0), angle)))

    def rotate_z(self, angle: float) -> "Geometry":
        return self.apply_matrix(quat_to_mat4(quat_from_axis_angle((0.0, 0.0, 1.0), angle)))

    def scale(self, x: float, y: float, z: float) -> "Geometry":
        return self.apply_matrix(np.diag([x, y, z, 1.0]))

    def translate(self, x: float, y: float, z: float) -> "Geometry":
        m = np.eye(4)
        m[:3, 3] = (x, y, z)
        return self.apply_matrix(m)

    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        pos = self.attributes["position"]
        return pos.min(axis=0), pos.max(axis=0)


# ------------------------------------------------------------
# Merging
# ------------------------------------------------------------

def merge_geometries(parts: list[Geometry]) -> Geometry:
    """
    Concatenate non-indexed parts, in order, into one skinned geometry.

    Parts without skin weights bind every vertex fully to influence slot 0.
    Raises GeometryError when a part lacks position, normal or uv.
    """
    for n, part in enumerate(parts):
        missing = [a for a in REQUIRED_ATTRIBUTES if not part.has_attribute(a)]
        if missing:
            raise GeometryError(f"Part {n} is missing required attributes: {', '.join(missing)}")
        if part.index is not None:
            raise GeometryError(f"Part {n} is indexed, convert with to_non_indexed() first")

    vertex_count = sum(p.vertex_count for p in parts)

    position = np.zeros((vertex_count, 3), dtype=np.float32)
    normal = np.zeros((vertex_count, 3), dtype=np.float32)
    uv = np.zeros((vertex_count, 2), dtype=np.float32)
    skin_index = np.zeros((vertex_count, 4), dtype=np.uint16)
    skin_weight = np.zeros((vertex_count, 4), dtype=np.float32)

    offset = 0
    for part in parts:
        count = part.vertex_count
        rows = slice(offset, offset + count)

        position[rows] = part.attributes["position"]
        normal[rows] = part.attributes["normal"]
        uv[rows] = part.attributes["uv"]

        if part.has_attribute("skinIndex"):
            skin_index[rows] = part.attributes["skinIndex"]
        if part.has_attribute("skinWeight"):
            skin_weight[rows] = part.attributes["skinWeight"]
        else:
            skin_weight[rows, 0] = 1.0

        offset += count

    return Geometry(
        {
            "position": position,
            "normal": normal,
            "uv": uv,
            "skinIndex": skin_index,
            "skinWeight": skin_weight,
        }
    )


class SkinnedMesh:
    """
    Merged geometry bound to a skeleton, plus its material.
    """

    def __init__(self, geometry: Geometry, skeleton, material=None, name: str = "Humanoid_Mesh"):
        for attr in REQUIRED_ATTRIBUTES + ("skinIndex", "skinWeight"):
            if not geometry.has_attribute(attr):
                raise GeometryError(f"Skinned mesh geometry is missing {attr}")

        indices = geometry.attributes["skinIndex"]
        if indices.size and int(indices.max()) >= skeleton.count:
            raise GeometryError(
                f"Skin index {int(indices.max())} out of range for {skeleton.count} bones"
            )

        self.geometry = geometry
        self.skeleton = skeleton
        self.material = material
        self.name = name

    @property
    def vertex_count(self) -> int:
        return self.geometry.vertex_count

    @property
    def positions(self) -> np.ndarray:
        return self.geometry.attributes["position"]

    @property
    def normals(self) -> np.ndarray:
        return self.geometry.attributes["normal"]

    @property
    def uvs(self) -> np.ndarray:
        return self.geometry.attributes["uv"]

    @property
    def bone_ids(self) -> np.ndarray:
        return self.geometry.attributes["skinIndex"]

    @property
    def bone_weights(self) -> np.ndarray:
        return self.geometry.attributes["skinWeight"]

    def height(self) -> float:
        lo, hi = self.geometry.bounds()
        return float(hi[1] - lo[1])
