import numpy as np

from rigkit.assets.animations.clip import AnimationClip
from rigkit.assets.animations.roles import Role, RoleClassifier, DEFAULT_CLASSIFIER
from rigkit.config import BodyModifiers, T_POSE_ARM_ROLL
from rigkit.gameobjects.animation.animation_utils import (
    build_local_matrix,
    mat4_scale,
    quat_from_axis_angle,
    quat_multiply,
    quat_normalize,
    sample_quaternion,
    sample_vector,
)


def _frozen(values, width: int) -> np.ndarray:
    arr = np.array(values, dtype=np.float64).reshape(width)
    arr.setflags(write=False)
    return arr


class Bone:
    """
    One joint of a skeleton: identity plus bind-pose local transform.
    The parent is referenced by name and resolved by the owning Skeleton.
    """

    __slots__ = ("name", "parent", "translation", "rotation", "scale")

    def __init__(self, name: str, parent: str | None = None, translation=(0.0, 0.0, 0.0),
                 rotation=(0.0, 0.0, 0.0, 1.0), scale=(1.0, 1.0, 1.0)):
        self.name = name
        self.parent = parent
        self.translation = _frozen(translation, 3)
        self.rotation = _frozen(quat_normalize(np.asarray(rotation, dtype=np.float64)), 4)
        self.scale = _frozen(scale, 3)

    def local_matrix(self) -> np.ndarray:
        return build_local_matrix(self.translation, self.rotation, self.scale)

    def __repr__(self):
        return f"Bone({self.name!r}, parent={self.parent!r})"


class Skeleton:
    """
    Immutable bone hierarchy.

    Bone order is the index space used by skin indices. Parents may appear
    after their children; `order` lists indices parents-first.
    """

    def __init__(self, bones: list[Bone], classifier: RoleClassifier | None = None,
                 root_transform=None, inverse_bind=None):
        """
        :param root_transform: 4x4 model transform above the root bone
               (e.g. an armature node scaling centimeters to meters)
        :param inverse_bind: per-bone 4x4 inverse bind matrices; computed
               from the bind pose when omitted
        """
        if not bones:
            raise ValueError("Skeleton needs at least one bone")

        self.bones: tuple[Bone, ...] = tuple(bones)
        self.names: tuple[str, ...] = tuple(b.name for b in self.bones)
        self.count = len(self.bones)

        self._index = {}
        for i, name in enumerate(self.names):
            if name in self._index:
                raise ValueError(f"Duplicate bone name: {name}")
            self._index[name] = i

        parents = []
        for b in self.bones:
            if b.parent is None:
                parents.append(-1)
            elif b.parent not in self._index:
                raise ValueError(f"Bone {b.name} has unknown parent {b.parent}")
            else:
                parents.append(self._index[b.parent])
        self.parents: tuple[int, ...] = tuple(parents)

        roots = [i for i, p in enumerate(self.parents) if p < 0]
        if len(roots) != 1:
            raise ValueError(f"Skeleton must have exactly one root, found {len(roots)}")
        self.root = roots[0]

        self.order: tuple[int, ...] = self._traversal_order()

        if root_transform is None:
            root_transform = np.eye(4)
        self.root_transform = np.array(root_transform, dtype=np.float32).reshape(4, 4)
        self.root_transform.setflags(write=False)

        # bind pose matrices
        self.bind_local = [b.local_matrix() for b in self.bones]
        self.bind_world = [np.eye(4, dtype=np.float32) for _ in range(self.count)]
        for i in self.order:
            p = self.parents[i]
            if p >= 0:
                self.bind_world[i] = self.bind_world[p] @ self.bind_local[i]
            else:
                self.bind_world[i] = self.root_transform @ self.bind_local[i]

        if inverse_bind is None:
            self.inverse_bind = [np.linalg.inv(m).astype(np.float32) for m in self.bind_world]
        else:
            if len(inverse_bind) != self.count:
                raise ValueError(f"Expected {self.count} inverse bind matrices, got {len(inverse_bind)}")
            self.inverse_bind = [np.asarray(m, dtype=np.float32).reshape(4, 4) for m in inverse_bind]

        self._classifier = classifier or DEFAULT_CLASSIFIER
        self._roles = self._classifier.role_map(self.names)

    def _traversal_order(self) -> tuple[int, ...]:
        children: dict[int, list[int]] = {i: [] for i in range(self.count)}
        for i, p in enumerate(self.parents):
            if p >= 0:
                children[p].append(i)

        order = []
        stack = [self.root]
        while stack:
            i = stack.pop()
            order.append(i)
            stack.extend(reversed(children[i]))

        if len(order) != self.count:
            raise ValueError("Skeleton bone graph is not a tree (cycle or detached bones)")
        return tuple(order)

    # -------------------------------------------------
    # Lookup
    # -------------------------------------------------

    def __len__(self):
        return self.count

    def __contains__(self, name: str) -> bool:
        return name in self._index

    def index_of(self, name: str) -> int:
        return self._index[name]

    def bone(self, name: str) -> Bone:
        return self.bones[self._index[name]]

    def bone_for_role(self, role: Role) -> str | None:
        """
        First bone (skeleton order) classified with the role.
        """
        return self._roles.get(role)

    def role_map(self) -> dict[Role, str]:
        return dict(self._roles)

    def children_of(self, name: str) -> list[str]:
        i = self._index[name]
        return [self.names[c] for c, p in enumerate(self.parents) if p == i]

    def world_position(self, name: str) -> np.ndarray:
        return self.bind_world[self._index[name]][:3, 3].astype(np.float64)


class Pose:
    """
    Mutable per-frame joint state for an immutable Skeleton.
    local TRS -> world -> final = world * inverse_bind
    """

    def __init__(self, skeleton: Skeleton):
        self.skeleton = skeleton
        count = skeleton.count

        self.translation = np.zeros((count, 3), dtype=np.float64)
        self.rotation = np.zeros((count, 4), dtype=np.float64)
        self.scale = np.ones((count, 3), dtype=np.float64)
        # whole-body scale about the model origin (ground level)
        self.model_scale = np.ones(3, dtype=np.float64)
        self.reset_pose()

        self.world = [np.eye(4, dtype=np.float32) for _ in range(count)]
        self.final = [np.eye(4, dtype=np.float32) for _ in range(count)]

        # flat buffer for GPU upload (updated each frame)
        self.final_flat = np.ascontiguousarray(np.zeros((count, 4, 4), dtype=np.float32))

    def reset_pose(self):
        """
        Back to the bind pose. Call before applying a new frame.
        """
        for i, b in enumerate(self.skeleton.bones):
            self.translation[i] = b.translation
            self.rotation[i] = b.rotation
            self.scale[i] = b.scale
        self.model_scale[:] = 1.0

    # -------------------------------------------------
    # Animation
    # -------------------------------------------------

    def sample(self, clip: AnimationClip, time: float):
        """
        Write the clip's values at `time` into the pose.
        Tracks targeting bones this skeleton lacks are ignored.
        """
        for track in clip.tracks:
            if track.node not in self.skeleton or len(track.times) == 0:
                continue
            i = self.skeleton.index_of(track.node)

            if track.property == "rotation":
                self.rotation[i] = sample_quaternion(track.times, track.values, time)
            elif track.property == "position":
                self.translation[i] = sample_vector(track.times, track.values, time)
            else:
                self.scale[i] = sample_vector(track.times, track.values, time)

    def apply_t_pose(self, roll: float = T_POSE_ARM_ROLL):
        """
        Raise the upper arms of an A-pose rig into a T-pose.
        """
        for role, sign in ((Role.LEFT_ARM, 1.0), (Role.RIGHT_ARM, -1.0)):
            name = self.skeleton.bone_for_role(role)
            if name is None:
                continue
            i = self.skeleton.index_of(name)
            delta = quat_from_axis_angle((0.0, 0.0, 1.0), sign * roll)
            self.rotation[i] = quat_multiply(self.rotation[i], delta)

    def apply_modifiers(self, modifiers: BodyModifiers):
        """
        Scale body regions by role. Overall width / height scale the whole
        model about its origin so the feet stay on the ground.
        """
        radial = {
            Role.LEFT_ARM: modifiers.arm_thickness,
            Role.RIGHT_ARM: modifiers.arm_thickness,
            Role.LEFT_FOREARM: modifiers.arm_thickness,
            Role.RIGHT_FOREARM: modifiers.arm_thickness,
            Role.LEFT_UPLEG: modifiers.leg_thickness,
            Role.RIGHT_UPLEG: modifiers.leg_thickness,
            Role.LEFT_LEG: modifiers.leg_thickness,
            Role.RIGHT_LEG: modifiers.leg_thickness,
            Role.SPINE: modifiers.chest_size,
            Role.SPINE1: modifiers.chest_size,
            Role.SPINE2: modifiers.chest_size,
        }
        for role, factor in radial.items():
            name = self.skeleton.bone_for_role(role)
            if name is not None:
                self.scale[self.skeleton.index_of(name)] = (factor, 1.0, factor)

        head = self.skeleton.bone_for_role(Role.HEAD)
        if head is not None:
            self.scale[self.skeleton.index_of(head)] = modifiers.head_size

        self.model_scale[:] = (modifiers.width, modifiers.height, modifiers.width)

    # -------------------------------------------------
    # Matrices
    # -------------------------------------------------

    def local_matrix(self, i: int) -> np.ndarray:
        return build_local_matrix(self.translation[i], self.rotation[i], self.scale[i])

    def update(self):
        """
        Build world and final (skinning) matrices.
        """
        skel = self.skeleton
        for i in skel.order:
            local = self.local_matrix(i)
            p = skel.parents[i]
            if p >= 0:
                self.world[i] = self.world[p] @ local
            else:
                self.world[i] = mat4_scale(self.model_scale) @ skel.root_transform @ local

            self.final[i] = self.world[i] @ skel.inverse_bind[i]
            # transpose for column-major consumers
            self.final_flat[i][:] = self.final[i].T

        return self.final
