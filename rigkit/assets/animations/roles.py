import re
from enum import Enum


class Role(Enum):
    """
    Canonical anatomical joint roles.
    The common vocabulary between differently named skeletons.
    """

    HIPS = "Hips"
    SPINE = "Spine"
    SPINE1 = "Spine1"
    SPINE2 = "Spine2"
    NECK = "Neck"
    HEAD = "Head"

    LEFT_SHOULDER = "LeftShoulder"
    LEFT_ARM = "LeftArm"
    LEFT_FOREARM = "LeftForeArm"
    LEFT_HAND = "LeftHand"

    RIGHT_SHOULDER = "RightShoulder"
    RIGHT_ARM = "RightArm"
    RIGHT_FOREARM = "RightForeArm"
    RIGHT_HAND = "RightHand"

    LEFT_UPLEG = "LeftUpLeg"
    LEFT_LEG = "LeftLeg"
    LEFT_FOOT = "LeftFoot"

    RIGHT_UPLEG = "RightUpLeg"
    RIGHT_LEG = "RightLeg"
    RIGHT_FOOT = "RightFoot"


# side markers: "Left...", "Bip001 L ...", "l_...", "..._l", "...L" in "upperarm.l"
_LEFT = r"(?:left|\bl\b|\bl_|_l\b)"
_RIGHT = r"(?:right|\br\b|\br_|_r\b)"


def _sided(side: str, *parts: str) -> list[str]:
    """
    Each part as "<side> ... part" and "part ... <side>".
    """
    patterns = []
    for part in parts:
        patterns.append(side + r".*" + part)
        patterns.append(part + r".*" + side)
    return patterns


def _limb_rules(side: str, prefix: str) -> list[tuple[Role, list[str]]]:
    return [
        (Role[prefix + "SHOULDER"], _sided(side, r"shoulder", r"clavicle", r"collar")),
        # forearm before arm: "LeftForeArm" also contains "arm"
        (Role[prefix + "FOREARM"], _sided(side, r"fore.?arm", r"lower.?arm", r"elbow")),
        (Role[prefix + "ARM"], _sided(side, r"upper.?arm", r"arm")),
        (Role[prefix + "HAND"], _sided(side, r"hand", r"wrist")),
        # upleg before leg: "LeftUpLeg" also contains "leg"
        (Role[prefix + "UPLEG"], _sided(side, r"up.?leg", r"thigh")),
        (Role[prefix + "LEG"], _sided(side, r"leg", r"shin", r"calf", r"knee")),
        (Role[prefix + "FOOT"], _sided(side, r"foot", r"ankle")),
    ]


# Ordered: the first role with a matching pattern wins, and within a role
# the first matching pattern wins. More specific roles come first.
ROLE_PATTERNS: list[tuple[Role, list[str]]] = [
    (Role.HIPS, [r"hips", r"pelvis", r"root", r"bip0*1.?pelvis"]),
    (Role.SPINE2, [r"spine.?2\b", r"spine.?03\b", r"upper.?chest", r"bip0*1.?spine2"]),
    (Role.SPINE1, [r"spine.?1\b", r"spine.?02\b", r"chest", r"bip0*1.?spine1"]),
    (Role.SPINE, [r"spine", r"spine.?01\b", r"bip0*1.?spine"]),
    (Role.NECK, [r"neck", r"bip0*1.?neck"]),
    (Role.HEAD, [r"head", r"bip0*1.?head"]),
    *_limb_rules(_LEFT, "LEFT_"),
    *_limb_rules(_RIGHT, "RIGHT_"),
]


class RoleClassifier:
    """
    Maps joint names to canonical roles using an ordered rule table.

    :param table: ordered (role, [regex, ...]) pairs; matched case-insensitively
    """

    def __init__(self, table: list[tuple[Role, list[str]]] | None = None):
        source = ROLE_PATTERNS if table is None else table
        self._rules = tuple(
            (role, tuple(re.compile(p, re.IGNORECASE) for p in patterns))
            for role, patterns in source
        )

    @property
    def roles(self) -> tuple[Role, ...]:
        return tuple(role for role, _ in self._rules)

    def classify(self, joint_name: str) -> Role | None:
        if not joint_name:
            return None
        for role, patterns in self._rules:
            for pattern in patterns:
                if pattern.search(joint_name):
                    return role
        return None

    def role_map(self, bone_names) -> dict[Role, str]:
        """
        Role -> first bone (in the given order) classified with that role.
        """
        mapping: dict[Role, str] = {}
        for name in bone_names:
            role = self.classify(name)
            if role is not None and role not in mapping:
                mapping[role] = name
        return mapping


DEFAULT_CLASSIFIER = RoleClassifier()


def identify_bone_role(joint_name: str) -> Role | None:
    return DEFAULT_CLASSIFIER.classify(joint_name)
