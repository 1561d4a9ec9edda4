from rigkit.assets.animations.skeleton import Bone, Skeleton
from rigkit.config import DEFAULT_ARM_SPAN, DEFAULT_HEIGHT

BONES = {
    "ROOT": "Hips", "SPINE": "Spine", "CHEST": "Spine1", "UPPER_CHEST": "Spine2",
    "NECK": "Neck", "HEAD": "Head",
    "L_SHOULDER": "LeftShoulder", "L_ARM": "LeftArm", "L_FOREARM": "LeftForeArm", "L_HAND": "LeftHand",
    "R_SHOULDER": "RightShoulder", "R_ARM": "RightArm", "R_FOREARM": "RightForeArm", "R_HAND": "RightHand",
    "L_UPLEG": "LeftUpLeg", "L_LEG": "LeftLeg", "L_FOOT": "LeftFoot",
    "R_UPLEG": "RightUpLeg", "R_LEG": "RightLeg", "R_FOOT": "RightFoot",
}

# -------- joint heights, fraction of total height --------
HIPS_Y = 0.543
SPINE_Y = 0.657
CHEST_Y = 0.771
UPPER_CHEST_Y = 0.817
NECK_Y = 0.857
HEAD_Y = 0.943
SHOULDER_Y = 0.789
THIGH_LENGTH = 0.24
SHIN_LENGTH = 0.24
HIP_HALF_WIDTH = 0.057

# -------- arm chain, fraction of arm span --------
SHOULDER_X = 0.1125
UPPER_ARM_LENGTH = 0.075
FOREARM_LENGTH = 0.175
HAND_OFFSET = 0.156


def joint_heights(height: float = DEFAULT_HEIGHT) -> dict[str, float]:
    """
    World-space Y of the torso joints for a given height.
    """
    return {
        "hips": HIPS_Y * height,
        "spine": SPINE_Y * height,
        "chest": CHEST_Y * height,
        "upper_chest": UPPER_CHEST_Y * height,
        "neck": NECK_Y * height,
        "head": HEAD_Y * height,
        "shoulder": SHOULDER_Y * height,
    }


def build_skeleton(height: float = DEFAULT_HEIGHT, arm_span: float = DEFAULT_ARM_SPAN) -> Skeleton:
    """
    Canonical 20-bone humanoid in T-pose, feet on y=0, facing +Z.

    Hips -> Spine -> Spine1 -> Spine2 -> Neck -> Head
    Spine1 -> {Left,Right}Shoulder -> Arm -> ForeArm -> Hand
    Hips -> {Left,Right}UpLeg -> Leg -> Foot
    """
    y = joint_heights(height)
    bones = [
        Bone(BONES["ROOT"], None, (0.0, y["hips"], 0.0)),
        Bone(BONES["SPINE"], BONES["ROOT"], (0.0, y["spine"] - y["hips"], 0.0)),
        Bone(BONES["CHEST"], BONES["SPINE"], (0.0, y["chest"] - y["spine"], 0.0)),
        Bone(BONES["UPPER_CHEST"], BONES["CHEST"], (0.0, y["upper_chest"] - y["chest"], 0.0)),
        Bone(BONES["NECK"], BONES["UPPER_CHEST"], (0.0, y["neck"] - y["upper_chest"], 0.0)),
        Bone(BONES["HEAD"], BONES["NECK"], (0.0, y["head"] - y["neck"], 0.0)),
    ]

    for side, s in (("L", 1.0), ("R", -1.0)):
        bones.extend([
            Bone(BONES[f"{side}_SHOULDER"], BONES["CHEST"],
                 (s * SHOULDER_X * arm_span, y["shoulder"] - y["chest"], 0.0)),
            Bone(BONES[f"{side}_ARM"], BONES[f"{side}_SHOULDER"], (s * UPPER_ARM_LENGTH * arm_span, 0.0, 0.0)),
            Bone(BONES[f"{side}_FOREARM"], BONES[f"{side}_ARM"], (s * FOREARM_LENGTH * arm_span, 0.0, 0.0)),
            Bone(BONES[f"{side}_HAND"], BONES[f"{side}_FOREARM"], (s * HAND_OFFSET * arm_span, 0.0, 0.0)),
        ])

    for side, s in (("L", 1.0), ("R", -1.0)):
        bones.extend([
            Bone(BONES[f"{side}_UPLEG"], BONES["ROOT"], (s * HIP_HALF_WIDTH * height, 0.0, 0.0)),
            Bone(BONES[f"{side}_LEG"], BONES[f"{side}_UPLEG"], (0.0, -THIGH_LENGTH * height, 0.0)),
            Bone(BONES[f"{side}_FOOT"], BONES[f"{side}_LEG"], (0.0, -SHIN_LENGTH * height, 0.0)),
        ])

    return Skeleton(bones)
