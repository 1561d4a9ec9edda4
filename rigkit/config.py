from dataclasses import dataclass

# ------------------------------------------------------------
# Procedural mannequin
# ------------------------------------------------------------

DEFAULT_HEIGHT = 1.75
DEFAULT_ARM_SPAN = 1.6

# planar UVs never sample exactly on the texture border
UV_INSET = (0.001, 0.999)

# portrait pixels brighter than this on R, G and B become transparent
BACKGROUND_KEY_THRESHOLD = 240

# largest edge of a texture handed to the viewer
TEXTURE_MAX_SIZE = 1024

# ------------------------------------------------------------
# Retargeting
# ------------------------------------------------------------

# Approximation: a hip Y above 50 on a target shorter than 10 units is
# taken to be centimeters authored against a meter-scaled skeleton.
CENTIMETER_DISPLACEMENT_THRESHOLD = 50.0
CENTIMETER_TARGET_HEIGHT_CEILING = 10.0
CENTIMETER_TO_METER = 0.01

# animation-rig namespaces stripped from source track names
VENDOR_PREFIXES = (
    r"mixamorig\d*:",
    r"armature[|/]",
)

# radians added to the upper arms to force an A-pose rig into T-pose
T_POSE_ARM_ROLL = 0.87


@dataclass
class BodyModifiers:
    """Per-role scale factors applied on top of a pose."""

    height: float = 1.0
    width: float = 1.0
    head_size: float = 1.0
    arm_thickness: float = 1.0
    leg_thickness: float = 1.0
    chest_size: float = 1.0
