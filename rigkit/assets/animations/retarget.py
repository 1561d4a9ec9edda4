import logging
import re

import numpy as np

from rigkit.assets.animations.clip import AnimationClip, Track
from rigkit.assets.animations.roles import Role, RoleClassifier, DEFAULT_CLASSIFIER
from rigkit.config import (
    CENTIMETER_DISPLACEMENT_THRESHOLD,
    CENTIMETER_TARGET_HEIGHT_CEILING,
    CENTIMETER_TO_METER,
    VENDOR_PREFIXES,
)
from rigkit.gameobjects.animation.animation_utils import (
    quat_invert,
    quat_multiply,
    quat_normalize,
)

_log = logging.getLogger("rigkit.retarget")

_VENDOR_PREFIX_RE = re.compile("|".join(f"(?:{p})" for p in VENDOR_PREFIXES), re.IGNORECASE)


def strip_vendor_prefix(node_name: str) -> str:
    return _VENDOR_PREFIX_RE.sub("", node_name)


# ------------------------------------------------------------
# Root motion
# ------------------------------------------------------------

def normalize_hips_rotation(values: np.ndarray, bind_rotation) -> np.ndarray:
    """
    Re-express every key as (first key)^-1 * key, composed onto the
    target's own bind rotation: keeps the motion, not the source rest pose.
    """
    if len(values) == 0:
        return values.copy()

    bind = quat_normalize(np.asarray(bind_rotation, dtype=np.float64))
    inv_start = quat_invert(values[0].astype(np.float64))

    out = np.empty_like(values)
    for i, q in enumerate(values):
        delta = quat_multiply(inv_start, q.astype(np.float64))
        out[i] = quat_multiply(bind, delta)
    return out


def normalize_hips_position(values: np.ndarray, target_height: float) -> np.ndarray:
    """
    In-place motion: X/Z zeroed. Vertical values that look like centimeters
    on a meter-scaled target are converted (heuristic, see config).
    """
    out = values.copy()
    out[:, 0] = 0.0
    out[:, 2] = 0.0

    if target_height < CENTIMETER_TARGET_HEIGHT_CEILING:
        y = out[:, 1]
        large = np.abs(y) > CENTIMETER_DISPLACEMENT_THRESHOLD
        if np.any(large):
            _log.debug("[Retarget] hip Y looks like centimeters, rescaling %d keys", int(large.sum()))
            y[large] *= CENTIMETER_TO_METER
    return out


# ------------------------------------------------------------
# Track remapping
# ------------------------------------------------------------

def retarget_clip(
    source: AnimationClip,
    target_bone_names,
    target_height: float = 1.0,
    hips_bind_rotation=None,
    name: str | None = None,
    classifier: RoleClassifier | None = None,
) -> AnimationClip:
    """
    Rewrite `source` so its tracks drive the target skeleton's bones.

    :param source: clip authored against some other skeleton (never mutated)
    :param target_bone_names: target bone names in skeleton order
    :param target_height: measured height of the target model
    :param hips_bind_rotation: bind quaternion (xyzw) of the target hip bone
    :param name: output clip name, defaults to the source clip's name
    :return: a new clip; an unmodified clone when nothing matched
    """
    classifier = classifier or DEFAULT_CLASSIFIER
    target_bone_names = list(target_bone_names)
    out_name = name or source.name

    role_to_bone = classifier.role_map(target_bone_names)
    exact_names = {}
    for bone_name in target_bone_names:
        exact_names.setdefault(bone_name.lower(), bone_name)

    tracks: list[Track] = []
    dropped = 0

    for track in source.tracks:
        if track.property == "scale":
            dropped += 1
            continue

        clean_name = strip_vendor_prefix(track.node)
        track_role = classifier.classify(clean_name)

        if track_role is not None and track_role in role_to_bone:
            target = role_to_bone[track_role]
        else:
            target = exact_names.get(clean_name.lower())

        if target is None:
            dropped += 1
            continue

        is_hips = track_role == Role.HIPS or classifier.classify(target) == Role.HIPS

        if track.property == "position" and not is_hips:
            dropped += 1
            continue

        out = track.clone(node=target)

        if is_hips and track.property == "rotation" and hips_bind_rotation is not None:
            out.values = normalize_hips_rotation(out.values, hips_bind_rotation).astype(np.float32)

        if is_hips and track.property == "position":
            out.values = normalize_hips_position(out.values, target_height).astype(np.float32)

        tracks.append(out)

    if not tracks:
        _log.warning(
            "[Retarget] %s: no tracks matched the target skeleton, using fallback clone of %d tracks",
            out_name, len(source.tracks),
        )
        clip = source.clone(name=out_name)
        clip.retargeted = False
        return clip

    _log.info("[Retarget] %s: matched=%d dropped=%d", out_name, len(tracks), dropped)
    return AnimationClip(out_name, tracks, source.duration)


def retarget_to_skeleton(source: AnimationClip, skeleton, target_height: float = 1.0,
                         name: str | None = None) -> AnimationClip:
    """
    retarget_clip against a Skeleton, taking the hip bind rotation from it.
    """
    hips = skeleton.bone_for_role(Role.HIPS)
    hips_bind = skeleton.bone(hips).rotation if hips is not None else None
    return retarget_clip(source, skeleton.names, target_height, hips_bind, name=name)
