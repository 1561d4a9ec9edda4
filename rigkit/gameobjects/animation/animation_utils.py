import numpy as np
import math

# ------------------------------------------------------------
# Basic interpolation
# ------------------------------------------------------------

def lerp(v0: np.ndarray, v1: np.ndarray, t: float) -> np.ndarray:
    """
    Linear interpolation between vectors.
    """
    return v0 * (1.0 - t) + v1 * t


# ------------------------------------------------------------
# Quaternion helpers (glTF order: x, y, z, w)
# ------------------------------------------------------------

def quat_normalize(q: np.ndarray) -> np.ndarray:
    """
    Normalize quaternion.
    """
    n = np.linalg.norm(q)
    if n == 0.0:
        return q
    return q / n


def quat_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Hamilton product a * b (applies b first, then a).
    """
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return np.array(
        [
            aw * bx + ax * bw + ay * bz - az * by,
            aw * by - ax * bz + ay * bw + az * bx,
            aw * bz + ax * by - ay * bx + az * bw,
            aw * bw - ax * bx - ay * by - az * bz,
        ],
        dtype=np.float64,
    )


def quat_invert(q: np.ndarray) -> np.ndarray:
    """
    Inverse of a unit quaternion (its conjugate).
    """
    q = quat_normalize(np.asarray(q, dtype=np.float64))
    return np.array([-q[0], -q[1], -q[2], q[3]], dtype=np.float64)


def quat_from_axis_angle(axis, angle: float) -> np.ndarray:
    axis = quat_normalize(np.asarray(axis, dtype=np.float64))
    half = angle * 0.5
    s = math.sin(half)
    return np.array([axis[0] * s, axis[1] * s, axis[2] * s, math.cos(half)], dtype=np.float64)


def quat_slerp(q0: np.ndarray, q1: np.ndarray, t: float) -> np.ndarray:
    """
    Spherical linear interpolation between two quaternions.
    """
    q0 = quat_normalize(q0)
    q1 = quat_normalize(q1)

    dot = np.dot(q0, q1)

    # Ensure shortest path
    if dot < 0.0:
        q1 = -q1
        dot = -dot

    DOT_THRESHOLD = 0.9995
    if dot > DOT_THRESHOLD:
        # Fallback to lerp for very small angles
        return quat_normalize(lerp(q0, q1, t))

    theta_0 = math.acos(dot)
    theta = theta_0 * t

    sin_theta = math.sin(theta)
    sin_theta_0 = math.sin(theta_0)

    s0 = math.cos(theta) - dot * sin_theta / sin_theta_0
    s1 = sin_theta / sin_theta_0

    return s0 * q0 + s1 * q1


# ------------------------------------------------------------
# Matrix construction
# ------------------------------------------------------------

def mat4_translate(v: np.ndarray) -> np.ndarray:
    """
    Build translation matrix from vec3.
    """
    m = np.eye(4, dtype=np.float32)
    m[0:3, 3] = v[0:3]
    return m


def mat4_scale(v: np.ndarray) -> np.ndarray:
    """
    Build scale matrix from vec3.
    """
    m = np.eye(4, dtype=np.float32)
    m[0, 0] = v[0]
    m[1, 1] = v[1]
    m[2, 2] = v[2]
    return m


def quat_to_mat4(q: np.ndarray) -> np.ndarray:
    """
    Convert quaternion (x, y, z, w) to 4x4 rotation matrix.
    """
    x, y, z, w = q
    xx, yy, zz = x * x, y * y, z * z
    xy, xz, yz = x * y, x * z, y * z
    wx, wy, wz = w * x, w * y, w * z

    m = np.eye(4, dtype=np.float32)

    m[0, 0] = 1.0 - 2.0 * (yy + zz)
    m[0, 1] = 2.0 * (xy - wz)
    m[0, 2] = 2.0 * (xz + wy)

    m[1, 0] = 2.0 * (xy + wz)
    m[1, 1] = 1.0 - 2.0 * (xx + zz)
    m[1, 2] = 2.0 * (yz - wx)

    m[2, 0] = 2.0 * (xz - wy)
    m[2, 1] = 2.0 * (yz + wx)
    m[2, 2] = 1.0 - 2.0 * (xx + yy)

    return m


def quat_from_mat4(m: np.ndarray) -> np.ndarray:
    """
    Rotation part of a (scale-free) 4x4 matrix as quaternion (x, y, z, w).
    """
    m = np.asarray(m, dtype=np.float64)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0.0:
        s = math.sqrt(trace + 1.0) * 2.0
        q = [(m[2, 1] - m[1, 2]) / s, (m[0, 2] - m[2, 0]) / s, (m[1, 0] - m[0, 1]) / s, 0.25 * s]
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = math.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2.0
        q = [0.25 * s, (m[0, 1] + m[1, 0]) / s, (m[0, 2] + m[2, 0]) / s, (m[2, 1] - m[1, 2]) / s]
    elif m[1, 1] > m[2, 2]:
        s = math.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2.0
        q = [(m[0, 1] + m[1, 0]) / s, 0.25 * s, (m[1, 2] + m[2, 1]) / s, (m[0, 2] - m[2, 0]) / s]
    else:
        s = math.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2.0
        q = [(m[0, 2] + m[2, 0]) / s, (m[1, 2] + m[2, 1]) / s, 0.25 * s, (m[1, 0] - m[0, 1]) / s]
    return quat_normalize(np.array(q, dtype=np.float64))


def decompose_matrix(m: np.ndarray):
    """
    Split a T * R * S matrix back into (translation, rotation, scale).
    """
    m = np.asarray(m, dtype=np.float64)
    translation = m[:3, 3].copy()
    scale = np.linalg.norm(m[:3, :3], axis=0)

    rot = np.eye(4)
    rot[:3, :3] = m[:3, :3] / np.where(scale == 0.0, 1.0, scale)
    return translation, quat_from_mat4(rot), scale


def build_local_matrix(
    translation: np.ndarray,
    rotation: np.ndarray,
    scale: np.ndarray,
) -> np.ndarray:
    """
    Build local bone matrix from TRS (glTF order).
    M_local = T * R * S
    """
    return (
        mat4_translate(translation)
        @ quat_to_mat4(rotation)
        @ mat4_scale(scale)
    )


# ------------------------------------------------------------
# Keyframe sampling
# ------------------------------------------------------------

def _bracket(times: np.ndarray, t: float) -> tuple[int, int, float]:
    """
    Keyframe indices around t and the blend factor between them.
    Times outside the track clamp to the first / last key.
    """
    if t <= times[0]:
        return 0, 0, 0.0
    if t >= times[-1]:
        last = len(times) - 1
        return last, last, 0.0

    i1 = int(np.searchsorted(times, t, side="right"))
    i0 = i1 - 1
    span = times[i1] - times[i0]
    alpha = float((t - times[i0]) / span) if span > 0.0 else 0.0
    return i0, i1, alpha


def sample_vector(times: np.ndarray, values: np.ndarray, t: float) -> np.ndarray:
    i0, i1, alpha = _bracket(times, t)
    return lerp(values[i0].astype(np.float64), values[i1].astype(np.float64), alpha)


def sample_quaternion(times: np.ndarray, values: np.ndarray, t: float) -> np.ndarray:
    i0, i1, alpha = _bracket(times, t)
    if i0 == i1:
        return quat_normalize(values[i0].astype(np.float64))
    return quat_slerp(values[i0].astype(np.float64), values[i1].astype(np.float64), alpha)
