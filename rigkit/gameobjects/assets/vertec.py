import numpy as np

from rigkit.gameobjects.mesh import Geometry

# Indexed primitive generators.
# Every primitive is centered on the origin, Y up.


def generate_sphere(radius=0.5, width_segments=32, height_segments=16) -> Geometry:
    """
    Latitude/longitude sphere. Pole rows are kept as separate vertices
    (one per longitude) so UVs stay continuous.
    """
    positions = []
    normals = []
    uvs = []

    for iy in range(height_segments + 1):
        v = iy / height_segments
        phi = np.pi * v
        for ix in range(width_segments + 1):
            u = ix / width_segments
            theta = 2 * np.pi * u

            n = np.array([
                -np.cos(theta) * np.sin(phi),
                np.cos(phi),
                np.sin(theta) * np.sin(phi),
            ])
            positions.append(n * radius)
            normals.append(n)
            uvs.append((u, 1.0 - v))

    row = width_segments + 1
    indices = []
    for iy in range(height_segments):
        for ix in range(width_segments):
            a = iy * row + ix + 1
            b = iy * row + ix
            c = (iy + 1) * row + ix
            d = (iy + 1) * row + ix + 1

            # no degenerate triangles at the poles
            if iy != 0:
                indices.extend([a, b, d])
            if iy != height_segments - 1:
                indices.extend([b, c, d])

    return Geometry(
        {"position": positions, "normal": normals, "uv": uvs},
        index=np.array(indices, dtype=np.uint32),
    )


def generate_cylinder(radius_top=0.5, radius_bottom=0.5, height=1.0, radial_segments=32) -> Geometry:
    """
    Capped (possibly tapered) cylinder from y=-height/2 to y=+height/2.
    """
    positions = []
    normals = []
    uvs = []
    indices = []

    half = height / 2.0
    slope = (radius_bottom - radius_top) / height if height else 0.0

    # ---------- side ----------
    for iy, (y, r) in enumerate(((half, radius_top), (-half, radius_bottom))):
        for ix in range(radial_segments + 1):
            u = ix / radial_segments
            theta = 2 * np.pi * u
            s, c = np.sin(theta), np.cos(theta)

            positions.append((r * s, y, r * c))
            n = np.array([s, slope, c])
            normals.append(n / np.linalg.norm(n))
            uvs.append((u, 1.0 - iy))

    row = radial_segments + 1
    for ix in range(radial_segments):
        a = ix
        b = row + ix
        c = row + ix + 1
        d = ix + 1
        indices.extend([a, b, d, b, c, d])

    # ---------- caps ----------
    for y, r, sign in ((half, radius_top, 1.0), (-half, radius_bottom, -1.0)):
        if r <= 0.0:
            continue
        center = len(positions)
        positions.append((0.0, y, 0.0))
        normals.append((0.0, sign, 0.0))
        uvs.append((0.5, 0.5))

        for ix in range(radial_segments + 1):
            theta = 2 * np.pi * ix / radial_segments
            s, c = np.sin(theta), np.cos(theta)
            positions.append((r * s, y, r * c))
            normals.append((0.0, sign, 0.0))
            uvs.append((c * 0.5 + 0.5, s * 0.5 * sign + 0.5))

        for ix in range(radial_segments):
            i0 = center + 1 + ix
            i1 = center + 2 + ix
            if sign > 0:
                indices.extend([i0, i1, center])
            else:
                indices.extend([i1, i0, center])

    return Geometry(
        {"position": positions, "normal": normals, "uv": uvs},
        index=np.array(indices, dtype=np.uint32),
    )


# face normal, u axis, v axis
_BOX_FACES = (
    ((1, 0, 0), (0, 0, -1), (0, 1, 0)),
    ((-1, 0, 0), (0, 0, 1), (0, 1, 0)),
    ((0, 1, 0), (1, 0, 0), (0, 0, -1)),
    ((0, -1, 0), (1, 0, 0), (0, 0, 1)),
    ((0, 0, 1), (1, 0, 0), (0, 1, 0)),
    ((0, 0, -1), (-1, 0, 0), (0, 1, 0)),
)


def generate_box(width=1.0, height=1.0, depth=1.0) -> Geometry:
    positions = []
    normals = []
    uvs = []
    indices = []

    half = np.array([width, height, depth]) / 2.0
    for normal, u_axis, v_axis in _BOX_FACES:
        n = np.array(normal, dtype=np.float64)
        u_vec = np.array(u_axis, dtype=np.float64)
        v_vec = np.array(v_axis, dtype=np.float64)

        base = len(positions)
        for su, sv in ((-1, -1), (1, -1), (1, 1), (-1, 1)):
            p = (n + su * u_vec + sv * v_vec) * half
            positions.append(p)
            normals.append(n)
            uvs.append(((su + 1) / 2, (sv + 1) / 2))

        indices.extend([base, base + 1, base + 2, base, base + 2, base + 3])

    return Geometry(
        {"position": positions, "normal": normals, "uv": uvs},
        index=np.array(indices, dtype=np.uint32),
    )
