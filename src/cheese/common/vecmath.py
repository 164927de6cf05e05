"""
Small fixed-size vector and matrix algebra.

Vectors are numpy arrays of shape (2,) or (3,); every function works on the
last axis so stacks of vectors (N, 3) go through unchanged.

Matrices are row-major numpy arrays (apply as ``m @ v``). Graphics code
expecting column-major data should flatten with ``to_column_major``.
"""

import math
from dataclasses import dataclass
from typing import Union

import numpy as np

ArrayLike = Union[np.ndarray, list, tuple]

# Guard for the isolevel crossing; matches the marching cubes reference.
LERP_EPS = 1e-5


def deg2rad(v: float) -> float:
    return v * (math.pi / 180.0)


def rad2deg(v: float) -> float:
    return v * (180.0 / math.pi)


def dot(a: ArrayLike, b: ArrayLike) -> np.ndarray:
    """Dot product along the last axis."""
    return np.sum(np.asarray(a, dtype=float) * np.asarray(b, dtype=float), axis=-1)


def cross(a: ArrayLike, b: ArrayLike) -> np.ndarray:
    return np.cross(np.asarray(a, dtype=float), np.asarray(b, dtype=float))


def length(v: ArrayLike) -> np.ndarray:
    return np.linalg.norm(np.asarray(v, dtype=float), axis=-1)


def normalised(v: ArrayLike) -> np.ndarray:
    """
    Unit vector(s) in the direction of v.

    Zero-length input maps to the zero vector instead of NaN.
    """
    v = np.asarray(v, dtype=float)
    norms = np.linalg.norm(v, axis=-1, keepdims=True)
    safe = np.where(norms > 0, norms, 1.0)
    return np.where(norms > 0, v / safe, 0.0)


def lerp(p1: ArrayLike, p2: ArrayLike, t) -> np.ndarray:
    """Point at parameter t on p1..p2 (t may broadcast over a stack)."""
    p1 = np.asarray(p1, dtype=float)
    p2 = np.asarray(p2, dtype=float)
    return p1 + (p2 - p1) * t


def lerp_isolevel(isolevel: float, p1: ArrayLike, p2: ArrayLike, v1: float, v2: float) -> np.ndarray:
    """
    Linearly interpolate where an isosurface cuts the edge p1..p2.

    The endpoint values v1 and v2 sit at p1 and p2. Endpoints lying on the
    isolevel short-circuit to that endpoint, and an edge with equal values
    returns p1, so no division by (near) zero ever happens.
    """
    p1 = np.asarray(p1, dtype=float)
    p2 = np.asarray(p2, dtype=float)
    if abs(isolevel - v1) < LERP_EPS:
        return p1.copy()
    if abs(isolevel - v2) < LERP_EPS:
        return p2.copy()
    if abs(v1 - v2) < LERP_EPS:
        return p1.copy()
    t = (isolevel - v1) / (v2 - v1)
    return p1 + (p2 - p1) * t


def lerp_isolevel_many(
    isolevel: float,
    p1: np.ndarray,
    p2: np.ndarray,
    v1: np.ndarray,
    v2: np.ndarray
) -> np.ndarray:
    """
    Vectorised ``lerp_isolevel`` over N edges.

    Args:
        p1, p2: (N, 3) endpoint positions
        v1, v2: (N,) endpoint values

    Returns:
        (N, 3) crossing points, same guard order as the scalar version
    """
    v1 = np.asarray(v1, dtype=float)
    v2 = np.asarray(v2, dtype=float)
    denom = v2 - v1
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.where(np.abs(denom) < LERP_EPS, 0.0, (isolevel - v1) / np.where(denom == 0, 1.0, denom))
    # Later assignments lose to earlier guards, so apply them in reverse
    t = np.where(np.abs(v1 - v2) < LERP_EPS, 0.0, t)
    t = np.where(np.abs(isolevel - v2) < LERP_EPS, 1.0, t)
    t = np.where(np.abs(isolevel - v1) < LERP_EPS, 0.0, t)
    return p1 + (p2 - p1) * t[:, None]


# ------------------------------------------------------------------ matrices

def mat3_apply(m: ArrayLike, v: ArrayLike) -> np.ndarray:
    """Multiply a 3x3 matrix by a vector or a stack of row vectors."""
    m = np.asarray(m, dtype=float)
    v = np.asarray(v, dtype=float)
    return v @ m.T


def identity() -> np.ndarray:
    return np.eye(4)


def translate(m: ArrayLike, v: ArrayLike) -> np.ndarray:
    """Return m composed with a translation by v (m @ T)."""
    t = np.eye(4)
    t[:3, 3] = np.asarray(v, dtype=float)
    return np.asarray(m, dtype=float) @ t


def scale(m: ArrayLike, v: ArrayLike) -> np.ndarray:
    s = np.eye(4)
    s[0, 0], s[1, 1], s[2, 2] = np.asarray(v, dtype=float)
    return np.asarray(m, dtype=float) @ s


def rotate(m: ArrayLike, angle: float, axis: ArrayLike) -> np.ndarray:
    """Return m composed with a rotation of `angle` radians about `axis`."""
    c = math.cos(angle)
    s = math.sin(angle)
    x, y, z = normalised(axis)
    k = 1.0 - c

    r = np.eye(4)
    r[0, 0] = c + k * x * x
    r[0, 1] = k * x * y - s * z
    r[0, 2] = k * x * z + s * y
    r[1, 0] = k * y * x + s * z
    r[1, 1] = c + k * y * y
    r[1, 2] = k * y * z - s * x
    r[2, 0] = k * z * x - s * y
    r[2, 1] = k * z * y + s * x
    r[2, 2] = c + k * z * z
    return np.asarray(m, dtype=float) @ r


def ortho(left: float, right: float, bottom: float, top: float, near: float, far: float) -> np.ndarray:
    rl = 1.0 / (right - left)
    tb = 1.0 / (top - bottom)
    fn = -1.0 / (far - near)

    m = np.zeros((4, 4))
    m[0, 0] = 2.0 * rl
    m[1, 1] = 2.0 * tb
    m[2, 2] = 2.0 * fn
    m[0, 3] = -(right + left) * rl
    m[1, 3] = -(top + bottom) * tb
    m[2, 3] = (far + near) * fn
    m[3, 3] = 1.0
    return m


def perspective(fovy: float, aspect: float, near: float, far: float) -> np.ndarray:
    """Right-handed perspective projection, fovy in radians."""
    f = 1.0 / math.tan(fovy * 0.5)
    fn = 1.0 / (near - far)

    m = np.zeros((4, 4))
    m[0, 0] = f / aspect
    m[1, 1] = f
    m[2, 2] = (near + far) * fn
    m[3, 2] = -1.0
    m[2, 3] = 2.0 * near * far * fn
    return m


def look_at(eye: ArrayLike, center: ArrayLike, up: ArrayLike) -> np.ndarray:
    eye = np.asarray(eye, dtype=float)
    f = normalised(np.asarray(center, dtype=float) - eye)
    s = normalised(cross(f, up))
    u = cross(s, f)

    m = np.eye(4)
    m[0, :3] = s
    m[1, :3] = u
    m[2, :3] = -f
    m[0, 3] = -dot(s, eye)
    m[1, 3] = -dot(u, eye)
    m[2, 3] = dot(f, eye)
    return m


def transform_points(m: ArrayLike, points: ArrayLike) -> np.ndarray:
    """Apply an affine 4x4 matrix to (3,) or (N, 3) points."""
    m = np.asarray(m, dtype=float)
    points = np.asarray(points, dtype=float)
    return points @ m[:3, :3].T + m[:3, 3]


def to_column_major(m: ArrayLike) -> np.ndarray:
    """Flatten a 4x4 matrix in OpenGL (column-major) order."""
    return np.asarray(m, dtype=np.float32).T.reshape(-1)


# ------------------------------------------------------------------ boxes

@dataclass
class BBox:
    """
    Axis-aligned bounding box of any dimension.

    An empty box has min = +inf and max = -inf, so it is invalid until the
    first point is merged in.
    """
    min: np.ndarray
    max: np.ndarray

    @classmethod
    def empty(cls, dim: int = 3) -> "BBox":
        return cls(min=np.full(dim, np.inf), max=np.full(dim, -np.inf))

    @classmethod
    def of(cls, points: ArrayLike) -> "BBox":
        points = np.asarray(points, dtype=float)
        box = cls.empty(points.shape[-1])
        box.merge(points)
        return box

    @property
    def dim(self) -> int:
        return len(self.min)

    def merge(self, points: ArrayLike) -> "BBox":
        """Grow the box to contain a point or a stack of points."""
        points = np.asarray(points, dtype=float).reshape(-1, self.dim)
        if len(points):
            self.min = np.minimum(self.min, points.min(axis=0))
            self.max = np.maximum(self.max, points.max(axis=0))
        return self

    def merge_box(self, other: "BBox") -> "BBox":
        if other.is_valid():
            self.merge(other.min)
            self.merge(other.max)
        return self

    def is_valid(self) -> bool:
        return bool(np.all(self.max >= self.min))

    def center(self) -> np.ndarray:
        return (self.max + self.min) * 0.5

    def size(self) -> np.ndarray:
        return self.max - self.min
