"""Host-side vector, quaternion and matrix math for camera setup.

These types are used once per render, on the Python side, to derive the
combined inverse camera transform that is uploaded to the device. Nothing in
this module runs inside a Taichi kernel.

Conventions:
    - Right-handed coordinates, the camera looks down -z.
    - Matrices are row-major and act on column vectors: ``p' = M @ p``.
      Composition is therefore applied right to left (projection @ view @ model).

Example:
    >>> from volmcm.core.math3d import Matrix4, Quaternion, Vector3
    >>> q = Quaternion.from_to(Vector3(0.0, 0.0, -1.0), Vector3(1.0, 0.0, 0.0))
    >>> r = q.to_rotation_matrix()
    >>> r.transform_direction(Vector3(0.0, 0.0, -1.0))  # ~ (1, 0, 0)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import numpy.typing as npt

# Below this length a vector (or a cross product) is treated as zero
EPSILON = 1e-8

# Determinants smaller than this make a matrix unusable as a camera transform
SINGULAR_DETERMINANT = 1e-12


# =============================================================================
# Vector3
# =============================================================================


@dataclass(frozen=True)
class Vector3:
    """A 3D vector value type.

    Attributes:
        x: X component.
        y: Y component.
        z: Z component.
    """

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> Vector3:
        """Build a vector from any 3-element sequence."""
        if len(values) != 3:
            raise ValueError(f"Expected 3 components, got {len(values)}")
        return cls(float(values[0]), float(values[1]), float(values[2]))

    def __add__(self, other: Vector3) -> Vector3:
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vector3) -> Vector3:
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __neg__(self) -> Vector3:
        return Vector3(-self.x, -self.y, -self.z)

    def __mul__(self, scalar: float) -> Vector3:
        return Vector3(self.x * scalar, self.y * scalar, self.z * scalar)

    __rmul__ = __mul__

    def dot(self, other: Vector3) -> float:
        """Dot product."""
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: Vector3) -> Vector3:
        """Right-handed cross product ``self x other``."""
        return Vector3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    def length(self) -> float:
        """Euclidean length."""
        return math.sqrt(self.dot(self))

    def normalized(self) -> Vector3:
        """Return a unit vector in the same direction.

        A zero-length vector maps to the zero vector rather than NaN.
        """
        length = self.length()
        if length == 0.0:
            return Vector3(0.0, 0.0, 0.0)
        return Vector3(self.x / length, self.y / length, self.z / length)

    def to_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


# =============================================================================
# Quaternion
# =============================================================================


@dataclass(frozen=True)
class Quaternion:
    """A rotation quaternion ``(x, y, z, w)`` with ``w`` the scalar part.

    Must be unit-norm before it is used as a rotation.
    """

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0

    @classmethod
    def identity(cls) -> Quaternion:
        return cls(0.0, 0.0, 0.0, 1.0)

    @classmethod
    def from_axis_angle(cls, axis: Vector3, angle: float) -> Quaternion:
        """Rotation of ``angle`` radians around ``axis`` (normalized here)."""
        unit = axis.normalized()
        half_sin = math.sin(angle / 2.0)
        return cls(
            unit.x * half_sin,
            unit.y * half_sin,
            unit.z * half_sin,
            math.cos(angle / 2.0),
        ).normalized()

    @classmethod
    def from_to(cls, source: Vector3, target: Vector3) -> Quaternion:
        """Shortest rotation that turns direction ``source`` onto ``target``.

        Uses the half-angle between the two directions around their cross
        product. When the directions are parallel or antiparallel the cross
        product vanishes; an arbitrary axis orthogonal to ``source`` is
        substituted so the result stays finite and unit-norm.

        Args:
            source: Direction to rotate from (need not be normalized).
            target: Direction to rotate to (need not be normalized).

        Returns:
            A unit quaternion.
        """
        a = source.normalized()
        b = target.normalized()

        cos_angle = min(1.0, max(-1.0, a.dot(b)))
        angle = math.acos(cos_angle)

        axis = a.cross(b)
        if axis.length() < EPSILON:
            axis = _orthogonal_axis(a)

        return cls.from_axis_angle(axis, angle)

    def norm(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z + self.w * self.w)

    def normalized(self) -> Quaternion:
        """Return the unit quaternion; a zero quaternion maps to identity."""
        n = self.norm()
        if n == 0.0:
            return Quaternion.identity()
        return Quaternion(self.x / n, self.y / n, self.z / n, self.w / n)

    def to_rotation_matrix(self) -> Matrix4:
        """Standard quaternion to 3x3 rotation, embedded in an identity 4x4."""
        x, y, z, w = self.x, self.y, self.z, self.w

        x2, y2, z2 = x + x, y + y, z + z
        xx, xy, xz = x * x2, x * y2, x * z2
        yy, yz, zz = y * y2, y * z2, z * z2
        wx, wy, wz = w * x2, w * y2, w * z2

        return Matrix4.from_values(
            [
                1.0 - (yy + zz), xy - wz, xz + wy, 0.0,
                xy + wz, 1.0 - (xx + zz), yz - wx, 0.0,
                xz - wy, yz + wx, 1.0 - (xx + yy), 0.0,
                0.0, 0.0, 0.0, 1.0,
            ]
        )


def _orthogonal_axis(direction: Vector3) -> Vector3:
    """Pick a unit axis perpendicular to ``direction``."""
    helper = Vector3(1.0, 0.0, 0.0)
    if abs(direction.x) > 0.9:
        helper = Vector3(0.0, 1.0, 0.0)
    return helper.cross(direction).normalized()


# =============================================================================
# Matrix4
# =============================================================================


class Matrix4:
    """A 4x4 float64 matrix, row-major, acting on column vectors.

    Matrix multiplication is associative but not commutative; camera
    transforms compose as ``projection @ view @ model``.
    """

    __slots__ = ("m",)

    def __init__(self, values: npt.ArrayLike | None = None) -> None:
        if values is None:
            self.m = np.identity(4, dtype=np.float64)
        else:
            m = np.array(values, dtype=np.float64)
            if m.shape != (4, 4):
                raise ValueError(f"Matrix4 needs shape (4, 4), got {m.shape}")
            self.m = m

    @classmethod
    def identity(cls) -> Matrix4:
        return cls()

    @classmethod
    def from_values(cls, values: Sequence[float]) -> Matrix4:
        """Build from 16 values in row-major order."""
        if len(values) != 16:
            raise ValueError(f"Expected 16 values, got {len(values)}")
        return cls(np.array(values, dtype=np.float64).reshape(4, 4))

    @classmethod
    def translation(cls, x: float, y: float, z: float) -> Matrix4:
        res = cls()
        res.m[0, 3] = x
        res.m[1, 3] = y
        res.m[2, 3] = z
        return res

    @classmethod
    def scale(cls, x: float, y: float, z: float) -> Matrix4:
        res = cls()
        res.m[0, 0] = x
        res.m[1, 1] = y
        res.m[2, 2] = z
        return res

    @classmethod
    def frustum(
        cls,
        left: float,
        right: float,
        bottom: float,
        top: float,
        near: float,
        far: float,
    ) -> Matrix4:
        """Off-axis perspective projection.

        Maps the view-space frustum to clip space with the near plane at
        NDC z = -1 and the far plane at z = +1 (camera looks down -z).
        """
        res = cls()
        res.m[0, 0] = 2.0 * near / (right - left)
        res.m[0, 2] = (right + left) / (right - left)

        res.m[1, 1] = 2.0 * near / (top - bottom)
        res.m[1, 2] = (top + bottom) / (top - bottom)

        res.m[2, 2] = -(far + near) / (far - near)
        res.m[2, 3] = -2.0 * far * near / (far - near)

        res.m[3, 2] = -1.0
        res.m[3, 3] = 0.0
        return res

    def multiply(self, other: Matrix4) -> Matrix4:
        """Row-by-column product ``self @ other``."""
        return Matrix4(self.m @ other.m)

    def __matmul__(self, other: Matrix4) -> Matrix4:
        return self.multiply(other)

    def transpose(self) -> Matrix4:
        return Matrix4(self.m.T.copy())

    def determinant(self) -> float:
        """Determinant by cofactor expansion along the first row."""
        cof = self._cofactors()
        return float(np.dot(self.m[0], cof[0]))

    def is_invertible(self, tolerance: float = SINGULAR_DETERMINANT) -> bool:
        det = self.determinant()
        return math.isfinite(det) and abs(det) > tolerance

    def inverse(self) -> Matrix4:
        """Inverse via the adjugate (transposed cofactor matrix).

        The matrix must be invertible; a singular matrix yields non-finite
        entries. Check ``is_invertible()`` first where that matters.
        """
        cof = self._cofactors()
        det = np.float64(np.dot(self.m[0], cof[0]))
        with np.errstate(divide="ignore", invalid="ignore"):
            return Matrix4(cof.T / det)

    def transform_point(self, point: Vector3) -> Vector3:
        """Apply to ``(x, y, z, 1)`` and divide by the resulting w."""
        v = self.m @ np.array([point.x, point.y, point.z, 1.0])
        return Vector3(float(v[0] / v[3]), float(v[1] / v[3]), float(v[2] / v[3]))

    def transform_direction(self, direction: Vector3) -> Vector3:
        """Apply to ``(x, y, z, 0)`` (ignores translation)."""
        v = self.m @ np.array([direction.x, direction.y, direction.z, 0.0])
        return Vector3(float(v[0]), float(v[1]), float(v[2]))

    def allclose(self, other: Matrix4, atol: float = 1e-6) -> bool:
        return bool(np.allclose(self.m, other.m, atol=atol))

    def flatten(self, dtype: npt.DTypeLike = np.float32) -> npt.NDArray:
        """The 16 entries in row-major memory order."""
        return self.m.astype(dtype).reshape(16)

    def _cofactors(self) -> npt.NDArray[np.float64]:
        m = self.m
        cof = np.empty((4, 4), dtype=np.float64)
        for i in range(4):
            rows = [r for r in range(4) if r != i]
            for j in range(4):
                cols = [c for c in range(4) if c != j]
                minor = m[np.ix_(rows, cols)]
                sign = -1.0 if (i + j) % 2 else 1.0
                cof[i, j] = sign * _det3(minor)
        return cof

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matrix4):
            return NotImplemented
        return bool(np.array_equal(self.m, other.m))

    def __repr__(self) -> str:
        rows = ", ".join(str(list(np.round(row, 6))) for row in self.m)
        return f"Matrix4([{rows}])"


def _det3(a: npt.NDArray[np.float64]) -> float:
    """Determinant of a 3x3 block (rule of Sarrus)."""
    return float(
        a[0, 0] * (a[1, 1] * a[2, 2] - a[1, 2] * a[2, 1])
        - a[0, 1] * (a[1, 0] * a[2, 2] - a[1, 2] * a[2, 0])
        + a[0, 2] * (a[1, 0] * a[2, 1] - a[1, 1] * a[2, 0])
    )
