import math
import numpy as np

from csgtracer.core.errors import SceneError, SingularMatrixError


class Vec3:
    """Immutable 3-component vector, also used for linear RGB colours."""

    __slots__ = ("x", "y", "z")

    def __init__(self, x=0.0, y=0.0, z=0.0):
        object.__setattr__(self, "x", float(x))
        object.__setattr__(self, "y", float(y))
        object.__setattr__(self, "z", float(z))

    def __setattr__(self, name, value):
        raise AttributeError("Vec3 is immutable")

    def __reduce__(self):
        return (Vec3, (self.x, self.y, self.z))

    def __add__(self, other):
        return Vec3(self.x + other.x,
                    self.y + other.y,
                    self.z + other.z)

    def __sub__(self, other):
        return Vec3(self.x - other.x,
                    self.y - other.y,
                    self.z - other.z)

    def __mul__(self, t):
        # scalar or component-wise (Hadamard) product
        if isinstance(t, Vec3):
            return Vec3(self.x * t.x,
                        self.y * t.y,
                        self.z * t.z)
        return Vec3(self.x * t, self.y * t, self.z * t)

    __rmul__ = __mul__

    def __truediv__(self, t):
        if isinstance(t, Vec3):
            return Vec3(self.x / t.x, self.y / t.y, self.z / t.z)
        return Vec3(self.x / t, self.y / t, self.z / t)

    def __neg__(self):
        return Vec3(-self.x, -self.y, -self.z)

    def __iter__(self):
        yield self.x
        yield self.y
        yield self.z

    def __eq__(self, other):
        if not isinstance(other, Vec3):
            return NotImplemented
        return self.x == other.x and self.y == other.y and self.z == other.z

    def __hash__(self):
        return hash((self.x, self.y, self.z))

    def dot(self, other):
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other):
        return Vec3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x
        )

    def length(self):
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def length_squared(self):
        return self.x * self.x + self.y * self.y + self.z * self.z

    def normalize(self):
        l = self.length()
        if l == 0:
            return Vec3(0, 0, 0)
        return self / l

    def mix(self, other, weights):
        """Per-component linear interpolation towards ``other``."""
        return Vec3(
            self.x * (1 - weights.x) + other.x * weights.x,
            self.y * (1 - weights.y) + other.y * weights.y,
            self.z * (1 - weights.z) + other.z * weights.z
        )

    def reflect(self, normal):
        # r = v - 2 * dot(v, n) * n
        return (self - normal * (2 * self.dot(normal))).normalize()

    def refract(self, normal, ior_from, ior_to):
        """Snell refraction of this direction through a surface.

        ``normal`` has to face the incident side. Returns None on total
        internal reflection.
        """
        incident = self.normalize()
        cos_i = -incident.dot(normal)
        eta = ior_from / ior_to
        radical = 1.0 - eta * eta * (1.0 - cos_i * cos_i)
        if radical < 0.0:
            return None
        cos_t = math.sqrt(radical)
        return (incident * eta + normal * (eta * cos_i - cos_t)).normalize()

    def orthonormal_basis(self):
        w = self.normalize()
        a = Vec3(0, 1, 0) if abs(w.x) > 0.1 else Vec3(1, 0, 0)
        u = a.cross(w).normalize()
        v = w.cross(u)
        return u, v, w

    def random_hemisphere_direction(self, rng):
        """Cosine-weighted direction around this vector (pdf = cos / pi)."""
        u, v, w = self.orthonormal_basis()
        sin_theta = math.sqrt(rng.random())
        cos_theta = math.sqrt(1.0 - sin_theta * sin_theta)
        psi = rng.random() * 2.0 * math.pi
        return (u * (sin_theta * math.cos(psi)) +
                v * (sin_theta * math.sin(psi)) +
                w * cos_theta).normalize()

    def sample_glossy_direction(self, normal, roughness, rng):
        """Phong-lobe sample around this (reflection) vector, kept above ``normal``."""
        exponent = max(1.0, (1.0 - roughness) * 100.0)
        theta = math.acos(rng.random() ** (1.0 / (exponent + 1.0)))
        phi = 2.0 * math.pi * rng.random()

        u, v, w = self.orthonormal_basis()
        direction = (u * (math.sin(theta) * math.cos(phi)) +
                     v * (math.sin(theta) * math.sin(phi)) +
                     w * math.cos(theta)).normalize()
        if direction.dot(normal) < 0.0:
            direction = -direction
        return direction

    def distance_to(self, other):
        return (self - other).length()

    def similar(self, other, threshold):
        return self.distance_to(other) <= threshold

    def clamp(self, lo=0.0, hi=1.0):
        return Vec3(min(hi, max(lo, self.x)),
                    min(hi, max(lo, self.y)),
                    min(hi, max(lo, self.z)))

    def to_rgb(self, gamma=2.2):
        """Clamp and gamma-encode a linear colour into an 8-bit RGB triplet."""
        c = self.clamp()
        inv = 1.0 / gamma
        return (int(round((c.x ** inv) * 255)),
                int(round((c.y ** inv) * 255)),
                int(round((c.z ** inv) * 255)))

    def to_hex(self, gamma=2.2):
        r, g, b = self.to_rgb(gamma)
        return (r << 16) | (g << 8) | b

    def __repr__(self):
        return f"Vec3({self.x:.3f}, {self.y:.3f}, {self.z:.3f})"


class Mat4:
    """Immutable 4x4 homogeneous transform.

    Builder methods return a new matrix with the operation applied *after*
    this one, so ``Mat4().rotate_y(a).translate(0, 0, -3)`` rotates first and
    then translates.
    """

    __slots__ = ("m", "_rows")

    def __init__(self, values=None):
        if values is None:
            m = np.eye(4, dtype=np.float64)
        else:
            m = np.array(values, dtype=np.float64)
            if m.size != 16:
                raise SceneError("Mat4 requires exactly 16 values")
            m = m.reshape(4, 4)
        m.setflags(write=False)
        object.__setattr__(self, "m", m)
        # plain floats for the per-ray transforms
        object.__setattr__(self, "_rows", tuple(tuple(float(v) for v in row) for row in m))

    def __setattr__(self, name, value):
        raise AttributeError("Mat4 is immutable")

    def __reduce__(self):
        return (Mat4, (self.m.tolist(),))

    @staticmethod
    def identity():
        return Mat4()

    def __matmul__(self, other):
        return Mat4(self.m @ other.m)

    def then(self, other):
        return Mat4(other.m @ self.m)

    def translate(self, x, y, z):
        t = np.eye(4)
        t[:3, 3] = [x, y, z]
        return self.then(Mat4(t))

    def scale(self, sx, sy=None, sz=None):
        sy = sx if sy is None else sy
        sz = sx if sz is None else sz
        return self.then(Mat4(np.diag([sx, sy, sz, 1.0])))

    def rotate_x(self, angle):
        c, s = math.cos(angle), math.sin(angle)
        return self.then(Mat4([[1, 0, 0, 0],
                               [0, c, -s, 0],
                               [0, s, c, 0],
                               [0, 0, 0, 1]]))

    def rotate_y(self, angle):
        c, s = math.cos(angle), math.sin(angle)
        return self.then(Mat4([[c, 0, s, 0],
                               [0, 1, 0, 0],
                               [-s, 0, c, 0],
                               [0, 0, 0, 1]]))

    def rotate_z(self, angle):
        c, s = math.cos(angle), math.sin(angle)
        return self.then(Mat4([[c, -s, 0, 0],
                               [s, c, 0, 0],
                               [0, 0, 1, 0],
                               [0, 0, 0, 1]]))

    def determinant(self):
        return float(np.linalg.det(self.m))

    def inverse(self):
        if abs(self.determinant()) < 1e-12:
            raise SingularMatrixError("Matrix is singular and cannot be inverted")
        return Mat4(np.linalg.inv(self.m))

    def transpose(self):
        return Mat4(self.m.T)

    def transform_point(self, v: Vec3) -> Vec3:
        r0, r1, r2, r3 = self._rows
        x = r0[0] * v.x + r0[1] * v.y + r0[2] * v.z + r0[3]
        y = r1[0] * v.x + r1[1] * v.y + r1[2] * v.z + r1[3]
        z = r2[0] * v.x + r2[1] * v.y + r2[2] * v.z + r2[3]
        w = r3[0] * v.x + r3[1] * v.y + r3[2] * v.z + r3[3]
        if w != 0.0 and w != 1.0:
            return Vec3(x / w, y / w, z / w)
        return Vec3(x, y, z)

    def transform_direction(self, v: Vec3) -> Vec3:
        r0, r1, r2, _ = self._rows
        return Vec3(r0[0] * v.x + r0[1] * v.y + r0[2] * v.z,
                    r1[0] * v.x + r1[1] * v.y + r1[2] * v.z,
                    r2[0] * v.x + r2[1] * v.y + r2[2] * v.z)

    def allclose(self, other, atol=1e-9):
        return bool(np.allclose(self.m, other.m, atol=atol))

    def __repr__(self):
        rows = ", ".join("[" + ", ".join(f"{v:.3f}" for v in row) + "]" for row in self.m)
        return f"Mat4({rows})"


class Ray:
    def __init__(self, origin: Vec3, direction: Vec3):
        self.origin = origin
        self.direction = direction.normalize()

    def point_at(self, t):
        return self.origin + self.direction * t

    def transformed(self, matrix: Mat4):
        return Ray(matrix.transform_point(self.origin),
                   matrix.transform_direction(self.direction))

    def nearest_intersection(self, objects, epsilon=1e-4):
        """Closest hit with ``distance > epsilon`` over ``objects``, or None."""
        nearest = None
        for obj in objects:
            for hit in obj.intersect(self):
                if hit.distance > epsilon and (nearest is None or hit.distance < nearest.distance):
                    nearest = hit
        return nearest

    def __repr__(self):
        return f"Ray({self.origin!r}, {self.direction!r})"
