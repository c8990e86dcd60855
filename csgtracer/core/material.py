import os
import numpy as np
from PIL import Image
from csgtracer.core.errors import SceneError
from csgtracer.core.math import Vec3


class CubeMap:
    """Environment lookup built from six face images.

    Faces are ordered +X, -X, +Y, -Y, +Z, -Z. Each face may be a PIL image or
    an ``(height, width, 3)`` uint8 array.
    """

    FACE_NAMES = ("posx", "negx", "posy", "negy", "posz", "negz")

    def __init__(self, faces):
        if len(faces) != 6:
            raise SceneError(f"CubeMap needs 6 faces, got {len(faces)}")
        self.faces = []
        for face in faces:
            if isinstance(face, Image.Image):
                face = np.array(face.convert("RGB"))
            pixels = np.asarray(face, dtype=np.uint8)
            if pixels.ndim != 3 or pixels.shape[2] != 3:
                raise SceneError(f"CubeMap face must be HxWx3, got shape {pixels.shape}")
            self.faces.append(pixels)

    @classmethod
    def load(cls, directory: str, extension: str = "jpg"):
        """Read ``posx.jpg`` ... ``negz.jpg`` from ``directory``."""
        faces = []
        for name in cls.FACE_NAMES:
            path = os.path.join(directory, f"{name}.{extension}")
            with Image.open(path) as img:
                faces.append(np.array(img.convert("RGB")))
        return cls(faces)

    @classmethod
    def solid(cls, color: Vec3):
        r, g, b = (int(round(min(1.0, max(0.0, c)) * 255)) for c in color)
        face = np.full((1, 1, 3), (r, g, b), dtype=np.uint8)
        return cls([face] * 6)

    def sample(self, direction: Vec3) -> Vec3:
        d = direction.normalize()
        ax, ay, az = abs(d.x), abs(d.y), abs(d.z)

        # pick the face of the major axis, then project onto it
        if ax >= ay and ax >= az:
            if d.x > 0:
                index, u, v = 0, -d.z / ax, -d.y / ax
            else:
                index, u, v = 1, d.z / ax, -d.y / ax
        elif ay >= ax and ay >= az:
            if d.y > 0:
                index, u, v = 2, d.x / ay, d.z / ay
            else:
                index, u, v = 3, d.x / ay, -d.z / ay
        else:
            if d.z > 0:
                index, u, v = 4, d.x / az, -d.y / az
            else:
                index, u, v = 5, -d.x / az, -d.y / az

        u = 0.5 * (u + 1.0)
        v = 0.5 * (v + 1.0)

        face = self.faces[index]
        height, width = face.shape[0], face.shape[1]
        px = min(int(u * width), width - 1)
        py = min(int(v * height), height - 1)
        r, g, b = face[py, px]
        return Vec3(r / 255.0, g / 255.0, b / 255.0)


class Material:
    def __init__(self,
                 albedo: Vec3 = Vec3(1, 1, 1),
                 roughness=0.5,
                 metalness=0.0,
                 transmission=0.0,
                 ior=1.0):
        """
        albedo: linear base colour
        roughness: 0 is a perfect mirror, 1 fully rough
        metalness: blends F0 from the dielectric 0.04 towards albedo
        transmission: fraction of light that passes through the surface
        ior: index of refraction of the medium behind the surface
        """
        for name, value in (("roughness", roughness), ("metalness", metalness),
                            ("transmission", transmission)):
            if not 0.0 <= value <= 1.0:
                raise SceneError(f"{name} must be in [0, 1], got {value}")
        if ior <= 0:
            raise SceneError(f"ior must be positive, got {ior}")

        self.albedo = albedo
        self.roughness = float(roughness)
        self.metalness = float(metalness)
        self.transmission = float(transmission)
        self.ior = float(ior)
        self.f0 = Vec3(0.04, 0.04, 0.04).mix(albedo, Vec3(metalness, metalness, metalness))

    def __repr__(self):
        return (f"Material(albedo={self.albedo!r}, roughness={self.roughness}, "
                f"metalness={self.metalness}, transmission={self.transmission}, ior={self.ior})")


class Intersection:
    """A hit along a ray. Instances sort by ``distance``."""

    __slots__ = ("point", "normal", "distance", "object", "material")

    def __init__(self, point: Vec3, normal: Vec3, distance: float, obj, material: Material):
        self.point = point
        self.normal = normal.normalize()
        self.distance = distance
        self.object = obj
        self.material = material

    def __lt__(self, other):
        return self.distance < other.distance

    def with_owner(self, obj, normal=None):
        return Intersection(self.point, self.normal if normal is None else normal,
                            self.distance, obj, self.material)

    def __repr__(self):
        return f"Intersection(t={self.distance:.5f}, point={self.point!r}, normal={self.normal!r})"
