"""
Configuration and constants for cheese generation and slicing.

Defaults mirror the interactive viewer the pipeline was built for:
- Domain: x, y in [-50, 50], z in [-5, 30], spacing 0.4
- Cheese: 256 pores of radius 2 in a cylinder of radius 40, height 20
- Slicing: 20 planes along Z
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Tuple, Union
import json
from pathlib import Path

from .errors import ConfigurationError


class Axis(Enum):
    """Principal axis used for slicing. Values index vector components."""
    X = 0
    Y = 1
    Z = 2

    @classmethod
    def parse(cls, value: Union["Axis", int, str]) -> "Axis":
        """Accept an Axis, an int 0-2 or one of 'x', 'y', 'z'."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls[key]
            raise ConfigurationError(f"Unknown axis: {value!r}")
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise ConfigurationError(f"Unknown axis: {value!r}") from None


class SurfaceVariant(Enum):
    """
    Cheese evaluation strategy.

    EXACT: true Euclidean signed distance everywhere.
    APPROXIMATE: squared-distance terms inside the cylinder height band,
        linear falloff above/below it. Only the sign is trustworthy.
    """
    EXACT = "exact"
    APPROXIMATE = "approximate"


class VertexPolicy(Enum):
    """
    Vertex insertion policy for marching cubes.

    DUPLICATE: every triangle corner is a new vertex (no welding).
    DEDUPLICATED: coincident vertices from neighbouring cubes are welded.
    """
    DUPLICATE = "duplicate"
    DEDUPLICATED = "deduplicated"


class NormalizationMode(Enum):
    """
    Gray-level mapping for grid slices.

    GLOBAL: use the field's cached min/max.
    LOCAL: use the min/max of the sliced plane only.
    """
    GLOBAL = "global"
    LOCAL = "local"


@dataclass
class MeshMetadata:
    """
    Metadata sidecar written next to every exported mesh.
    """
    mesh_id: int
    name: str
    n_vertices: int
    n_triangles: int
    vertex_policy: str
    surface_variant: str
    surface_area: float
    bbox_min: Tuple[float, float, float]
    bbox_max: Tuple[float, float, float]
    generation_params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mesh_id": self.mesh_id,
            "name": self.name,
            "n_vertices": self.n_vertices,
            "n_triangles": self.n_triangles,
            "vertex_policy": self.vertex_policy,
            "surface_variant": self.surface_variant,
            "surface_area": self.surface_area,
            "bbox_min": list(self.bbox_min),
            "bbox_max": list(self.bbox_max),
            "generation_params": self.generation_params
        }

    def save(self, path: Path) -> None:
        """Save metadata to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MeshMetadata":
        data = dict(data)
        data["bbox_min"] = tuple(data["bbox_min"])
        data["bbox_max"] = tuple(data["bbox_max"])
        return cls(**data)


@dataclass
class Config:
    """
    Global configuration for a cheese run.

    Ranges are (min, max, spacing) triples, one per axis.
    """

    # Sampling domain
    x_range: Tuple[float, float, float] = (-50.0, 50.0, 0.4)
    y_range: Tuple[float, float, float] = (-50.0, 50.0, 0.4)
    z_range: Tuple[float, float, float] = (-5.0, 30.0, 0.4)

    # Cheese shape
    pores_count: int = 256
    pores_radius: float = 2.0
    cylinder_height: float = 20.0
    cylinder_radius: float = 40.0
    surface_variant: SurfaceVariant = SurfaceVariant.EXACT
    seed: Optional[int] = None

    # Meshing
    vertex_policy: VertexPolicy = VertexPolicy.DUPLICATE

    # Slicing
    slice_axis: Axis = Axis.Z
    slices_count: int = 20
    normalization: NormalizationMode = NormalizationMode.GLOBAL

    # Thread pool size for data-parallel stages (None = executor default)
    workers: Optional[int] = None

    output_dir: Path = field(default_factory=lambda: Path("outputs"))

    @property
    def domain_min(self) -> Tuple[float, float, float]:
        return (self.x_range[0], self.y_range[0], self.z_range[0])

    @property
    def domain_max(self) -> Tuple[float, float, float]:
        return (self.x_range[1], self.y_range[1], self.z_range[1])

    @property
    def spacing(self) -> Tuple[float, float, float]:
        return (self.x_range[2], self.y_range[2], self.z_range[2])

    def validate(self) -> None:
        """Reject settings that would make a stage fail half-way."""
        for name, rng in (("x_range", self.x_range), ("y_range", self.y_range), ("z_range", self.z_range)):
            if len(rng) != 3:
                raise ConfigurationError(f"{name} must be (min, max, spacing), got {rng}")
            lo, hi, step = rng
            if step <= 0:
                raise ConfigurationError(f"{name} spacing must be positive, got {step}")
            if hi <= lo:
                raise ConfigurationError(f"{name} max must exceed min, got {lo}..{hi}")
        if self.pores_count < 0:
            raise ConfigurationError(f"pores_count must be >= 0, got {self.pores_count}")
        if self.pores_radius <= 0 or self.cylinder_radius <= 0 or self.cylinder_height <= 0:
            raise ConfigurationError("pore radius, cylinder radius and height must be positive")
        if self.slices_count < 1:
            raise ConfigurationError(f"slices_count must be >= 1, got {self.slices_count}")
        if self.workers is not None and self.workers < 1:
            raise ConfigurationError(f"workers must be >= 1, got {self.workers}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x_range": list(self.x_range),
            "y_range": list(self.y_range),
            "z_range": list(self.z_range),
            "pores_count": self.pores_count,
            "pores_radius": self.pores_radius,
            "cylinder_height": self.cylinder_height,
            "cylinder_radius": self.cylinder_radius,
            "surface_variant": self.surface_variant.value,
            "seed": self.seed,
            "vertex_policy": self.vertex_policy.value,
            "slice_axis": self.slice_axis.name.lower(),
            "slices_count": self.slices_count,
            "normalization": self.normalization.value,
            "workers": self.workers,
            "output_dir": str(self.output_dir)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        data = dict(data)
        for key in ("x_range", "y_range", "z_range"):
            if key in data:
                data[key] = tuple(float(v) for v in data[key])
        data["surface_variant"] = SurfaceVariant(data.get("surface_variant", "exact"))
        data["vertex_policy"] = VertexPolicy(data.get("vertex_policy", "duplicate"))
        data["normalization"] = NormalizationMode(data.get("normalization", "global"))
        data["slice_axis"] = Axis.parse(data.get("slice_axis", "z"))
        data["output_dir"] = Path(data.get("output_dir", "outputs"))
        return cls(**data)

    @classmethod
    def from_json(cls, path: Path) -> "Config":
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
        return cls.from_dict(data)

    def save(self, path: Path) -> None:
        """Save config to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


# Global default config
DEFAULT_CONFIG = Config()
