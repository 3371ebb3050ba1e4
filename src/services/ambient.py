"""
Ambient background scene: drifting soft-light orbs, rising particles and a
faint grid.

Purely decorative and independent of bookmark data. Positions are normalized
to the viewport (0..1); the page script scales them and draws one frame per
animation tick using the same wrap rules as step().
"""
import random
from dataclasses import asdict, dataclass, field
from enum import Enum


ORB_COLORS = (
    "rgba(200,255,62,",
    "rgba(56,217,245,",
    "rgba(139,92,246,",
    "rgba(255,95,126,",
)
GRID_STEP = 48
GRID_STROKE = "rgba(255,255,255,0.025)"


class SceneVariant(str, Enum):
    """Density presets."""

    LOGIN = "login"
    MAIN = "main"


# variant -> (orb count, particle count)
DENSITY: dict[SceneVariant, tuple[int, int]] = {
    SceneVariant.LOGIN: (6, 40),
    SceneVariant.MAIN: (9, 70),
}


@dataclass
class Orb:
    x: float
    y: float
    r: float
    vx: float
    vy: float
    color: str
    opacity: float

    def step(self) -> None:
        """One frame of drift; wraps just outside the viewport on both axes."""
        self.x += self.vx
        self.y += self.vy
        if self.x < -0.1:
            self.x = 1.1
        if self.x > 1.1:
            self.x = -0.1
        if self.y < -0.1:
            self.y = 1.1
        if self.y > 1.1:
            self.y = -0.1


@dataclass
class Particle:
    x: float
    y: float
    r: float
    vy: float
    opacity: float

    def step(self) -> None:
        """One frame of rise; re-enters at the bottom once above the top edge."""
        self.y += self.vy
        if self.y < -0.02:
            self.y = 1.02


@dataclass
class AmbientScene:
    variant: SceneVariant
    orbs: list[Orb] = field(default_factory=list)
    particles: list[Particle] = field(default_factory=list)
    grid_step: int = GRID_STEP
    grid_stroke: str = GRID_STROKE

    @classmethod
    def create(cls, variant: SceneVariant, rng: random.Random | None = None) -> "AmbientScene":
        """Build a scene with fresh random parameters for the variant's density."""
        rng = rng or random.Random()  # noqa: S311
        orb_count, particle_count = DENSITY[variant]
        orbs = [
            Orb(
                x=rng.random(),
                y=rng.random(),
                r=180 + rng.random() * 220,
                vx=(rng.random() - 0.5) * 0.00015,
                vy=(rng.random() - 0.5) * 0.00015,
                color=ORB_COLORS[i % len(ORB_COLORS)],
                opacity=0.045 + rng.random() * 0.055,
            )
            for i in range(orb_count)
        ]
        particles = [
            Particle(
                x=rng.random(),
                y=rng.random(),
                r=0.5 + rng.random() * 1.2,
                vy=-0.00008 - rng.random() * 0.00012,
                opacity=0.15 + rng.random() * 0.25,
            )
            for _ in range(particle_count)
        ]
        return cls(variant=variant, orbs=orbs, particles=particles)

    def step(self, frames: int = 1) -> None:
        """
        Advance the scene by a number of animation frames.

        The page script runs the animation in the browser with the same
        per-frame rules; this is their reference form.
        """
        for _ in range(frames):
            for orb in self.orbs:
                orb.step()
            for particle in self.particles:
                particle.step()

    def to_dict(self) -> dict:
        """Serializable form embedded in the page for the drawing script."""
        data = asdict(self)
        data["variant"] = self.variant.value
        return data
