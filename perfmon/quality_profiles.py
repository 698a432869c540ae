"""
Quality Profiles
Ordered registry of rendering/audio quality presets used by adaptive control
"""

from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class QualityProfile:
    """Quality configuration for one level"""
    key: str
    name: str
    render_scale: float
    particle_count: int
    effect_complexity: int   # 1-5
    fps_target: int
    audio_latency: int       # latency budget in ms

    def to_dict(self) -> Dict[str, object]:
        return {
            "key": self.key,
            "name": self.name,
            "render_scale": self.render_scale,
            "particle_count": self.particle_count,
            "effect_complexity": self.effect_complexity,
            "fps_target": self.fps_target,
            "audio_latency": self.audio_latency
        }


# Lowest to highest, a profile's level is its index
QUALITY_PROFILES: List[QualityProfile] = [
    QualityProfile("potato", "Ultra Low", 0.5, 100, 1, 30, 512),
    QualityProfile("low", "Low", 0.75, 500, 2, 45, 256),
    QualityProfile("medium", "Medium", 1.0, 1000, 3, 60, 128),
    QualityProfile("high", "High", 1.25, 2000, 4, 60, 64),
    QualityProfile("ultra", "Ultra", 1.5, 5000, 5, 60, 32),
]

DEFAULT_PROFILE_KEY = "medium"

_BY_KEY: Dict[str, QualityProfile] = {p.key: p for p in QUALITY_PROFILES}


def get_profile(key: str) -> QualityProfile:
    """Look up a profile by key, raises KeyError for unknown keys"""
    return _BY_KEY[key]


def find_profile(name: str) -> Optional[QualityProfile]:
    """Find a profile by key or display name (case-insensitive)"""
    if not name:
        return None
    if name in _BY_KEY:
        return _BY_KEY[name]
    lowered = name.strip().lower()
    for profile in QUALITY_PROFILES:
        if profile.key == lowered or profile.name.lower() == lowered:
            return profile
    return None


def profile_level(profile: QualityProfile) -> int:
    return QUALITY_PROFILES.index(profile)


def profile_at(level: int) -> QualityProfile:
    """Profile for a level, clamped into the registry range"""
    level = max(0, min(len(QUALITY_PROFILES) - 1, level))
    return QUALITY_PROFILES[level]


def step_profile(profile: QualityProfile, steps: int) -> QualityProfile:
    """Move up (positive) or down (negative) the registry, clamped at the ends"""
    return profile_at(profile_level(profile) + steps)


def profile_keys() -> List[str]:
    return [p.key for p in QUALITY_PROFILES]
