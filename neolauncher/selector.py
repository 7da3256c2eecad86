"""Rank Java runtimes against the Java version a game asks for."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .runtime import Compatibility, JavaRuntime, Vendor

# Game manifests older than 1.17 carry no javaVersion and ship with Java 8.
LEGACY_JAVA_VERSION = 8

# Distance (in major versions) still considered close enough to work.
_CLOSE_VERSION_DIFF = 3

_PREFERRED_VENDORS = {Vendor.ORACLE, Vendor.ADOPTIUM_ECLIPSE, Vendor.ADOPT_OPENJDK}
_KNOWN_VENDORS = {Vendor.MICROSOFT, Vendor.AMAZON, Vendor.AZUL}


class RecommendationLevel(IntEnum):
    INCOMPATIBLE = 0
    MARGINAL = 1
    ACCEPTABLE = 2
    RECOMMENDED = 3
    PERFECT = 4

    @property
    def description(self) -> str:
        return _LEVEL_DESCRIPTIONS[self]


_LEVEL_DESCRIPTIONS = {
    RecommendationLevel.PERFECT: "Perfect match",
    RecommendationLevel.RECOMMENDED: "Recommended",
    RecommendationLevel.ACCEPTABLE: "Usable",
    RecommendationLevel.MARGINAL: "May have problems",
    RecommendationLevel.INCOMPATIBLE: "Incompatible",
}


@dataclass(frozen=True)
class JavaRequirement:
    """The Java major version a game needs.

    Either ``exact`` is set, or the inclusive range ``minimum``..``maximum``.
    """

    exact: Optional[int] = None
    minimum: int = 0
    maximum: int = 0

    def __post_init__(self):
        if self.exact is None and self.minimum > self.maximum:
            raise ValueError(f"Invalid Java version range {self.minimum}-{self.maximum}")

    @classmethod
    def exactly(cls, version: int) -> "JavaRequirement":
        return cls(exact=version)

    @classmethod
    def between(cls, minimum: int, maximum: int) -> "JavaRequirement":
        return cls(minimum=minimum, maximum=maximum)

    @classmethod
    def from_version_manifest(cls, data: Mapping[str, Any]) -> "JavaRequirement":
        """Read the requirement from a game version JSON document."""

        java_version = data.get("javaVersion") or {}
        try:
            major = int(java_version.get("majorVersion", 0))
        except (TypeError, ValueError):
            major = 0
        if major > 0:
            return cls.exactly(major)
        return cls.exactly(LEGACY_JAVA_VERSION)

    @property
    def is_exact(self) -> bool:
        return self.exact is not None

    def __str__(self) -> str:
        if self.is_exact:
            return f"Java {self.exact}"
        return f"Java {self.minimum}-{self.maximum}"


@dataclass(frozen=True)
class CompatibilityScore:
    runtime: JavaRuntime
    score: int
    recommendation_level: RecommendationLevel
    reason: str


def _score_exact(slug: int, required: int) -> Tuple[int, RecommendationLevel, str]:
    if slug == required:
        return 1000, RecommendationLevel.PERFECT, f"Exactly the Java {required} the game asks for"
    if slug > required:
        diff = slug - required
        if diff <= _CLOSE_VERSION_DIFF:
            return (
                500 - 50 * diff,
                RecommendationLevel.ACCEPTABLE,
                f"Newer than the required Java {required} but likely compatible",
            )
        return (
            200,
            RecommendationLevel.MARGINAL,
            f"Much newer than the required Java {required}, compatibility problems are possible",
        )
    diff = required - slug
    level = RecommendationLevel.INCOMPATIBLE if diff > _CLOSE_VERSION_DIFF else RecommendationLevel.MARGINAL
    return -100 * diff, level, f"Older than the required Java {required}, not recommended"


def _score_range(slug: int, minimum: int, maximum: int) -> Tuple[int, RecommendationLevel, str]:
    if minimum <= slug <= maximum:
        score = 800
        if maximum > minimum:
            # Versions near the middle of the range are the safest bet.
            score -= 10 * abs(slug - (minimum + maximum) // 2)
        return score, RecommendationLevel.RECOMMENDED, f"Suitable for this game (Java {minimum}-{maximum})"
    if slug < minimum:
        return (
            -200 * (minimum - slug),
            RecommendationLevel.INCOMPATIBLE,
            f"Too old, the game needs at least Java {minimum}",
        )
    diff = slug - maximum
    if diff <= _CLOSE_VERSION_DIFF:
        return (
            400 - 50 * diff,
            RecommendationLevel.ACCEPTABLE,
            f"Newer than the recommended Java {maximum} but likely compatible",
        )
    return (
        100,
        RecommendationLevel.MARGINAL,
        f"Much newer than the recommended Java {maximum}, compatibility problems are possible",
    )


def base_score(slug: int, requirement: JavaRequirement) -> Tuple[int, RecommendationLevel, str]:
    """Score the version alone, before architecture, vendor and SDK bonuses."""

    if requirement.is_exact:
        return _score_exact(slug, requirement.exact)
    return _score_range(slug, requirement.minimum, requirement.maximum)


def _modifiers(runtime: JavaRuntime) -> int:
    # 32-bit runtimes are not rejected here, they only miss the bonus.
    bonus = 100 if runtime.is_64bit else 0
    vendor = runtime.vendor
    if vendor in _PREFERRED_VENDORS:
        bonus += 60
    elif vendor in _KNOWN_VENDORS:
        bonus += 40
    if not runtime.is_jre:
        bonus += 40
    return bonus


def _level_for(score: int) -> RecommendationLevel:
    if score >= 800:
        return RecommendationLevel.RECOMMENDED
    if score >= 500:
        return RecommendationLevel.ACCEPTABLE
    if score >= 200:
        return RecommendationLevel.MARGINAL
    return RecommendationLevel.INCOMPATIBLE


def score(runtime: JavaRuntime, requirement: JavaRequirement) -> CompatibilityScore:
    points, level, reason = base_score(runtime.slug_version, requirement)
    points += _modifiers(runtime)
    if level not in (RecommendationLevel.PERFECT, RecommendationLevel.INCOMPATIBLE):
        level = _level_for(points)
    return CompatibilityScore(runtime=runtime, score=points, recommendation_level=level, reason=reason)


def select_java_for_game(requirement: JavaRequirement, runtimes: Iterable[JavaRuntime]) -> List[CompatibilityScore]:
    """Score every natively compatible runtime, best first.

    Runtimes with equal scores keep their relative order.
    """

    scores = [score(runtime, requirement) for runtime in runtimes if runtime.compatibility is Compatibility.YES]
    scores.sort(key=lambda item: item.score, reverse=True)
    return scores
