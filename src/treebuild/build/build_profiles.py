"""Build Profile Configuration.

Profiles declare the optimisation flags they control. The user's FLAGS
variable may contain its own optimisation level; any flag matching a
profile's controlled patterns is stripped from FLAGS before the profile's
own flags are appended, so the profile always wins.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List


class BuildProfile(Enum):
    """Build profile enum for type-safe profile selection."""

    RELEASE = "release"
    QUICK = "quick"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ProfileFlags:
    """Flags contributed by one build profile.

    Attributes:
        name: Profile identifier (matches BuildProfile enum value)
        description: Human-readable profile description
        compile_flags: Flags appended to every compile command
        link_flags: Flags appended to every link command
        controlled_patterns: Flag prefixes this profile owns (stripped from FLAGS)
    """

    name: str
    description: str
    compile_flags: tuple[str, ...]
    link_flags: tuple[str, ...]
    controlled_patterns: tuple[str, ...]


PROFILES: dict[BuildProfile, ProfileFlags] = {
    BuildProfile.RELEASE: ProfileFlags(
        name="release",
        description="Optimized build with debug info (default)",
        compile_flags=("-O3",),
        link_flags=("-O3",),
        controlled_patterns=("-O",),
    ),
    BuildProfile.QUICK: ProfileFlags(
        name="quick",
        description="Fast unoptimized development build",
        compile_flags=("-O0",),
        link_flags=(),
        controlled_patterns=("-O",),
    ),
}


def get_profile(profile: BuildProfile) -> ProfileFlags:
    """Get profile configuration by enum."""
    return PROFILES[profile]


def filter_controlled_flags(flags: List[str], profile_flags: ProfileFlags) -> List[str]:
    """Remove flags that the profile controls.

    Args:
        flags: User or default flags
        profile_flags: The profile whose controlled patterns to filter

    Returns:
        Flags with controlled patterns removed, order preserved
    """
    return [f for f in flags if not any(f.startswith(p) for p in profile_flags.controlled_patterns)]


def merge_compile_flags(base_flags: List[str], profile_flags: ProfileFlags) -> List[str]:
    """Filter profile-controlled flags from base_flags, then append the profile's compile flags."""
    return filter_controlled_flags(base_flags, profile_flags) + list(profile_flags.compile_flags)


def merge_link_flags(base_flags: List[str], profile_flags: ProfileFlags) -> List[str]:
    """Filter profile-controlled flags from base_flags, then append the profile's link flags."""
    return filter_controlled_flags(base_flags, profile_flags) + list(profile_flags.link_flags)


def format_profile_banner(profile: BuildProfile, compiler: str | None = None) -> str:
    """Format a build profile banner for display, e.g. ``PROFILE=release CC=gcc``."""
    parts = [f"PROFILE={profile.value}"]
    if compiler:
        parts.append(f"CC={compiler}")
    return " ".join(parts)
