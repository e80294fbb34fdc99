"""Capability probe: optional external dependencies discovered before a build.

Each requested capability (``--with NAME``) is probed once, before graph
construction. Available capabilities contribute their flags plus a
``-DHAVE_<NAME>=1`` define to every compile and link; unavailable ones are
recorded as unsupported and the build continues without them.
"""

import logging
import re
import shlex
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence, runtime_checkable

from ..subprocess_utils import safe_run
from .error_collector import ErrorCollector
from .errors import ProbeUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing one capability."""

    name: str
    available: bool
    cflags: tuple[str, ...] = ()
    ldflags: tuple[str, ...] = ()
    version: Optional[str] = None
    reason: str = ""


@runtime_checkable
class CapabilityProbe(Protocol):
    def probe(self, tool_name: str) -> ProbeResult:
        """Probe one capability.

        Raises:
            ProbeUnavailable: If the capability cannot be found
        """
        ...


@dataclass(frozen=True)
class CapabilitySet:
    """Merged flags of every available capability.

    Attributes:
        cflags: Compile flags (capability cflags plus HAVE_ defines)
        ldflags: Link flags appended after LDFLAGS
        available: Results for available capabilities
        unsupported: Names of capabilities that were requested but not found
    """

    cflags: tuple[str, ...] = ()
    ldflags: tuple[str, ...] = ()
    available: tuple[ProbeResult, ...] = field(default_factory=tuple)
    unsupported: tuple[str, ...] = ()

    def has(self, name: str) -> bool:
        return any(r.name == name for r in self.available)


def define_for(name: str) -> str:
    """Preprocessor define announcing a capability: ``zlib`` -> ``-DHAVE_ZLIB=1``."""
    macro = re.sub(r"[^A-Za-z0-9]", "_", name).upper()
    return f"-DHAVE_{macro}=1"


class PkgConfigProbe:
    """Probes capabilities with pkg-config."""

    def __init__(self, pkg_config: str = "pkg-config"):
        self.pkg_config = pkg_config

    def _query(self, tool_name: str, option: str) -> str:
        try:
            result = safe_run([self.pkg_config, option, tool_name], capture_output=True, text=True)
        except OSError as e:
            raise ProbeUnavailable(tool_name, f"{self.pkg_config} not runnable: {e}") from e
        if result.returncode != 0:
            detail = (result.stderr or "").strip().splitlines()
            raise ProbeUnavailable(tool_name, detail[0] if detail else f"{self.pkg_config} {option} failed")
        return result.stdout.strip()

    def probe(self, tool_name: str) -> ProbeResult:
        version = self._query(tool_name, "--modversion")
        cflags = tuple(shlex.split(self._query(tool_name, "--cflags")))
        ldflags = tuple(shlex.split(self._query(tool_name, "--libs")))
        return ProbeResult(name=tool_name, available=True, cflags=cflags, ldflags=ldflags, version=version or None)


def resolve_capabilities(
    probe: CapabilityProbe, names: Sequence[str], error_collector: Optional[ErrorCollector] = None
) -> CapabilitySet:
    """Probe every requested capability and merge the results.

    ProbeUnavailable never escapes: the capability is marked unsupported and
    a warning is recorded.

    Args:
        probe: Probe implementation
        names: Requested capability names (duplicates are probed once)
        error_collector: Optional ErrorCollector receiving the warnings

    Returns:
        CapabilitySet consumed by every compile and link
    """
    cflags: list[str] = []
    ldflags: list[str] = []
    available: list[ProbeResult] = []
    unsupported: list[str] = []

    for name in dict.fromkeys(names):
        try:
            result = probe.probe(name)
        except ProbeUnavailable as e:
            result = ProbeResult(name=name, available=False, reason=e.reason)

        if not result.available:
            logger.warning(f"Capability {name} unavailable: {result.reason or 'not found'}")
            if error_collector is not None:
                error_collector.warn("probe", f"capability {name} unavailable: {result.reason or 'not found'}")
            unsupported.append(name)
            continue

        logger.debug(f"Capability {name} {result.version or ''} available")
        available.append(result)
        cflags.extend(result.cflags)
        cflags.append(define_for(name))
        ldflags.extend(result.ldflags)

    return CapabilitySet(
        cflags=tuple(cflags),
        ldflags=tuple(ldflags),
        available=tuple(available),
        unsupported=tuple(unsupported),
    )
