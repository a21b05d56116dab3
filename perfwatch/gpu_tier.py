"""
GPU tier heuristic

Classifies a graphics renderer identifier (as reported by the driver through
the debug-renderer-info extension, or by GPUtil on a desktop host) into a
coarse tier. Driver strings are unstable, so the rules live in a swappable
pattern table behind ``classify_renderer``.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Pattern, Tuple

from .performance_types import GPUTier

if TYPE_CHECKING:
    from .device_capabilities import Platform

logger = logging.getLogger(__name__)


def _compile(patterns: List[str]) -> List[Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


@dataclass
class RendererPatterns:
    """Ordered pattern table; the first matching group wins"""
    # Dedicated desktop / workstation GPU families
    high: List[Pattern] = field(default_factory=lambda: _compile([
        r"nvidia.*\b(rtx|gtx|quadro|titan|tesla)\b",
        r"geforce\s+(rtx|gtx)",
        r"radeon\s+(rx|pro|vii)",
        r"\bamd\b.*\binstinct\b",
        r"apple\s+m\d",
    ]))
    # Integrated, legacy or software renderers
    low: List[Pattern] = field(default_factory=lambda: _compile([
        r"intel.*\b(u?hd)\s+graphics",
        r"intel.*\bgma\b",
        r"swiftshader",
        r"llvmpipe",
        r"softpipe",
        r"microsoft basic render",
        r"mali-4\d{2}",
        r"adreno\D*[1-4]\d{2}\b",
        r"powervr\s+sgx",
    ]))
    # Mobile / tile-based families
    medium: List[Pattern] = field(default_factory=lambda: _compile([
        r"adreno",
        r"mali",
        r"powervr",
        r"apple\s+gpu",
        r"intel.*\biris\b",
        r"tegra",
        r"videocore",
    ]))

    def ordered(self) -> List[Tuple[GPUTier, List[Pattern]]]:
        return [(GPUTier.HIGH, self.high), (GPUTier.LOW, self.low), (GPUTier.MEDIUM, self.medium)]


DEFAULT_PATTERNS = RendererPatterns()


def classify_renderer(renderer: Optional[str], patterns: Optional[RendererPatterns] = None) -> GPUTier:
    """
    Classify a renderer identifier string.

    A missing or unrecognized renderer means a context exists but could not be
    identified, which is treated as ``medium``.
    """
    if not renderer:
        return GPUTier.MEDIUM

    for tier, rules in (patterns or DEFAULT_PATTERNS).ordered():
        if any(rule.search(renderer) for rule in rules):
            return tier

    return GPUTier.MEDIUM


def detect_gpu_tier(platform: 'Platform', patterns: Optional[RendererPatterns] = None) -> Tuple[GPUTier, bool]:
    """
    Probe the platform's graphics stack.

    Returns the tier and whether a graphics context could be created. Context
    creation failure classifies as ``low``; any other probe failure as
    ``unknown``. Nothing is raised.
    """
    try:
        context = platform.create_graphics_context()
    except Exception as e:
        logger.debug(f"Graphics context creation failed: {e}")
        return GPUTier.LOW, False

    if context is None:
        return GPUTier.LOW, False

    try:
        renderer = context.debug_renderer_info()
        tier = classify_renderer(renderer, patterns)
        logger.debug(f"GPU renderer {renderer!r} classified as {tier.value}")
        return tier, True
    except Exception as e:
        logger.warning(f"GPU probe failed: {e}")
        return GPUTier.UNKNOWN, True
    finally:
        release = getattr(context, "release", None)
        if callable(release):
            try:
                release()
            except Exception as e:
                logger.debug(f"Graphics context release failed: {e}")
