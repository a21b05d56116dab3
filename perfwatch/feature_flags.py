"""
Feature gating by performance mode

Every feature has an explicit value for every mode; the table is checked for
completeness at import time.
"""

from enum import Enum
from typing import Dict, Mapping

from .performance_types import PerformanceMode


class Feature(Enum):
    ANIMATIONS = "animations"
    REAL_TIME_UPDATES = "realTimeUpdates"
    HIGH_QUALITY_IMAGES = "highQualityImages"
    BACKGROUND_PROCESSES = "backgroundProcesses"
    COMPLEX_TRANSITIONS = "complexTransitions"


_LITE = PerformanceMode.LITE
_BALANCED = PerformanceMode.BALANCED
_FULL = PerformanceMode.FULL

FEATURE_MATRIX: Mapping[Feature, Mapping[PerformanceMode, bool]] = {
    Feature.ANIMATIONS: {_LITE: False, _BALANCED: True, _FULL: True},
    Feature.REAL_TIME_UPDATES: {_LITE: False, _BALANCED: True, _FULL: True},
    Feature.HIGH_QUALITY_IMAGES: {_LITE: False, _BALANCED: False, _FULL: True},
    Feature.BACKGROUND_PROCESSES: {_LITE: False, _BALANCED: True, _FULL: True},
    Feature.COMPLEX_TRANSITIONS: {_LITE: False, _BALANCED: False, _FULL: True},
}


def _check_matrix(matrix: Mapping[Feature, Mapping[PerformanceMode, bool]]) -> None:
    missing = [
        f"{feature.value}/{mode.value}"
        for feature in Feature
        for mode in PerformanceMode
        if mode not in matrix.get(feature, {})
    ]
    if missing:
        raise RuntimeError(f"Feature matrix incomplete: {', '.join(missing)}")


_check_matrix(FEATURE_MATRIX)


def is_feature_enabled(feature: Feature, mode: PerformanceMode) -> bool:
    return FEATURE_MATRIX[feature][mode]


def enabled_features(mode: PerformanceMode) -> Dict[str, bool]:
    """Feature name to enabled flag for a mode"""
    return {feature.value: FEATURE_MATRIX[feature][mode] for feature in Feature}
