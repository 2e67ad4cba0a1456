"""Architectural profile detection."""

from contract_grader.detection.base import (
    DETECTED_PROFILES,
    FALLBACK_PROFILE,
    KNOWN_PROFILES,
    DetectionSignal,
)
from contract_grader.detection.consensus import (
    DETECTORS,
    DetectionOptions,
    DetectionResult,
    ProfileScore,
    detect_profile,
    run_detectors,
)
from contract_grader.detection.heuristic import HeuristicVerdict, classify

__all__ = [
    "DETECTED_PROFILES",
    "DETECTORS",
    "FALLBACK_PROFILE",
    "KNOWN_PROFILES",
    "DetectionOptions",
    "DetectionResult",
    "DetectionSignal",
    "HeuristicVerdict",
    "ProfileScore",
    "classify",
    "detect_profile",
    "run_detectors",
]
