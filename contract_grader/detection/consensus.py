"""Combine pattern detectors and the heuristic classifier into one profile."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Literal

from contract_grader.detection import bounded_context, query_language, resource, saas, streaming_rpc
from contract_grader.detection.base import (
    BOUNDED_CONTEXT_STYLE,
    FALLBACK_PROFILE,
    MULTI_TENANT_SAAS,
    RESOURCE_STYLE,
    DetectionSignal,
    PatternDetector,
)
from contract_grader.detection.heuristic import HeuristicVerdict, classify
from contract_grader.document import ApiDocument

logger = logging.getLogger(__name__)

Method = Literal["unanimous-consensus", "primary-signal-wins", "pattern-primary", "fallback"]

DETECTORS: tuple[PatternDetector, ...] = (
    resource.DETECTOR,
    query_language.DETECTOR,
    streaming_rpc.DETECTOR,
    saas.DETECTOR,
    bounded_context.DETECTOR,
)

HEURISTIC_STRONG = 0.7
HEURISTIC_USABLE = 0.5
PATTERN_STRONG = 0.7
HYBRID_THRESHOLD = 0.4
LOW_CONFIDENCE = 0.6
# Overlays that routinely sit on top of a resource-style API.
CO_OCCURRING_PAIRS = (
    frozenset({RESOURCE_STYLE, MULTI_TENANT_SAAS}),
    frozenset({RESOURCE_STYLE, BOUNDED_CONTEXT_STYLE}),
)


@dataclass(frozen=True, slots=True)
class DetectionOptions:
    min_confidence: float = 0.5
    prefer_heuristic: bool = True
    allow_hybrid: bool = True
    fallback_profile: str = FALLBACK_PROFILE


@dataclass(frozen=True, slots=True)
class ProfileScore:
    profile: str
    confidence: float

    def to_dict(self) -> dict[str, object]:
        return {"profile": self.profile, "confidence": self.confidence}


@dataclass(frozen=True, slots=True)
class DetectionResult:
    primary_profile: str
    confidence: float
    secondary_profiles: tuple[ProfileScore, ...] = ()
    is_hybrid: bool = False
    method: Method = "fallback"
    fallback_used: bool = False
    signals: tuple[DetectionSignal, ...] = ()
    heuristic: HeuristicVerdict | None = None
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "primary_profile": self.primary_profile,
            "confidence": self.confidence,
            "secondary_profiles": [item.to_dict() for item in self.secondary_profiles],
            "is_hybrid": self.is_hybrid,
            "method": self.method,
            "fallback_used": self.fallback_used,
            "signals": [signal.to_dict() for signal in self.signals],
            "heuristic": self.heuristic.to_dict() if self.heuristic is not None else None,
            "warnings": list(self.warnings),
        }


def run_detectors(document: ApiDocument, *, workers: int = 1) -> list[DetectionSignal]:
    """Run every pattern detector; results keep declaration order."""
    if workers <= 1:
        return [detector.detect(document) for detector in DETECTORS]
    with ThreadPoolExecutor(max_workers=min(workers, len(DETECTORS))) as pool:
        return list(pool.map(lambda detector: detector.detect(document), DETECTORS))


def detect_profile(
    document: ApiDocument,
    options: DetectionOptions | None = None,
    *,
    workers: int = 1,
) -> DetectionResult:
    options = options or DetectionOptions()
    signals = run_detectors(document, workers=workers)
    verdict = classify(document)
    top = _top_signal(signals)

    profile, confidence, method = _choose(verdict, top, options)
    warnings: list[str] = []
    if verdict.profile is not None and top.weight > 0 and verdict.profile != top.profile_candidate:
        warnings.append(
            f"detectors disagree: heuristic suggests {verdict.profile}, "
            f"patterns suggest {top.profile_candidate}"
        )

    fallback_used = False
    if profile is None or confidence < options.min_confidence:
        logger.warning(
            "Detection confidence %.2f below %.2f; falling back to %s",
            confidence,
            options.min_confidence,
            options.fallback_profile,
        )
        warnings.append(
            f"no profile reached min_confidence {options.min_confidence:.2f}; "
            f"using {options.fallback_profile}"
        )
        profile = options.fallback_profile
        confidence = options.min_confidence * 0.9
        method = "fallback"
        fallback_used = True

    secondaries: tuple[ProfileScore, ...] = ()
    is_hybrid = False
    if options.allow_hybrid:
        secondaries, is_hybrid = _hybrid(signals, verdict, profile)
        if is_hybrid:
            names = ", ".join(item.profile for item in secondaries)
            warnings.append(f"hybrid API: {profile} combined with {names}")

    confidence = round(confidence, 4)
    if confidence < LOW_CONFIDENCE:
        warnings.append(f"low detection confidence ({confidence:.2f})")

    return DetectionResult(
        primary_profile=profile,
        confidence=confidence,
        secondary_profiles=secondaries,
        is_hybrid=is_hybrid,
        method=method,
        fallback_used=fallback_used,
        signals=tuple(signals),
        heuristic=verdict,
        warnings=tuple(warnings),
    )


def _top_signal(signals: list[DetectionSignal]) -> DetectionSignal:
    best = signals[0]
    for signal in signals[1:]:
        if signal.weight > best.weight:
            best = signal
    return best


def _choose(
    verdict: HeuristicVerdict, top: DetectionSignal, options: DetectionOptions
) -> tuple[str | None, float, Method]:
    heuristic_conf = verdict.confidence if verdict.profile is not None else 0.0
    if top.weight > 0 and verdict.profile == top.profile_candidate:
        average = (heuristic_conf + top.weight) / 2
        return top.profile_candidate, min(0.98, average * 1.1), "unanimous-consensus"
    if heuristic_conf > HEURISTIC_STRONG and options.prefer_heuristic:
        return verdict.profile, heuristic_conf, "primary-signal-wins"
    if top.weight > PATTERN_STRONG:
        return top.profile_candidate, top.weight, "pattern-primary"
    if heuristic_conf > HEURISTIC_USABLE:
        return verdict.profile, heuristic_conf * 0.9, "primary-signal-wins"
    if top.weight > 0:
        return top.profile_candidate, top.weight * 0.9, "pattern-primary"
    return None, 0.0, "fallback"


def _hybrid(
    signals: list[DetectionSignal], verdict: HeuristicVerdict, primary: str
) -> tuple[tuple[ProfileScore, ...], bool]:
    significant = sorted(
        (signal for signal in signals if signal.weight > HYBRID_THRESHOLD),
        key=lambda signal: -signal.weight,
    )
    if len(significant) < 2:
        return (), False
    names = frozenset(signal.profile_candidate for signal in significant)
    secondaries = tuple(
        ProfileScore(signal.profile_candidate, signal.weight)
        for signal in significant
        if signal.profile_candidate != primary
    )
    if any(pair <= names for pair in CO_OCCURRING_PAIRS):
        return secondaries, False
    if verdict.ambiguous:
        return secondaries, True
    return (), False
