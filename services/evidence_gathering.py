from __future__ import annotations

import concurrent.futures as _fut
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from db.repos.attempts_repo import AttemptsRepo
from models.evidence import EvidenceArtifact, EvidenceBatch, EvidenceResult
from ports.source import EvidenceSourcePort


logger = logging.getLogger(__name__)

# Prior verified attempts without a stored confidence reuse this value
REUSED_DEFAULT_CONFIDENCE = 0.8


def merge_results(per_source: Sequence[Tuple[str, Dict[str, EvidenceResult]]], employers: Sequence[str]) -> Dict[str, EvidenceResult]:
    """Combine per-source results into one result per employer.

    The strongest found result wins (highest confidence, earlier source on
    ties); with nothing found the highest-confidence miss is kept. Artifacts
    from every source are concatenated in source order.
    """
    merged: Dict[str, EvidenceResult] = {}
    for employer in employers:
        results = [r[employer] for _name, r in per_source if employer in r]
        if not results:
            continue
        pool = [r for r in results if r.found] or results
        best = pool[0]
        for r in pool[1:]:
            if r.confidence > best.confidence:
                best = r
        artifacts: List[EvidenceArtifact] = []
        for r in results:
            artifacts.extend(r.artifacts)
        merged[employer] = best.model_copy(update={"artifacts": tuple(artifacts)})
    return merged


class EvidenceGatherer:
    """Runs every registered source once per candidate and merges the answers.

    Employers that already hold a completed verified attempt for the same
    candidate reuse it and are not searched again.
    """

    def __init__(self, sources: Sequence[EvidenceSourcePort], attempts: Optional[AttemptsRepo] = None, max_workers: int = 4):
        self.sources = list(sources)
        self.attempts = attempts
        self.max_workers = max_workers

    def gather(self, candidate_name: str, employers: Sequence[str], candidate_id: Optional[str] = None) -> EvidenceBatch:
        reused = self._reuse_verified(candidate_id, employers)
        to_search = [e for e in employers if e not in reused]

        fresh: Dict[str, EvidenceResult] = {}
        if to_search and self.sources:
            fresh = merge_results(self._run_sources(candidate_name, to_search), to_search)
        logger.info(
            "Evidence gathered for %s employers (%s reused)", len(employers), len(reused),
            extra={"stage": "public_evidence"},
        )
        return EvidenceBatch(candidate_name, {**fresh, **reused})

    def _run_sources(self, candidate_name: str, employers: List[str]) -> List[Tuple[str, Dict[str, EvidenceResult]]]:
        def _gather(source: EvidenceSourcePort) -> Dict[str, EvidenceResult]:
            try:
                return source.gather(candidate_name, employers) or {}
            except Exception as e:
                logger.warning(
                    "Evidence source %s failed", source.source_name,
                    extra={"stage": "public_evidence", "provider": source.source_name, "error": str(e)},
                )
                return {}

        # Sources run concurrently; results are read back in registration order
        with _fut.ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(self.sources)))) as ex:
            futures = [ex.submit(_gather, s) for s in self.sources]
            return [(s.source_name, f.result()) for s, f in zip(self.sources, futures)]

    def _reuse_verified(self, candidate_id: Optional[str], employers: Sequence[str]) -> Dict[str, EvidenceResult]:
        if not candidate_id or self.attempts is None:
            return {}
        reused: Dict[str, EvidenceResult] = {}
        for employer in employers:
            prior = self.attempts.find_verified(candidate_id, employer)
            if prior is None:
                continue
            artifacts = tuple(a for a in prior.proof_artifacts if a.type not in ("contact_info", "policy_discovery", "policy_cache", "vendor_identified"))
            reused[employer] = EvidenceResult(
                found=True,
                confidence=prior.confidence or REUSED_DEFAULT_CONFIDENCE,
                artifacts=artifacts,
                reasoning=f"Reused verified evidence from attempt {prior.id}",
                source_type="cached",
            )
        return reused
