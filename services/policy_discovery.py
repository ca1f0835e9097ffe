from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from models.evidence import EvidenceArtifact
from models.policy import EmployerPolicy, PolicyDiscoveryResult
from ports.repos import PolicyCachePort
from services.domain_utils import normalize_employer_domain


logger = logging.getLogger(__name__)

NETWORK_VENDOR = "The Work Number"

# Large enterprises that only verify through a paid network; matched as a
# substring of the normalized employer key ("The Home Depot" -> "thehomedepot")
NETWORK_ONLY_EMPLOYERS = (
    "amazon", "walmart", "target", "homedepot", "lowes",
    "bestbuy", "costco", "kroger", "walgreens", "cvs",
    "mcdonalds", "starbucks", "chipotle", "panera", "subway",
)

# (brand token, vendor name); first token found as a whole word wins
VERIFICATION_VENDORS: Tuple[Tuple[str, str], ...] = (
    ("the work number", "Equifax Work Number"),
    ("equifax", "Equifax"),
    ("truework", "Truework"),
    ("hireright", "HireRight"),
    ("sterling", "Sterling"),
    ("checkr", "Checkr"),
    ("adp", "ADP"),
)


def match_network_only(employer_key: str) -> bool:
    return any(name in employer_key for name in NETWORK_ONLY_EMPLOYERS)


def match_vendor(employer_name: str) -> Optional[str]:
    low = (employer_name or "").lower()
    for token, vendor in VERIFICATION_VENDORS:
        if re.search(rf"\b{re.escape(token)}\b", low):
            return vendor
    return None


class PolicyDiscoverer:
    """Cache lookup, then the network-only list, then vendor brand tokens.

    Only the network-only classification is written back to the cache;
    vendor matches are cheap to recompute from the name.
    """

    def __init__(self, cache: PolicyCachePort):
        self.cache = cache

    def discover(self, employer_name: str) -> PolicyDiscoveryResult:
        domain = normalize_employer_domain(employer_name)
        artifacts: List[EvidenceArtifact] = []

        cached = self._cached(domain)
        if cached is not None:
            artifacts.append(
                EvidenceArtifact(
                    type="policy_cache",
                    value=cached.employer_domain,
                    label=f"Cached policy: {cached.notes or cached.policy_type}",
                )
            )
            logger.info("Policy cache hit for %s: %s", employer_name, cached.policy_type, extra={"stage": "policy_discovery", "employer": employer_name})
            return PolicyDiscoveryResult(policy=cached, from_cache=True, artifacts=artifacts)

        if domain and match_network_only(domain):
            policy = EmployerPolicy(
                employer_domain=domain,
                employer_name=employer_name,
                policy_type="network",
                verification_vendor=NETWORK_VENDOR,
                notes=f"Large enterprise - employment verification via {NETWORK_VENDOR} only",
            )
            self._store(domain, policy)
            artifacts.append(
                EvidenceArtifact(
                    type="policy_discovery",
                    value=NETWORK_VENDOR,
                    label=f"Known network-only employer - requires {NETWORK_VENDOR}",
                )
            )
            logger.info("%s is network-only", employer_name, extra={"stage": "policy_discovery", "employer": employer_name})
            return PolicyDiscoveryResult(policy=policy, artifacts=artifacts)

        vendor = match_vendor(employer_name)
        if vendor:
            policy = EmployerPolicy(
                employer_domain=domain,
                employer_name=employer_name,
                policy_type="network",
                verification_vendor=vendor,
                notes=f"Employment verification handled by {vendor}",
            )
            artifacts.append(
                EvidenceArtifact(
                    type="vendor_identified",
                    value=vendor,
                    label=f"Verification vendor identified: {vendor}",
                )
            )
            logger.info("%s uses vendor %s", employer_name, vendor, extra={"stage": "policy_discovery", "employer": employer_name})
            return PolicyDiscoveryResult(policy=policy, artifacts=artifacts)

        artifacts.append(
            EvidenceArtifact(
                type="policy_discovery",
                value="none",
                label="Policy discovery completed - no explicit policy found",
            )
        )
        return PolicyDiscoveryResult(policy=None, artifacts=artifacts)

    def _cached(self, domain: str) -> Optional[EmployerPolicy]:
        if not domain:
            return None
        try:
            return self.cache.get(domain)
        except Exception as e:
            # A broken cache is a miss, never a hard failure
            logger.warning("Policy cache read failed for %s", domain, extra={"stage": "policy_discovery", "error": str(e)})
            return None

    def _store(self, domain: str, policy: EmployerPolicy) -> None:
        try:
            if self.cache.get(domain) is None:
                self.cache.put(domain, policy)
        except Exception as e:
            logger.warning("Policy cache write failed for %s", domain, extra={"stage": "policy_discovery", "error": str(e)})
