# Namespace for pipeline steps
from .validate_candidate import ValidateCandidateInput  # noqa: F401
from .resolve_candidate import ResolveCandidate  # noqa: F401
from .gather_evidence import GatherPublicEvidence  # noqa: F401
from .verify_employers import VerifyEmployers  # noqa: F401
from .record_attestations import RecordAttestations  # noqa: F401
