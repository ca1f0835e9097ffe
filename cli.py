import argparse
import json
import logging
import os
import sys
import uuid as _uuid
from pathlib import Path
from typing import Dict, List

from config.settings import get_settings
from db import schema
from db.connection import get_connection
from db.repos.attempts_repo import AttemptsRepo
from db.repos.attestations_repo import AttestationsRepo, SqliteLedger
from db.repos.candidates_repo import CandidatesRepo
from db.repos.verifications_repo import VerificationsRepo
from models.candidate import CandidateInput
from pipelines.runner import Pipeline, RunContext
from pipelines.steps import (
    GatherPublicEvidence,
    RecordAttestations,
    ResolveCandidate,
    ValidateCandidateInput,
    VerifyEmployers,
)
from services.attestation import AttestationRecorder, record_manual_attestation
from services.errors import VerificationError
from services.evidence_gathering import EvidenceGatherer
from services.identity_matcher import IdentityMatcher
from services.reporting import call_usage_for_run, candidate_report, print_summary, verification_report
from utils.logging_setup import init_logging
import sources  # noqa: F401 ensure registration
from sources.registry import available_sources, get_source


logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _open_db(args):
    conn = get_connection(args.db)
    schema.bootstrap(conn)
    return conn


def _candidate_input(args) -> CandidateInput:
    return CandidateInput(
        name=args.name,
        email=args.email,
        phone=args.phone,
        linkedin_url=args.linkedin,
        city=args.city,
        state=args.state,
    )


def _parse_phones(pairs: List[str]) -> Dict[str, str]:
    phones: Dict[str, str] = {}
    for pair in pairs or []:
        employer, sep, number = pair.partition("=")
        if not sep or not employer.strip() or not number.strip():
            raise SystemExit(f"Invalid --employer-phone value (expected 'Employer=+15551234567'): {pair}")
        phones[employer.strip()] = number.strip()
    return phones


def _ensure_run_id() -> str:
    if not os.getenv("RUN_ID"):
        os.environ["RUN_ID"] = _uuid.uuid4().hex
    return os.environ["RUN_ID"]


def _build_workflow(conn):
    from services.contact_discovery import ContactDiscoverer
    from services.llm_client import LLMClient
    from services.outreach.email import PostmarkEmailer
    from services.outreach.phone import PhoneVerifier, VapiPhoneCaller
    from services.reply_classifier import build_reply_classifier
    from services.workflow import VerificationWorkflow

    settings = get_settings()
    llm = LLMClient()
    classifier = build_reply_classifier(settings, llm)
    return VerificationWorkflow(
        verifications=VerificationsRepo(conn),
        web_source=get_source("public_web", search=llm),
        contacts=ContactDiscoverer(llm),
        phone=PhoneVerifier(VapiPhoneCaller(settings), classifier),
        emailer=PostmarkEmailer(settings),
        classifier=classifier,
        candidates=CandidatesRepo(conn),
        attestations=AttestationRecorder(AttestationsRepo(conn), SqliteLedger(conn)),
        settings=settings,
    )


def cmd_bootstrap(args):
    _open_db(args)
    print("Schema ready")


def cmd_resolve(args):
    conn = _open_db(args)
    resolved = IdentityMatcher(CandidatesRepo(conn)).resolve(_candidate_input(args), args.employer or [])
    _print_json({
        "candidate": resolved.candidate.model_dump(mode="json"),
        "is_new": resolved.is_new,
        "match_type": resolved.match_type,
        "enriched_fields": resolved.enriched_fields,
    })


def cmd_suggest(args):
    conn = _open_db(args)
    suggestions = IdentityMatcher(CandidatesRepo(conn)).suggest(_candidate_input(args), args.employer or [], limit=args.limit)
    _print_json([
        {"candidate_id": s.candidate.id, "name": s.candidate.name, "score": s.score, "details": s.details}
        for s in suggestions
    ])


def cmd_verify(args):
    settings = get_settings()
    run_id = _ensure_run_id()
    conn = _open_db(args)

    names = args.source or list(available_sources().keys())
    if not settings.ai_enabled and "public_web" in names and not args.source:
        # Web search needs an AI provider; keep the batch runnable without one
        names.remove("public_web")
        print("AI disabled: skipping public_web source")
    evidence_sources = [get_source(n) for n in names]

    ctx = RunContext(candidate_input=_candidate_input(args), employers=list(args.employer or []))
    ctx.meta["employer_phones"] = _parse_phones(args.employer_phone)
    pipeline = Pipeline([
        ValidateCandidateInput(),
        ResolveCandidate(CandidatesRepo(conn)),
        GatherPublicEvidence(EvidenceGatherer(evidence_sources, AttemptsRepo(conn))),
        VerifyEmployers(conn),
        RecordAttestations(conn, AttestationRecorder(AttestationsRepo(conn), SqliteLedger(conn))),
    ])
    ctx = pipeline.run(ctx)

    results = [{"employer": employer, **result.to_payload()} for employer, result in ctx.results]
    output = {
        "candidate_id": ctx.candidate.id if ctx.candidate else None,
        "match_type": ctx.meta.get("match_type"),
        "results": results,
        "attestations": ctx.meta.get("attestations", {}),
        "errors": ctx.errors,
    }
    output_path = None
    if args.output:
        output_path = Path(args.output)
        output_path.write_text(json.dumps(output, indent=2, ensure_ascii=False), encoding="utf-8")
    else:
        _print_json(output)
    print_summary(results, call_usage_for_run(run_id), output_path)
    if ctx.errors:
        sys.exit(2)


def cmd_attest_manual(args):
    conn = _open_db(args)
    store = CandidatesRepo(conn)
    candidate, receipt = record_manual_attestation(
        IdentityMatcher(store),
        store,
        AttestationRecorder(AttestationsRepo(conn), SqliteLedger(conn)),
        _candidate_input(args),
        args.employer,
        company_domain=args.domain,
        reason=args.reason,
    )
    _print_json({
        "candidate_id": candidate.id,
        "reference_id": receipt.reference_id,
        "created": receipt.created,
    })


def cmd_find_phone(args):
    from services.llm_client import LLMClient
    from services.phone_extraction import PhoneNumberFinder
    from services.web_fetch import RequestsPageFetcher

    settings = get_settings()
    finder = PhoneNumberFinder(LLMClient(), RequestsPageFetcher(settings), settings)
    _print_json(finder.find(args.company).model_dump(mode="json"))


def cmd_discover_contacts(args):
    from services.contact_discovery import ContactDiscoverer
    from services.llm_client import LLMClient

    result = ContactDiscoverer(LLMClient()).discover(args.company, args.domain)
    _print_json(result.model_dump(mode="json"))


def cmd_workflow(args):
    conn = _open_db(args)
    workflow = _build_workflow(conn)
    if args.action == "create":
        if not args.candidate_name or not args.company:
            raise SystemExit("workflow create requires --candidate-name and --company")
        v = workflow.create(args.candidate_name, args.company, args.domain, args.job_title, args.candidate_id)
    elif args.action == "consent":
        if not args.id or args.approve == args.deny:
            raise SystemExit("workflow consent requires --id and exactly one of --approve/--deny")
        v = workflow.handle_consent(args.id, approved=args.approve)
    elif args.action == "run":
        if not args.id:
            raise SystemExit("workflow run requires --id")
        v = workflow.run(args.id)
    else:
        calls = workflow.expire_call_waits()
        emails = workflow.expire_email_waits()
        _print_json({"expired": [e.id for e in calls + emails]})
        return
    _print_json(v.model_dump(mode="json"))


def cmd_inbound_email(args):
    conn = _open_db(args)
    payload = json.loads(Path(args.input).read_text(encoding="utf-8"))
    v = _build_workflow(conn).handle_inbound_payload(payload, secret=args.secret)
    if v is None:
        print("No matching verification for inbound email")
        return
    _print_json({"id": v.id, "status": v.status.value, "final_result": v.final_result.value if v.final_result else None})


def cmd_call_webhook(args):
    conn = _open_db(args)
    payload = json.loads(Path(args.input).read_text(encoding="utf-8"))
    v = _build_workflow(conn).handle_call_webhook(payload, secret=args.secret)
    if v is None:
        print("No matching verification for call result")
        return
    _print_json({"id": v.id, "status": v.status.value, "final_result": v.final_result.value if v.final_result else None})


def cmd_report_candidate(args):
    conn = _open_db(args)
    _print_json(candidate_report(conn, args.id))


def cmd_report_verification(args):
    conn = _open_db(args)
    _print_json(verification_report(conn, args.id))


def _add_candidate_args(p, employer_required: bool = True, with_employers: bool = True) -> None:
    p.add_argument("--name", required=True, help="Candidate full name")
    p.add_argument("--email")
    p.add_argument("--phone")
    p.add_argument("--linkedin", help="LinkedIn profile URL")
    p.add_argument("--city")
    p.add_argument("--state")
    if with_employers:
        p.add_argument("--employer", action="append", required=employer_required, help="Claimed employer (repeatable)")


def main():
    settings = get_settings()
    init_logging(settings.log_level)
    parser = argparse.ArgumentParser(description="Employment verification CLI")
    parser.add_argument("--db", default=settings.db_path, help="Path to SQLite DB (default from settings)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_boot = sub.add_parser("bootstrap", help="Create tables and indexes")
    p_boot.set_defaults(func=cmd_bootstrap)

    p_res = sub.add_parser("resolve", help="Find or create the canonical candidate")
    _add_candidate_args(p_res, employer_required=False)
    p_res.set_defaults(func=cmd_resolve)

    p_sug = sub.add_parser("suggest", help="List likely existing matches for manual review")
    _add_candidate_args(p_sug, employer_required=False)
    p_sug.add_argument("--limit", type=int, default=5)
    p_sug.set_defaults(func=cmd_suggest)

    p_ver = sub.add_parser("verify", help="Resolve, gather evidence, verify every employer, attest")
    _add_candidate_args(p_ver)
    p_ver.add_argument("--employer-phone", action="append", help="Known employer phone as 'Employer=+15551234567' (repeatable)")
    p_ver.add_argument("--source", "-s", action="append", help="Evidence source to run (repeatable). Default: all registered")
    p_ver.add_argument("--output", "-o", help="Write JSON results to this file")
    p_ver.set_defaults(func=cmd_verify)

    p_att = sub.add_parser("attest-manual", help="Record an employer-side attestation")
    _add_candidate_args(p_att, with_employers=False)
    p_att.add_argument("--employer", required=True, help="Attesting employer")
    p_att.add_argument("--domain", help="Employer domain (default: guessed from the name)")
    p_att.add_argument("--reason", default="Employer attested employment")
    p_att.set_defaults(func=cmd_attest_manual)

    p_fp = sub.add_parser("find-phone", help="Find a company's HR/main phone from its contact pages")
    p_fp.add_argument("--company", required=True)
    p_fp.set_defaults(func=cmd_find_phone)

    p_dc = sub.add_parser("discover-contacts", help="High-confidence HR phone and email discovery")
    p_dc.add_argument("--company", required=True)
    p_dc.add_argument("--domain")
    p_dc.set_defaults(func=cmd_discover_contacts)

    p_wf = sub.add_parser("workflow", help="Consent-gated multi-channel verification")
    p_wf.add_argument("action", choices=["create", "consent", "run", "expire"])
    p_wf.add_argument("--id", help="Verification id")
    p_wf.add_argument("--candidate-name")
    p_wf.add_argument("--company")
    p_wf.add_argument("--domain")
    p_wf.add_argument("--job-title")
    p_wf.add_argument("--candidate-id")
    p_wf.add_argument("--approve", action="store_true")
    p_wf.add_argument("--deny", action="store_true")
    p_wf.set_defaults(func=cmd_workflow)

    p_in = sub.add_parser("inbound-email", help="Process an inbound email webhook payload (JSON file)")
    p_in.add_argument("--input", required=True)
    p_in.add_argument("--secret", help="Webhook secret presented by the sender")
    p_in.set_defaults(func=cmd_inbound_email)

    p_cw = sub.add_parser("call-webhook", help="Process a call-result webhook payload (JSON file)")
    p_cw.add_argument("--input", required=True)
    p_cw.add_argument("--secret", help="Webhook secret presented by the sender")
    p_cw.set_defaults(func=cmd_call_webhook)

    p_rc = sub.add_parser("report-candidate", help="Canonical candidate with channel statuses and latest attempts")
    p_rc.add_argument("--id", required=True)
    p_rc.set_defaults(func=cmd_report_candidate)

    p_rv = sub.add_parser("report-verification", help="Show a workflow verification record")
    p_rv.add_argument("--id", required=True)
    p_rv.set_defaults(func=cmd_report_verification)

    args = parser.parse_args()
    try:
        args.func(args)
    except VerificationError as e:
        logger.error("Command failed", extra={"error": str(e)})
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
