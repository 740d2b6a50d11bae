#!/usr/bin/env python3
"""auditloop - iterative, judge-scored code review loop.

Usage:
    python main.py audit --session demo --file candidate.py            # one judged round
    python main.py audit --session demo --file - < candidate.py        # candidate from stdin
    python main.py audit --session demo --file c.py --review r.json    # supply the verdict yourself
    python main.py status --session demo
    python main.py terminate --session demo
    python main.py reset --session demo
    python main.py cleanup
"""

import argparse
import json
import logging
import sys

from core.errors import AuditLoopError
from core.orchestrator import build_engine


def _read(path):
    if path == "-":
        return sys.stdin.read()
    with open(path) as f:
        return f.read()


def _print_round(payload):
    """Human-readable round summary."""
    gan = payload["gan"]
    status = payload["completionStatus"]
    feedback = payload["feedback"]

    print(f"Session:   {payload['sessionId']}  (loop {status['currentLoop']})")
    print(f"Score:     {gan['overall']}%  verdict: {gan['verdict']}  threshold: {status['threshold']}%")
    print(f"Status:    {status['message']}")
    if any(card["model"] == "fallback" for card in gan["judge_cards"]):
        print("Judge:     FALLBACK review (judge unavailable)")
    print(f"\n{feedback['summary']}")

    if feedback["criticalIssues"]:
        print("\nCritical issues:")
        for issue in feedback["criticalIssues"]:
            print(f"  [{issue['severity'].upper()}] {issue['description']}")
            print(f"           Fix: {issue['resolution']}")

    if feedback["nextSteps"]:
        print("\nNext steps:")
        for step in feedback["nextSteps"]:
            print(f"  {step['step']}. [{step['priority']}] {step['action']}")

    termination = payload.get("terminationInfo")
    if termination:
        print(f"\nTerminated ({termination['type']}): {termination['reason']}")
        for rec in termination["recommendations"]:
            print(f"  - {rec}")

    print(f"\nNext round needed: {'yes' if payload['nextThoughtNeeded'] else 'no'}")


def _print_status(status):
    state = "terminated" if status["terminated"] else "complete" if status["isComplete"] else "active"
    print(f"Session:   {status['sessionId']}")
    print(f"State:     {state}" + (f" ({status['completionReason']})" if status["completionReason"] else ""))
    print(f"Loop:      {status['currentLoop']} / {status['loopInfo']['maxLoops']}")
    scores = ", ".join(f"{s:g}" for s in status["scores"][-5:]) or "-"
    print(f"Scores:    {scores}")
    print(f"Trend:     {status['loopInfo']['progressTrend']}")


def cmd_audit(engine, args):
    code = _read(args.file)
    review = json.loads(_read(args.review)) if args.review else None
    payload = engine.process_round(
        args.session, code, review=review, loop_id=args.loop_id, config=args.config,
    )
    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        _print_round(payload)


def cmd_session(engine, args):
    actions = {
        "status": engine.status,
        "terminate": engine.terminate_session,
        "reset": engine.reset_session,
    }
    status = actions[args.command](args.session)
    if args.json:
        print(json.dumps(status, indent=2))
    else:
        _print_status(status)


def cmd_cleanup(engine, args):
    removed = engine.cleanup()
    print(f"Removed {len(removed)} stale session(s)")
    for session_id in removed:
        print(f"  {session_id}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="auditloop",
        description="Iterative judge-scored code review loop",
    )
    parser.add_argument("--state-dir", help="Session state directory (default: $AUDITLOOP_STATE_DIR)")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    audit = subparsers.add_parser("audit", help="Run one judged round")
    audit.add_argument("--session", required=True, help="Session id")
    audit.add_argument("--file", required=True, help="Candidate file, or - for stdin")
    audit.add_argument("--review", help="JSON file with a ready-made review (skips the judge)")
    audit.add_argument("--loop-id", help="Loop id to bind the session to")
    audit.add_argument("--config", help="Session config as a JSON object")
    audit.add_argument("--json", action="store_true", help="Print the raw payload")

    for name, help_text in (
        ("status", "Show a session"),
        ("terminate", "Terminate a session"),
        ("reset", "Start a session over"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--session", required=True, help="Session id")
        sub.add_argument("--json", action="store_true", help="Print raw JSON")

    subparsers.add_parser("cleanup", help="Remove sessions idle past the TTL")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    engine = build_engine(args.state_dir)

    handlers = {
        "audit": cmd_audit,
        "status": cmd_session,
        "terminate": cmd_session,
        "reset": cmd_session,
        "cleanup": cmd_cleanup,
    }
    try:
        handlers[args.command](engine, args)
    except (AuditLoopError, OSError, json.JSONDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
