"""chainproof CLI: directive surface over a persisted session."""

import argparse
import json
import logging
import sys
from importlib.metadata import version as get_version, PackageNotFoundError
from pathlib import Path


DEFAULT_STORE = Path(".chainproof")


def _configure_logging(args) -> None:
    if args.quiet:
        level = logging.ERROR
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def main():
    """Main CLI entry point for chainproof directives."""
    try:
        chainproof_version = get_version("chainproof")
    except PackageNotFoundError:
        chainproof_version = "dev"

    parser = argparse.ArgumentParser(
        prog="chainproof",
        description="chainproof: chained functional commitments with per-step proofs"
    )
    parser.add_argument("--version", action="version", version=f"chainproof {chainproof_version}")
    # Common arguments
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--store",
        type=Path,
        default=DEFAULT_STORE,
        help="Store directory (defaults to .chainproof/)"
    )
    parent_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to engine config JSON (defaults to <store>/config.json if present)"
    )
    parent_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all non-error output."
    )
    parent_parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log chain and proving progress to stderr."
    )
    parent_parser.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        help="Print results as canonical JSON."
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    commit_parser = subparsers.add_parser(
        "commit",
        help="Evaluate an expression and commit its value",
        parents=[parent_parser]
    )
    commit_parser.add_argument("expression", help="Expression text, e.g. \"(lambda (x) (cons x nil))\"")

    chain_parser = subparsers.add_parser(
        "chain",
        help="Apply the committed head function to an input",
        parents=[parent_parser]
    )
    chain_parser.add_argument("commitment", help="Current head commitment (0x + 64 hex)")
    chain_parser.add_argument("input", help="Input expression")
    chain_parser.add_argument(
        "--step-limit",
        type=int,
        default=None,
        help="Reduction budget for this step"
    )

    prove_parser = subparsers.add_parser(
        "prove",
        help="Prove the most recent unproven chain step",
        parents=[parent_parser]
    )
    prove_parser.add_argument(
        "--step",
        type=int,
        default=None,
        help="Prove step N instead of the most recent unproven one"
    )
    prove_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds allowed for proving"
    )

    verify_parser = subparsers.add_parser(
        "verify",
        help="Verify a proof by identifier",
        parents=[parent_parser]
    )
    verify_parser.add_argument("identifier", help="Proof identifier (cp_...)")
    verify_parser.add_argument(
        "--artifact",
        type=Path,
        default=None,
        help="Verify this artifact file instead of the stored one"
    )

    open_parser = subparsers.add_parser(
        "open",
        help="Print the payload committed under a commitment",
        parents=[parent_parser]
    )
    open_parser.add_argument("commitment", help="Commitment (0x + 64 hex)")

    subparsers.add_parser(
        "audit",
        help="Re-hash the store directory and re-check step linkage",
        parents=[parent_parser]
    )

    export_parser = subparsers.add_parser(
        "export",
        help="Write a stored proof artifact to a file",
        parents=[parent_parser]
    )
    export_parser.add_argument("identifier", help="Proof identifier (cp_...)")
    export_parser.add_argument(
        "--out",
        type=Path,
        required=True,
        help="Output path for the artifact bytes"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args)

    def _emit(model) -> None:
        if args.quiet:
            return
        from ._internal.canonical_json import canonical_dumps
        print(canonical_dumps(model.model_dump(mode="json")))

    # Lazy import: only import the engine when a directive runs
    from .kernel.errors import ChainProofError

    try:
        if args.command == "audit":
            from ._internal.audit import audit_store

            report = audit_store(args.store)
            if args.as_json:
                _emit(report)
            elif not args.quiet:
                status = "OK" if report.ok else "FAILED"
                print(f"[{status}] Audit complete")
                print(f"  Commitments: {report.commitments_checked}")
                print(f"  Proofs: {report.proofs_checked}")
                print(f"  Steps: {report.steps_checked}")
                for issue in report.issues:
                    print(f"  {issue.code}: {issue.path}: {issue.message}")
            if not report.ok:
                sys.exit(1)
            sys.exit(0)

        from .api import open_session

        overrides = {}
        if args.command == "chain":
            overrides["step_limit"] = args.step_limit
        session = open_session(args.store, config=args.config, **overrides)

        if args.command == "commit":
            result = session.commit(args.expression)
            if args.as_json:
                _emit(result)
            elif not args.quiet:
                print(result.commitment)
        elif args.command == "chain":
            result = session.chain(args.commitment, args.input)
            if args.as_json:
                _emit(result)
            elif not args.quiet:
                print(result.output)
                print(result.new_head)
        elif args.command == "prove":
            result = session.prove(step=args.step, timeout=args.timeout)
            if args.as_json:
                _emit(result)
            elif not args.quiet:
                print(result.identifier)
        elif args.command == "verify":
            result = session.verify(args.identifier, artifact=args.artifact)
            if args.as_json:
                _emit(result)
            elif not args.quiet:
                status = "OK" if result.ok else "FAILED"
                print(f"[{status}] {result.code}")
                if result.reason:
                    print(f"  Reason: {result.reason}")
                if result.claim is not None:
                    print(f"  Prior: {result.claim.prior}")
                    print(f"  Input: {json.dumps(result.claim.input)}")
                    print(f"  Output: {json.dumps(result.claim.output)}")
                    print(f"  New head: {result.claim.new_head}")
            if not result.ok:
                sys.exit(1)
        elif args.command == "open":
            text = session.open(args.commitment)
            if not args.quiet:
                print(text)
        elif args.command == "export":
            path = session.export(args.identifier, args.out)
            if not args.quiet:
                print("[OK] Export complete")
                print(f"  Artifact: {path}")
        else:
            parser.print_help()
            sys.exit(1)
    except (ChainProofError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
