from __future__ import annotations

import argparse
from pathlib import Path

from stackup import __version__
from stackup.inputs import InputOverrides
from stackup.orchestrator import RunOptions, run_setup


def build_parser() -> argparse.ArgumentParser:
    """Build the stackup CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="stackup",
        description=(
            "Scaffold a pnpm/Turborepo monorepo with a Next.js app, an MCP server and a Supabase "
            "backend, then optionally push it to GitHub and deploy it to Vercel."
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Check prerequisites, collect inputs and print the planned stages without running them.",
    )
    parser.add_argument(
        "--local-only",
        action="store_true",
        help="Skip every remote step (Supabase project, GitHub, Vercel); use the local Supabase stack.",
    )
    parser.add_argument("--project-name", help="Project directory name (lowercase letters, digits, hyphens).")
    parser.add_argument("--org", dest="org_reference", help="Supabase organization ID (default: personal).")
    parser.add_argument(
        "--db-password",
        help="Database password. Prefer the interactive prompt; values on the command line end up in shell history.",
    )
    parser.add_argument("--repo", dest="target_repo", help="GitHub repository as owner/name to push to.")
    parser.add_argument("--region", help="Supabase region (default from config, else us-east-1).")
    parser.add_argument(
        "--deploy",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Deploy the web app to Vercel (default: ask, answering yes).",
    )
    parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation.")
    parser.add_argument("--config", type=Path, help="Path to a stackup.yaml (default: ./stackup.yaml if present).")
    parser.add_argument(
        "--workdir",
        type=Path,
        default=Path.cwd(),
        help="Directory in which the project directory is created (default: current directory).",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Run the CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)
    options = RunOptions(
        workdir=args.workdir,
        dry_run=bool(args.dry_run),
        local_only=bool(args.local_only),
        config_path=args.config,
        overrides=InputOverrides(
            project_name=args.project_name,
            db_password=args.db_password,
            org_reference=args.org_reference,
            target_repo=args.target_repo,
            region=args.region,
            deploy=args.deploy,
            assume_yes=bool(args.yes),
        ),
    )
    outcome = run_setup(options)
    raise SystemExit(outcome.exit_code)


if __name__ == "__main__":
    main()
