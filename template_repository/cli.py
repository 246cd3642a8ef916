"""Command-line access to the template repository.

Usage:
    template-repository status
    template-repository refresh
    template-repository steps
    template-repository get-workflow convert-and-publish
    template-repository --source github --ttl 0 workflows
    template-repository serve --port 8000
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from argparse import ArgumentParser
from typing import Any

from dotenv import load_dotenv

from template_repository.errors import ConfigError
from template_repository.loader import TemplateRepository


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


async def _run(args) -> int:
    repository = TemplateRepository.from_env()
    overrides = {
        "repo": args.repo,
        "branch": args.branch,
        "repo_path": args.path,
        "cache_ttl": args.ttl,
        "source": args.source,
    }
    if any(v is not None for v in overrides.values()):
        repository.reconfigure(**overrides)

    if args.command == "status":
        _print_json(repository.status())
    elif args.command == "refresh":
        _print_json(await repository.refresh())
    elif args.command == "steps":
        _print_json(await repository.load_steps())
    elif args.command == "workflows":
        _print_json(await repository.load_workflows())
    elif args.command in ("get-step", "get-workflow"):
        if args.command == "get-step":
            item = await repository.get_step_by_id(args.id)
        else:
            item = await repository.get_workflow_by_id(args.id)
        if item is None:
            print(f"Not found: {args.id}", file=sys.stderr)
            return 1
        _print_json(item)
    return 0


def _build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="template-repository",
        description="Load step and workflow templates from GitHub, the local mirror or bundled defaults.",
    )
    parser.add_argument("--repo", help="GitHub repository as owner/name (overrides GITHUB_REPO)")
    parser.add_argument("--branch", help="Branch to read (overrides GITHUB_BRANCH)")
    parser.add_argument("--path", help="Repository folder inside the GitHub repo (overrides REPOSITORY_PATH)")
    parser.add_argument("--ttl", type=int, help="Cache TTL in seconds (overrides REPOSITORY_CACHE_TTL)")
    parser.add_argument("--source", choices=["github", "local"], help="Source mode (overrides REPOSITORY_SOURCE)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show cache status")
    sub.add_parser("refresh", help="Reload both collections from the configured source")
    sub.add_parser("steps", help="Print every step template")
    sub.add_parser("workflows", help="Print every workflow template")
    get_step = sub.add_parser("get-step", help="Print one step template")
    get_step.add_argument("id")
    get_workflow = sub.add_parser("get-workflow", help="Print one workflow template")
    get_workflow.add_argument("id")

    serve_p = sub.add_parser("serve", help="Run the HTTP API")
    serve_p.add_argument("--host", default="0.0.0.0")
    serve_p.add_argument("--port", type=int, default=8000)
    serve_p.add_argument("--reload", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = _build_parser().parse_args(argv)

    if args.command == "serve":
        from template_repository.api import serve

        serve(host=args.host, port=args.port, reload=args.reload)
        return 0

    logging.basicConfig(
        level=os.getenv("REPOSITORY_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return asyncio.run(_run(args))
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
