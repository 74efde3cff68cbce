"""
Command line entry point.

    devagent init
    devagent goal create "Title" [-d DESCRIPTION]
    devagent goal list [--status todo]
    devagent goal start|complete|stop|check-pr <goal-id>
    devagent goal cleanup
    devagent github sync
    devagent github push <goal-id>
    devagent config get [key]
    devagent config set <key> <value>
    devagent llm list
    devagent llm add <provider> <api-key> [--model M] [--base-url URL] [--default]
    devagent llm remove|default <provider>
    devagent llm retry [--max-retries N] [--delay-ms MS] [--backoff X]
    devagent lang check "<text>" [--strict] [--no-translate]
    devagent lang check --file <path>

Exit code 0 on success, 1 otherwise.
"""

import argparse
import json
import sys
from typing import List, Optional

from devagent.core.agent import DevAgent
from devagent.core.errors import ErrorKind
from devagent.core.goals import GoalStatus
from devagent.core.logger import setup_logging
from devagent.core.results import CommandResult
from devagent.models.providers import PROVIDER_NAMES
from devagent.utils.config import get_logging_level, load_env


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="devagent", description="Goal-driven development workflow")
    parser.add_argument("--json", action="store_true", help="print the raw result as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="initialize Dev Agent in the current repository")

    goal = sub.add_parser("goal", help="goal lifecycle").add_subparsers(dest="action", required=True)
    create = goal.add_parser("create", help="create a goal")
    create.add_argument("title")
    create.add_argument("-d", "--description")
    listing = goal.add_parser("list", help="list goals")
    listing.add_argument("--status", choices=[s.value for s in GoalStatus])
    for name in ("start", "complete", "stop", "check-pr"):
        goal.add_parser(name).add_argument("goal_id")
    goal.add_parser("cleanup", help="remove leftover branches of completed goals")

    github = sub.add_parser("github", help="GitHub issue sync").add_subparsers(dest="action", required=True)
    github.add_parser("sync", help="import open issues as goals")
    github.add_parser("push", help="mirror a goal's status to its issue").add_argument("goal_id")

    config = sub.add_parser("config", help="stored configuration").add_subparsers(dest="action", required=True)
    config.add_parser("get").add_argument("key", nargs="?")
    setter = config.add_parser("set")
    setter.add_argument("key")
    setter.add_argument("value")

    llm = sub.add_parser("llm", help="translation providers").add_subparsers(dest="action", required=True)
    llm.add_parser("list", help="show providers and the retry policy")
    add = llm.add_parser("add", help="add or replace a provider")
    add.add_argument("provider", choices=PROVIDER_NAMES)
    add.add_argument("api_key")
    add.add_argument("--model")
    add.add_argument("--base-url")
    add.add_argument("--default", action="store_true", help="make it the default provider")
    for name in ("remove", "default"):
        llm.add_parser(name).add_argument("provider")
    retry = llm.add_parser("retry", help="change the rate-limit retry policy")
    retry.add_argument("--max-retries", type=int)
    retry.add_argument("--delay-ms", type=float)
    retry.add_argument("--backoff", type=float)

    lang = sub.add_parser("lang", help="English-only content checks").add_subparsers(dest="action", required=True)
    check = lang.add_parser("check", help="check inline text or a file")
    check.add_argument("text", nargs="?")
    check.add_argument("-f", "--file")
    check.add_argument("-s", "--strict", action="store_true", help="fail on non-English content")
    check.add_argument("--no-translate", action="store_true", help="do not auto-translate")
    return parser


def dispatch(agent: DevAgent, args: argparse.Namespace) -> CommandResult:
    if args.command == "init":
        return agent.initialize_project()

    if args.command == "goal":
        if args.action == "create":
            return agent.create_goal(args.title, args.description)
        if args.action == "list":
            return agent.list_goals(args.status)
        if args.action == "cleanup":
            return agent.cleanup_completed_goals()
        handlers = {
            "start": agent.start_goal,
            "complete": agent.complete_goal,
            "stop": agent.stop_goal,
            "check-pr": agent.check_pull_request_status,
        }
        return handlers[args.action](args.goal_id)

    if args.command == "github":
        if args.action == "sync":
            return agent.sync_from_github()
        return agent.sync_goal_to_github(args.goal_id)

    if args.command == "config":
        if args.action == "set":
            return agent.set_configuration(args.key, args.value)
        return agent.get_configuration(args.key)

    if args.command == "llm":
        if args.action == "add":
            return agent.add_llm_provider(
                args.provider, args.api_key, model=args.model, base_url=args.base_url, make_default=args.default
            )
        if args.action == "remove":
            return agent.remove_llm_provider(args.provider)
        if args.action == "default":
            return agent.set_default_llm_provider(args.provider)
        if args.action == "retry":
            return agent.set_llm_retry_config(args.max_retries, args.delay_ms, args.backoff)
        return agent.list_llm_providers()

    if (args.text is None) == (args.file is None):
        return CommandResult.fail(
            "Give either inline text or --file", error="Nothing to check", kind=ErrorKind.VALIDATION
        )
    if args.file:
        return agent.validate_file_content(args.file)
    return agent.validate_before_save(
        "comment", "content", args.text, auto_translate=not args.no_translate, strict_mode=args.strict
    )


def render(result: CommandResult) -> str:
    lines = [result.message if result.success else f"Error: {result.message}"]
    if not result.success and result.error and result.error != result.message:
        lines.append(f"  {result.error}")
    for warning in result.warnings:
        lines.append(f"  warning: {warning}")

    data = result.data or {}
    for goal in data.get("goals", []):
        branch = f"  [{goal['branch_name']}]" if goal.get("branch_name") else ""
        issue = f"  #{goal['github_issue_id']}" if goal.get("github_issue_id") else ""
        lines.append(f"  {goal['id']}  {goal['status']:<12} {goal['title']}{issue}{branch}")
    if "counts" in data:
        lines.append("  " + ", ".join(f"{k}: {v}" for k, v in data["counts"].items()))
    for provider in data.get("providers", []):
        marker = "  (default)" if provider["default"] else ""
        url = f"  {provider['base_url']}" if provider.get("base_url") else ""
        lines.append(f"  {provider['name']:<10} {provider['model']}{url}{marker}")
    for key, value in (data.get("config") or {}).items():
        lines.append(f"  {key} = {value}")
    if data.get("translated_content"):
        lines.append("  Suggested translation:")
        lines.append(f"  {data['translated_content']}")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    load_env()
    setup_logging("DEBUG" if args.verbose else get_logging_level())

    agent = DevAgent.from_config()
    try:
        result = dispatch(agent, args)
    finally:
        agent.close()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print(render(result))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
