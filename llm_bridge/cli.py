"""CLI entry point for llm-bridge.

Lets a human (or a script) check provider wiring without a chat host.
Same registry and guarded-call path the middlewares use.

Entry point:
    llm-bridge models [--json]
    llm-bridge complete --model <provider/model> [--system <prompt>] <prompt>
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from llm_bridge.config import DEFAULT_SYSTEM_PROMPT
from llm_bridge.errors import BridgeError
from llm_bridge.factory import Registry, register_default_providers

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llm-bridge",
        description="Query LLM platforms through llm-bridge providers.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    sub = parser.add_subparsers(dest="command")

    # models
    models_p = sub.add_parser("models", help="List available models")
    models_p.add_argument(
        "--json", action="store_true", dest="json_output",
        help="JSON output (models grouped by provider)",
    )

    # complete
    complete_p = sub.add_parser("complete", help="Run one chat completion")
    complete_p.add_argument("prompt", help="User message")
    complete_p.add_argument("--model", required=True, help="Model as provider/model")
    complete_p.add_argument("--system", default=DEFAULT_SYSTEM_PROMPT, help="System prompt")
    complete_p.add_argument("--timeout", type=float, default=None, help="Deadline in seconds")
    complete_p.add_argument("--max-retries", type=int, default=None, help="Retries after the first attempt")
    complete_p.add_argument("--stream", action="store_true", help="Print chunks as they arrive")

    return parser


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────


async def _cmd_models(registry: Registry, json_output: bool = False) -> int:
    """List available models. Returns exit code."""
    grouped: dict[str, list[str]] = {}
    for provider in await registry.select_model_providers():
        try:
            grouped[provider.name] = await provider.list_models()
        except BridgeError as e:
            print(f"Error listing {provider.name}: {e}", file=sys.stderr)
            grouped[provider.name] = []

    if not grouped:
        print(
            "Error: no providers configured. Set OPENAI_API_KEY or DASHSCOPE_API_KEY.",
            file=sys.stderr,
        )
        return 1

    if json_output:
        json.dump(grouped, sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        for provider_name, models in grouped.items():
            for model in models:
                print(f"{provider_name}/{model}")

    return 0


async def _cmd_complete(
    registry: Registry,
    model: str,
    prompt: str,
    system: str = DEFAULT_SYSTEM_PROMPT,
    timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    stream: bool = False,
) -> int:
    """Run one completion and print it. Returns exit code."""
    params = {}
    if timeout is not None:
        params["timeout_seconds"] = timeout
    if max_retries is not None:
        params["max_retries"] = max_retries

    messages = [
        {"role": "system", "content": system},
        {"role": "user", "content": prompt},
    ]

    try:
        chat_model = await registry.create_model(model, **params)
        if stream:
            async for chunk in chat_model.stream(messages):
                sys.stdout.write(chunk)
                sys.stdout.flush()
            sys.stdout.write("\n")
        else:
            generation = await chat_model.generate(messages)
            print(generation.text)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


async def _run(args: argparse.Namespace) -> int:
    registry = Registry()
    register_default_providers(registry)
    try:
        if args.command == "models":
            return await _cmd_models(registry, json_output=args.json_output)
        return await _cmd_complete(
            registry,
            model=args.model,
            prompt=args.prompt,
            system=args.system,
            timeout=args.timeout,
            max_retries=args.max_retries,
            stream=args.stream,
        )
    finally:
        await registry.dispose()


# ─────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────────────


def main():
    parser = _build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(name)s %(message)s", stream=sys.stderr)

    # Load env
    from dotenv import load_dotenv
    load_dotenv()

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
