"""Command-line entry point: ``python -m chatstream "prompt"``."""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from chatstream.config import EngineConfig
from chatstream.errors import ChatStreamError
from chatstream.providers.registry import AdapterRegistry, default_registry

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chatstream", description="Chat with a language model from the terminal")
    parser.add_argument("prompt", nargs="?", help="message to send")
    parser.add_argument("--service", default=None, help="provider service name")
    parser.add_argument("--model", default=None)
    parser.add_argument("--system", action="append", default=[], help="system instruction (repeatable)")
    parser.add_argument("--think", action="store_true", help="request thinking; printed to stderr")
    parser.add_argument("--no-stream", dest="stream", action="store_false", help="wait for the full answer")
    parser.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    parser.add_argument("--list-models", action="store_true", help="list available models and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


async def run(args: argparse.Namespace, registry: AdapterRegistry) -> int:
    config = EngineConfig.from_env(
        env_file=args.env_file,
        service=args.service,
        model=args.model,
        think=args.think or None,
        stream=args.stream,
    )
    async with registry.create_engine(config) as engine:
        if args.list_models:
            for model in await engine.fetch_models():
                print(f"{model.model}\t{model.name}")
            return 0

        for text in args.system:
            engine.conversation.system(text)

        if not config.stream:
            response = await engine.chat(args.prompt)
            if config.think or config.extended:
                if response.thinking:
                    print(response.thinking, file=sys.stderr)
                print(response.content)
            else:
                print(response)
            return 0

        stream = await engine.chat(args.prompt)
        if not (config.think or config.extended):
            async for delta in stream:
                print(delta, end="", flush=True)
            print()
            return 0

        async for event in stream:
            if event.type == "thinking":
                print(event.content, end="", file=sys.stderr, flush=True)
            elif event.type == "content":
                print(event.content, end="", flush=True)
        print()
        response = await stream.complete()
        if response.usage is not None:
            logger.info(
                "Tokens: input=%d output=%d total=%d",
                response.usage.input_tokens, response.usage.output_tokens, response.usage.total_tokens,
            )
        return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    if not args.prompt and not args.list_models:
        build_parser().error("a prompt is required unless --list-models is given")

    try:
        return asyncio.run(run(args, default_registry()))
    except KeyboardInterrupt:
        return 130
    except (ChatStreamError, ValueError) as exc:
        logger.error("%s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
