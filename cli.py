"""CLI entrypoint for the text-to-video relay."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional, Sequence

import uvicorn

import main as app_main
import state
from backends import GUIDANCE_MAX, GUIDANCE_MIN, ModelId, TuningOptions, list_backends, resolve
from client import proxy_client_factory
from errors import GenerationError
from logging_config import setup_logging
from media import default_filename, download_media
from orchestrator import JobOrchestrator


def _guidance(value: str) -> float:
    parsed = float(value)
    if not GUIDANCE_MIN <= parsed <= GUIDANCE_MAX:
        raise argparse.ArgumentTypeError(
            f"guidance must be between {GUIDANCE_MIN:g} and {GUIDANCE_MAX:g}"
        )
    return parsed


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for all subcommands."""
    parser = argparse.ArgumentParser(description="Text-to-video relay and client.")
    parser.add_argument("--debug", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the proxy gateway.")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    sub.add_parser("models", help="List available backends.")

    generate = sub.add_parser("generate", help="Generate a video through the proxy.")
    generate.add_argument("prompt")
    generate.add_argument(
        "--model",
        default=ModelId.LTX_VIDEO.value,
        choices=[model.value for model in ModelId],
    )
    generate.add_argument("--guidance", type=_guidance, default=None)
    generate.add_argument(
        "--no-enhance",
        dest="enhance",
        action="store_false",
        help="Disable prompt enhancement on backends that support it.",
    )
    generate.add_argument("--download", nargs="?", const="", default=None, metavar="PATH")
    return parser


def _print_models() -> None:
    for config in list_backends():
        print(f"{config.id.value:<12} {config.name} - {config.description}")


def _print_status(message: str) -> None:
    if message:
        print(message, file=sys.stderr)


async def _generate(args: argparse.Namespace) -> int:
    settings = state.settings
    config = resolve(args.model)
    options = TuningOptions(
        guidance_scale=args.guidance if args.guidance is not None else config.default_guidance,
        enhance_prompt=args.enhance,
    )
    async with proxy_client_factory(settings) as client:
        orchestrator = JobOrchestrator(
            client,
            poll_interval=settings.poll_interval_seconds,
            max_poll_attempts=settings.max_poll_attempts,
            max_poll_seconds=settings.max_poll_seconds,
            on_status=_print_status,
        )
        try:
            job = await orchestrator.submit(args.prompt, config.id, options)
        except GenerationError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        print(job.media_url)

        if args.download is not None and job.media_url:
            destination = args.download or settings.download_dir
            try:
                path = await download_media(
                    client,
                    job.media_url,
                    destination,
                    filename=default_filename(config.id.value),
                )
            except GenerationError as exc:
                print(f"Error: {exc}", file=sys.stderr)
                return 1
            print(f"Saved {path}", file=sys.stderr)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Dispatch the selected subcommand."""
    args = build_parser().parse_args(argv)

    if args.debug:
        state.settings.debug = True
        setup_logging(True, secrets=[state.settings.api_token or ""])

    if args.command == "models":
        _print_models()
        return 0
    if args.command == "generate":
        return asyncio.run(_generate(args))

    use_uvloop = app_main.install_uvloop()
    uvicorn.run(
        app_main.app,
        host=args.host or state.settings.host,
        port=args.port or state.settings.port,
        loop="uvloop" if use_uvloop else "asyncio",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
