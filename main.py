"""Terminal entry point: translate, rephrase or test the connection.

Examples:
    python main.py translate --target French "Good morning"
    echo "some text" | python main.py rephrase --mode local --model llama3.2:1b
    python main.py test-connection --api-url http://localhost:1234/v1
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import TextIO

from seamless.diagnostics import check_startup_requirements, has_blocking_issues
from seamless.engine import LoadStatus, TranslationOrchestrator
from seamless.translation import BackendMode, TranslationConfig

COMMANDS = ("translate", "rephrase", "test-connection")


class TerminalSession:
    """Runs one command through the orchestrator and mirrors its state to the terminal.

    Streamed output goes to ``stdout`` as it arrives; status, model loading and
    connection messages go to ``stderr``.
    """

    def __init__(
        self,
        orchestrator: TranslationOrchestrator,
        stdout: TextIO = sys.stdout,
        stderr: TextIO = sys.stderr,
    ) -> None:
        self._orchestrator = orchestrator
        self._stdout = stdout
        self._stderr = stderr
        self._printed = 0
        orchestrator.state.subscribe(self._on_change)

    def _on_change(self, changed: frozenset[str]) -> None:
        state = self._orchestrator.state
        if "output" in changed:
            if len(state.output) < self._printed:
                self._printed = 0
            self._stdout.write(state.output[self._printed:])
            self._stdout.flush()
            self._printed = len(state.output)
        if "status" in changed and state.status:
            print(state.status, file=self._stderr)
        if "load_state" in changed:
            print(state.load_state.label, file=self._stderr)
        if "connection_status" in changed and state.connection_status:
            print(f"Connection: {state.connection_status}", file=self._stderr)

    def interrupt(self) -> None:
        """Ctrl-C: cancel whatever is running."""
        if self._orchestrator.load_state.in_flight:
            self._orchestrator.cancel_model_loading()
        else:
            self._orchestrator.cancel_current_operation()

    async def run(self, command: str, text: str) -> int:
        orchestrator = self._orchestrator

        if orchestrator.mode == BackendMode.LOCAL:
            if not orchestrator.selected_model_id:
                print("No local model selected. Set SEAMLESS_LOCAL_MODEL or pass --model.", file=self._stderr)
                return 1
            orchestrator.switch_mode(BackendMode.LOCAL)
            load_state = await orchestrator.loader.wait()
            if load_state.status != LoadStatus.LOADED:
                return 1

        params = orchestrator.params_for(orchestrator.text_limit.limit_text(text))

        if command == "test-connection":
            succeeded = await orchestrator.test_connection(params)
            return 0 if succeeded else 1

        if not params.text.strip():
            print("Nothing to process: input text is empty.", file=self._stderr)
            return 1

        if command == "translate":
            task = orchestrator.translate(params)
        else:
            task = orchestrator.rephrase(params)
        if task is None:
            return 1

        await task.wait()
        if self._printed:
            self._stdout.write("\n")
        return 1 if task.cancelled or orchestrator.state.status else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="seamless", description="Translate or rephrase text.")
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("text", nargs="*", help="Text to process (read from stdin if omitted)")
    parser.add_argument("--mode", choices=[m.value for m in BackendMode])
    parser.add_argument("--model", help="Web model name, or local model id in local mode")
    parser.add_argument("--source", help="Source language")
    parser.add_argument("--target", help="Target language")
    parser.add_argument("--api-url")
    parser.add_argument("--api-port")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def config_from_args(args: argparse.Namespace) -> TranslationConfig:
    config = TranslationConfig.from_env()
    if args.mode:
        config.mode = BackendMode(args.mode)
    if args.model:
        if config.mode == BackendMode.LOCAL:
            config.local.model_id = args.model
        else:
            config.web.model = args.model
    if args.source:
        config.source_language = args.source
    if args.target:
        config.target_language = args.target
    if args.api_url:
        config.web.api_url = args.api_url
    if args.api_port:
        config.web.api_port = args.api_port
    return config


async def run_command(config: TranslationConfig, command: str, text: str) -> int:
    orchestrator = TranslationOrchestrator.from_config(config)
    session = TerminalSession(orchestrator)

    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, session.interrupt)

    try:
        return await session.run(command, text)
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
        await orchestrator.aclose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = config_from_args(args)
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    issues = check_startup_requirements(config)
    for issue in issues:
        prefix = "[WARNING]" if issue.severity == "warning" else "[ERROR]"
        print(f"{prefix} {issue.title}: {issue.details}", file=sys.stderr)
    if has_blocking_issues(issues):
        return 1

    text = " ".join(args.text) if args.text else ""
    if not text and args.command != "test-connection":
        text = sys.stdin.read()

    return asyncio.run(run_command(config, args.command, text.strip()))


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    sys.exit(main())
