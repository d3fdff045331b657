#!/usr/bin/env python3
"""
toolstream interactive CLI

Runs the orchestration engine in-process against the configured upstream
and prints the relayed stream as it arrives.

    python -m toolstream.interactive "turn on the bedroom light"
    python -m toolstream.interactive --raw "how many pods are running?"
"""

import argparse
import json
import logging
import signal
import sys
import threading
import uuid
from typing import Optional

from .config import config
from .errors import OrchestrationCancelled, ToolStreamError
from .orchestration import OrchestrationEngine, Relay, build_engine, run_in_thread
from .orchestration.upstream import UpstreamClient
from .tools.executor import build_default_registry

logger = logging.getLogger(__name__)

# Relay of the request in flight, cancelled on the first Ctrl+C
_active_relay: Optional[Relay] = None
_shutdown_requested = threading.Event()


def _signal_handler(signum: int, frame) -> None:
    relay = _active_relay
    if relay is not None and not relay.closed and not relay.cancelled:
        relay.cancel()
        print("\n\nCancelling request... (press Ctrl+C again to quit)", file=sys.stderr)
        return
    if _shutdown_requested.is_set():
        sys.exit(1)
    _shutdown_requested.set()
    raise KeyboardInterrupt


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def print_banner() -> None:
    print(
        f"""
toolstream interactive ({config.upstream.model} @ {config.upstream.base_url})

Commands:
  /help     - Show this help message
  /trace    - Show the actions of the last request
  /tools    - List available tools
  /raw      - Toggle raw SSE output
  /quit     - Exit the CLI

Ctrl+C cancels the request in flight.
"""
    )


def print_trace(engine: Optional[OrchestrationEngine]) -> None:
    if engine is None or not engine.steps:
        print("\nNo actions recorded. Run a request first.\n")
        return
    print("\n" + "=" * 70)
    for step in engine.steps:
        status = "ok" if step.success else "failed"
        print(f"Round {step.round}: {step.action} [{status}]")
        if step.arguments:
            print(f"  Arguments: {json.dumps(step.arguments)}")
        if step.observation:
            observation = step.observation
            if len(observation) > 200:
                observation = observation[:200] + "..."
            print(f"  Observation: {observation}")
        if step.summary:
            print(f"  Summary: {step.summary}")
    print("=" * 70 + "\n")


class InteractiveCLI:
    """Runs prompts through the engine and prints the stream."""

    def __init__(self, model: str, raw: bool = False):
        self.model = model
        self.raw = raw
        self.upstream = UpstreamClient(
            base_url=config.upstream.base_url,
            api_key=config.upstream.api_key,
            temperature=config.upstream.temperature,
        )
        self.registry = build_default_registry(config.tools)
        self.engine: Optional[OrchestrationEngine] = None

    def ask(self, prompt: str) -> bool:
        """
        Run one request and print its output.

        Returns:
            True when the stream completed cleanly.
        """
        global _active_relay

        execution_id = f"exec-{uuid.uuid4().hex[:8]}"
        self.engine = build_engine(
            config, self.upstream, self.registry, execution_id=execution_id
        )
        relay = Relay()
        _active_relay = relay
        run_in_thread(self.engine, self.model, [{"role": "user", "content": prompt}], relay)

        try:
            if self.raw:
                for frame in relay:
                    print(frame, end="", flush=True)
            else:
                for chunk in relay.chunks():
                    print(chunk["choices"][0]["delta"].get("content", ""), end="", flush=True)
                print()
            return True
        except OrchestrationCancelled:
            print("\n[cancelled]", file=sys.stderr)
        except ToolStreamError as e:
            print(f"\nError: {e}", file=sys.stderr)
        finally:
            _active_relay = None
        return False

    def run(self) -> None:
        """Read prompts until /quit or end of input."""
        print_banner()
        while not _shutdown_requested.is_set():
            try:
                user_input = input(">>> ").strip()
            except (EOFError, KeyboardInterrupt):
                print("\nGoodbye!\n")
                break

            if not user_input:
                continue
            command = user_input.lower()
            if command in ("/quit", "/exit", "/q"):
                print("\nGoodbye!\n")
                break
            elif command in ("/help", "/h", "/?"):
                print_banner()
            elif command == "/trace":
                print_trace(self.engine)
            elif command == "/tools":
                print("\n" + self.registry.get_tools_summary() + "\n")
            elif command == "/raw":
                self.raw = not self.raw
                print(f"\nRaw output: {'ON' if self.raw else 'OFF'}\n")
            elif command.startswith("/"):
                print(f"\nUnknown command: {user_input}\nType /help for available commands.\n")
            else:
                self.ask(user_input)

    def close(self) -> None:
        self.upstream.close()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Stream a prompt through toolstream's orchestration engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                # Start interactive mode
  %(prog)s "turn off the living room"    # Run a single prompt
  %(prog)s --raw "kubectl get pods"       # Print the SSE frames
""",
    )
    parser.add_argument("prompt", nargs="?", help="Run a single prompt and exit")
    parser.add_argument("--raw", action="store_true", help="Print SSE frames instead of text")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--model",
        default=config.upstream.model,
        help=f"Upstream model (default: {config.upstream.model})",
    )
    parser.add_argument(
        "--trace", action="store_true", help="Print executed actions after the answer"
    )
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    signal.signal(signal.SIGINT, _signal_handler)

    cli = InteractiveCLI(model=args.model, raw=args.raw)
    try:
        if args.prompt:
            ok = cli.ask(args.prompt)
            if args.trace:
                print_trace(cli.engine)
            return 0 if ok else 1
        cli.run()
        return 0
    finally:
        cli.close()


if __name__ == "__main__":
    sys.exit(main())
