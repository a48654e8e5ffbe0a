# main.py
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

from scriptforge.callbacks import HttpProgressReporter, LoggingCallback, TrackerCallback
from scriptforge.client import FunctionsClient, FunctionsConfig
from scriptforge.exceptions import ScriptForgeError
from scriptforge.tracker import ProgressTracker
from scriptforge.types import TrackerEvent
from scriptforge.workflow import (
    GENERATION_STEPS,
    GenerationRequest,
    ReferenceScraper,
    ScriptGenerationWorkflow,
    WorkflowConfig,
)


class ConsoleCallback(TrackerCallback):
    """Prints one line per step transition."""

    def __init__(self, stream=None) -> None:
        self.stream = stream or sys.stdout

    def _print(self, event: TrackerEvent, text: str) -> None:
        print(f"[{event.snapshot.overall_progress:5.1f}%] {text}", file=self.stream)

    def on_step_started(self, event: TrackerEvent) -> None:
        step = event.snapshot.step(event.step_id)
        self._print(event, f"{step.label or step.id}...")

    def on_step_completed(self, event: TrackerEvent) -> None:
        self._print(event, f"done: {event.step_id}")

    def on_step_error(self, event: TrackerEvent) -> None:
        self._print(event, f"failed: {event.step_id}: {event.message}")

    def on_complete(self, event: TrackerEvent) -> None:
        self._print(event, "complete")


def load_script(value: str) -> str:
    """Scripts given as ``@path`` are read from disk."""
    if value.startswith("@"):
        return Path(value[1:]).read_text(encoding="utf-8")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scriptforge", description="Generate a viral video script from reference scripts.")
    parser.add_argument("--topic", required=True, help="Video topic")
    parser.add_argument("--script", action="append", default=[], help="Reference script text, or @file")
    parser.add_argument("--youtube", action="append", default=[], help="YouTube URL to pull a reference transcript from")
    parser.add_argument("--description", default="")
    parser.add_argument("--call-to-action", default="")
    parser.add_argument("--platform", default="youtube", choices=["youtube", "tiktok", "instagram"])
    parser.add_argument("--words", type=int, default=1400, help="Target word count")
    parser.add_argument("--ui-url", help="Endpoint that receives progress events")
    parser.add_argument("--log-level", default="warning")
    return parser


async def run(
    args: argparse.Namespace,
    config: Optional[FunctionsConfig] = None,
    stream=None,
    workflow_config: Optional[WorkflowConfig] = None,
) -> int:
    console = ConsoleCallback(stream)
    callbacks: list[TrackerCallback] = [console, LoggingCallback()]
    if args.ui_url:
        callbacks.append(HttpProgressReporter(args.ui_url))
    tracker = ProgressTracker(GENERATION_STEPS, callbacks=callbacks)

    try:
        config = config or FunctionsConfig.from_env()
        async with FunctionsClient(config) as client, tracker:
            scripts = [load_script(value) for value in args.script]
            if args.youtube:
                scripts.extend(await ReferenceScraper(client, callbacks=[console]).scrape(args.youtube))
            request = GenerationRequest(
                topic=args.topic,
                scripts=scripts,
                description=args.description,
                call_to_action=args.call_to_action,
                video_format={"platform": args.platform, "targetWordCount": args.words},
            )
            result = await ScriptGenerationWorkflow(client, tracker=tracker, config=workflow_config).generate(request)
    except ScriptForgeError as e:
        print("Script generation failed:", e, file=console.stream)
        return 1

    print(result.script, file=console.stream)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
