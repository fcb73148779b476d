import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import structlog

from .config import Settings, get_settings
from .exceptions import ConfigurationError
from .llm.llm_client import build_chat_model
from .models import ResearchMode
from .orchestration.controller import IterationController
from .tools.embeddings import SentenceTransformerEmbeddings
from .tools.fetch import HttpFetcher
from .tools.search_searxng import SearxngSearch, news_search
from .triangulation.news import NewsTriangulator


def _init_logging(level: str):
    logging.basicConfig(level=level, stream=sys.stderr)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="deep-research", description="Budgeted web research with cited outlines")
    p.add_argument("--query", required=True, help="Research query (required)")
    p.add_argument("--mode", choices=[m.value for m in ResearchMode], default=ResearchMode.BALANCED.value)
    p.add_argument("--budget", type=int, default=None, help="Action cap; can only lower the mode cap")
    p.add_argument("--triangulate", action="store_true", help="Compare news coverage across political lanes instead")
    p.add_argument("--output", default=None, help="Also write the JSON result to this file")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    return p


async def _research(args, settings: Settings) -> dict:
    chat = build_chat_model(settings)
    embed = SentenceTransformerEmbeddings(settings.EMBEDDING_MODEL)

    if args.triangulate:
        search = news_search(settings)
        try:
            result = await NewsTriangulator(chat, embed, search, settings=settings).run(args.query)
        finally:
            await search.aclose()
        return result.model_dump(mode="json")

    search = SearxngSearch(settings)
    fetcher = HttpFetcher(settings)
    try:
        controller = IterationController(chat, embed, search, fetcher, settings=settings)
        state = await controller.research(args.query, mode=args.mode, budget=args.budget)
    finally:
        await search.aclose()
        await fetcher.aclose()
    return {
        "query": state.query,
        "mode": state.mode.value,
        "stop_reason": state.stop_reason,
        "actions": [
            {"index": r.index, "kind": r.kind.value, "status": r.status, "detail": r.detail}
            for r in state.actions
        ],
        "outline": state.outline.model_dump(mode="json"),
        "markdown": state.outline.to_markdown(),
    }


def main(argv=None):
    args = build_parser().parse_args(argv)
    settings = get_settings()
    _init_logging("DEBUG" if args.verbose else settings.LOG_LEVEL)

    if settings.ENABLE_PROMETHEUS:
        from prometheus_client import start_http_server
        start_http_server(settings.PROMETHEUS_PORT)

    try:
        result = asyncio.run(_research(args, settings))
    except ConfigurationError as e:
        sys.stderr.write(f"\nConfiguration error: {e}\n")
        sys.exit(2)
    except KeyboardInterrupt:
        sys.stderr.write("\nInterrupted by user.\n")
        sys.exit(1)

    text = json.dumps(result, indent=2, ensure_ascii=False)
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
        print(f"Output written to: {out}", file=sys.stderr)
    print(text)


if __name__ == "__main__":
    main()
