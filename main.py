#!/usr/bin/env python3
"""relay: news collection and digest pipeline.

This CLI collects items from an aggregation endpoint, deduplicates and
ranks them, builds a digest and delivers it to a chat webhook.

Commands:
    run         Execute the pipeline (once or continuously)
    status      Show configuration
    sources     List the configured news sources
    analyze     Run tech-relevance analysis on one title
    check       Validate config, fetch one source, test the webhook

Examples:
    python main.py run                    # Single run
    python main.py run -c                 # Continuous polling
    python main.py run --lang en          # English summary
    python main.py sources                # Show source registry
    python main.py analyze --title "OpenAI 发布新模型"

Environment:
    NEWS_API_BASE_URL: Aggregation endpoint (default http://localhost:5173)
    See config.py for all configuration options
"""

import argparse
import asyncio
import json
import logging
import sys

from config import Config
from observability.logging import setup_logging


def cmd_run(args: argparse.Namespace, config: Config) -> int:
    """Execute the pipeline.

    Returns:
        Exit code (0 when the run produced a digest)
    """
    from pipeline import run_continuous, run_once

    if args.lang:
        config.language = args.lang
    if args.interval:
        config.poll_interval_seconds = args.interval

    logger = logging.getLogger(__name__)

    try:
        if args.continuous:
            logger.info("Starting continuous mode...")
            asyncio.run(run_continuous(config))
            return 0
        report = asyncio.run(run_once(config))
        print(json.dumps(report.to_wire(), ensure_ascii=False, indent=2))
        return 0 if report.success else 1
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return 130  # Standard exit code for SIGINT


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    status = {
        "config": {
            "api_base_url": config.news_api_base_url,
            "language": config.language,
            "sources": len(config.sources),
            "enabled_sources": len(config.enabled_sources),
            "max_per_source": config.news_max_per_source,
            "total_limit": config.news_total_limit,
            "retry_attempts": config.retry_attempts,
            "cache_duration": config.cache_duration,
            "poll_interval": config.poll_interval_seconds,
            "enrichment_enabled": config.enrichment_enabled,
            "llm_enabled": config.llm_enabled,
            "llm_model": config.llm_model,
            "webhook_enabled": config.webhook_enabled,
            "enable_logfire": config.enable_logfire,
        },
        "validation_error": config.validate(),
    }
    print(json.dumps(status, ensure_ascii=False, indent=2))
    return 0


def cmd_sources(args: argparse.Namespace, config: Config) -> int:
    for source in config.sources:
        mark = "✓" if source.enabled else "✗"
        print(f"{mark} {source.id:<24} {source.name} (max {source.max_items})")
    return 0


def cmd_analyze(args: argparse.Namespace, config: Config) -> int:
    """Analyze a single title with the enrichment agent."""
    from agents.enricher import EnrichmentAgent

    async def analyze() -> None:
        agent = EnrichmentAgent(config)
        result = await agent.analyze_tech_news(args.title, args.description or "")

        print("\n=== Tech Analysis ===")
        print(f"Tech news: {result.is_tech_news}")
        print(f"Confidence: {result.confidence:.2f}")
        print(f"Keywords: {', '.join(result.tech_keywords) or '-'}")
        print(f"Source: {'local keywords' if result.fallback else 'LLM'}")
        if result.reasoning:
            print(f"Reasoning: {result.reasoning}")

    asyncio.run(analyze())
    return 0


def cmd_check(args: argparse.Namespace, config: Config) -> int:
    """Run the system check and print its results."""
    from pipeline import Pipeline

    results = asyncio.run(Pipeline(config).check())
    print(json.dumps(results, ensure_ascii=False, indent=2))
    return 0 if results["success"] else 1


def main() -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        description="relay: news collection and digest pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the digest pipeline")
    run_parser.add_argument(
        "-c", "--continuous",
        action="store_true",
        help="Run continuously with polling",
    )
    run_parser.add_argument(
        "--lang",
        choices=["zh", "en"],
        help="Summary language (default: zh)",
    )
    run_parser.add_argument(
        "--interval",
        type=int,
        help="Poll interval in seconds (continuous mode)",
    )

    subparsers.add_parser("status", help="Show configuration")
    subparsers.add_parser("sources", help="List configured news sources")

    analyze_parser = subparsers.add_parser("analyze", help="Tech-relevance analysis of one title")
    analyze_parser.add_argument(
        "--title",
        required=True,
        help="Title of the item",
    )
    analyze_parser.add_argument(
        "--description",
        help="Description or summary",
    )

    subparsers.add_parser("check", help="Validate config, fetch one source and test the webhook")

    args = parser.parse_args()

    try:
        config = Config.load()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(config, verbose=args.verbose)

    if args.command in ("run", "analyze"):
        error = config.validate()
        if error:
            print(f"Configuration error: {error}", file=sys.stderr)
            return 1

    commands = {
        "run": cmd_run,
        "status": cmd_status,
        "sources": cmd_sources,
        "analyze": cmd_analyze,
        "check": cmd_check,
    }

    if args.command in commands:
        try:
            return commands[args.command](args, config)
        except Exception as e:
            logging.getLogger(__name__).error("Command failed | cmd=%s error=%s", args.command, e, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
