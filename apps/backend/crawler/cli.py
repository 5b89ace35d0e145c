"""
Command-line entry point for the listing crawler.

Usage:
    listing-crawler --category "web development" --results-wanted 50
    listing-crawler --input input.json --output storage/datasets/run.jsonl
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Dict, List, Optional

from dotenv import load_dotenv

from core.config import ConfigurationError, load_run_config
from pipeline.dataset import DatasetWriter

from .orchestrator import FrontierController

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
EXIT_OK = 0
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Crawl project listings into a JSON-lines dataset')
    parser.add_argument('--keyword', type=str, help='Search keyword (sent to the remote API)')
    parser.add_argument('--category', type=str, help='Category slug or name')
    parser.add_argument('--results-wanted', type=str,
                        help="Maximum records to save; 'unbounded' for no limit")
    parser.add_argument('--max-pages', type=int, help='Listing pages per chain')
    parser.add_argument('--start-url', action='append', dest='start_urls',
                        help='Seed listing URL (repeatable)')
    parser.add_argument('--no-details', action='store_false', dest='collect_details', default=None,
                        help='Save listing URLs only, without visiting detail pages')
    parser.add_argument('--no-dedupe', action='store_false', dest='dedupe', default=None,
                        help='Do not deduplicate detail URLs and records')
    parser.add_argument('--no-api', action='store_false', dest='use_api_first', default=None,
                        help='Skip the remote API and parse listing HTML only')
    parser.add_argument('--request-delay-ms', type=int, help='Base delay between requests')
    parser.add_argument('--max-concurrency', type=int, help='Number of concurrent workers')
    parser.add_argument('--proxy-url', type=str, help='HTTP(S) proxy URL')
    parser.add_argument('--input', type=str, help='JSON input file')
    parser.add_argument('--output', type=str, dest='output_path', help='Dataset output path (JSON lines)')
    parser.add_argument('--log-level', type=str, help='Logging level (default INFO)')
    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict:
    """CLI flags that were actually given, keyed by RunConfig field."""
    names = [
        'keyword', 'category', 'results_wanted', 'max_pages', 'start_urls',
        'collect_details', 'dedupe', 'use_api_first', 'request_delay_ms',
        'max_concurrency', 'proxy_url', 'output_path', 'log_level',
    ]
    return {name: getattr(args, name) for name in names if getattr(args, name) is not None}


def configure_logging(level: Optional[str]):
    level_name = (level or os.getenv('CRAWLER_LOG_LEVEL') or 'INFO').upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = load_run_config(input_path=args.input, overrides=overrides_from_args(args))
        controller = FrontierController(config, sink=DatasetWriter(config.output_path))
        summary = asyncio.run(controller.run())
    except ConfigurationError as e:
        logger.error(f"[cli] Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    print(json.dumps(summary.to_dict(), indent=2))
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
