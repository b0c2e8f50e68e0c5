from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from typing import Optional, Sequence

from harvester.config import DEFAULT_CONFIG_PATH, PipelineConfig, ScrapeOptions, load_config
from harvester.controller import WorkerPoolManager
from harvester.errors import SetupError
from harvester.inputs import load_cookies, load_items
from harvester.log import get_logger, setup_logging
from harvester.scrapers import FinancialDetailsScraper
from harvester.session import http_session_factory
from harvester.storage import JsonlSink
from harvester import tabular

logger = get_logger("pipeline")


def scrape_financial_details(items_path: str, cookies_path: str, output_path: str, options: ScrapeOptions) -> bool:
    """Scrape every company's funding rounds into a JSONL file. True iff nothing failed."""
    items = load_items(items_path)
    cookies = load_cookies(cookies_path)
    session_factory = http_session_factory(
        cookies,
        impersonate=options.impersonate,
        probe_url=options.session_probe_url,
    )
    with JsonlSink(output_path) as sink:
        manager = WorkerPoolManager(
            scraper_factory=FinancialDetailsScraper,
            session_factory=session_factory,
            sink=sink,
            options=options,
        )
        status = manager.run(items)
    return status.success


def run_pipeline(config: PipelineConfig) -> bool:
    """Run the enabled steps in order; a step is skipped when its inputs are missing."""
    inputs, outputs, steps = config.inputs, config.outputs, config.steps
    done = {"scraped": False, "long": False, "wide": False}

    try:
        if steps.scrape_financial_details:
            logger.info("Step: scraping financial details...")
            if not scrape_financial_details(inputs.companies, inputs.cookies, outputs.scraped_financials, config.options):
                raise RuntimeError("Financial details scraping failed.")
            done["scraped"] = True
        else:
            logger.info("Step: skipping financial details scraping (disabled in config).")
            done["scraped"] = _exists(outputs.scraped_financials)

        if steps.run_merging_long:
            if not done["scraped"]:
                logger.warning("Step: skipping merging long (no scraped financials).")
            elif not tabular.run_merging(inputs.companies, outputs.scraped_financials, outputs.merged_long):
                raise RuntimeError("Merging long format failed.")
            else:
                done["long"] = True
        else:
            done["long"] = _exists(outputs.merged_long)

        if steps.run_pivoting_wide:
            if not done["scraped"]:
                logger.warning("Step: skipping pivoting wide (no scraped financials).")
            elif not tabular.run_pivoting(inputs.companies, outputs.scraped_financials, outputs.merged_wide):
                raise RuntimeError("Pivoting wide format failed.")
            else:
                done["wide"] = True
        else:
            done["wide"] = _exists(outputs.merged_wide)

        if steps.run_csv_conversion_long:
            if not done["long"]:
                logger.warning("Step: skipping CSV conversion long (dependency missing).")
            elif not tabular.run_conversion(outputs.merged_long, outputs.merged_long_csv):
                raise RuntimeError("CSV conversion long failed.")

        if steps.run_csv_conversion_wide:
            if not done["wide"]:
                logger.warning("Step: skipping CSV conversion wide (dependency missing).")
            elif not tabular.run_conversion(outputs.merged_wide, outputs.merged_wide_csv):
                raise RuntimeError("CSV conversion wide failed.")

    except (RuntimeError, SetupError, OSError) as exc:
        logger.error("Pipeline execution failed: %s", exc)
        return False

    if config.cleanup_intermediate_files:
        _cleanup(config, done)
    return True


def _cleanup(config: PipelineConfig, done: dict) -> None:
    outputs = config.outputs
    for path, produced in (
        (outputs.scraped_financials, done["scraped"]),
        (outputs.merged_long, done["long"]),
        (outputs.merged_wide, done["wide"]),
    ):
        if produced and _exists(path):
            os.remove(path)
            logger.info("Deleted intermediate file %s", path)


def _exists(path: str) -> bool:
    found = os.path.exists(path)
    if not found:
        logger.warning("File %s not found. Steps depending on it will be skipped.", path)
    return found


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Harvest funding rounds and build tabular outputs")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to pipeline_config.json")

    parser.add_argument("--workers", type=int, help="Number of parallel execution units")
    parser.add_argument("--pause-ms", type=int, help="Pause between items of one unit (ms)")
    parser.add_argument("--timeout-ms", type=int, help="Per-item timeout (ms)")
    parser.add_argument("--max-retries", type=int, help="Retries per item after the first attempt")
    parser.add_argument("--retry-delay-ms", type=int, help="Fixed delay between attempts (ms)")

    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-format", choices=("json", "text"), help="Log output format")

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        options = config.options.with_overrides(
            number_of_workers=args.workers,
            pause_between_items_ms=args.pause_ms,
            per_item_timeout_ms=args.timeout_ms,
            max_retries_per_item=args.max_retries,
            retry_delay_ms=args.retry_delay_ms,
        )
    except SetupError as exc:
        setup_logging(args.log_level or "INFO", args.log_format or "text")
        logger.error("%s", exc)
        return 1

    setup_logging(args.log_level or config.log_level, args.log_format or config.log_format)
    config = replace(config, options=options)

    if run_pipeline(config):
        logger.info("Pipeline executed successfully!")
        return 0
    logger.error("Pipeline finished with errors.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
