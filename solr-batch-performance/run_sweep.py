"""
Orchestrator for the Solr batch-size ingestion sweep.

This script:
1. Starts a local SolrCloud example cluster
2. For each batch size, and for each client strategy:
   recreates the test collection and indexes TOTAL_NUM_DOCS documents
3. Prints one CSV line per batch size to stdout as it completes
4. Saves the full table under results/ and logs a summary
5. Stops the cluster
"""

import sys
import signal
import logging
import argparse
import threading
from typing import List, Optional

from config import (
    SOLR_BASE_URL, SOLR_INSTALL_DIR, SOLR_COMMAND_TIMEOUT_SEC, COLLECTION_NAME,
    NUM_SHARDS, NUM_REPLICAS, MIN_BATCH_SIZE, MAX_BATCH_SIZE,
    INCLUDE_MAX_BATCH_SIZE, TOTAL_NUM_DOCS, EXCLUDE_SYNTHESIS_TIME, STRATEGIES,
    REQUEST_TIMEOUT_SEC, CONCURRENT_QUEUE_SIZE, CONCURRENT_THREAD_COUNT,
    RESULTS_DIR
)
from benchmark import (
    SweepConfig, run_sweep, save_report_csv, summarize_report, print_summary_table
)
from errors import BenchmarkError, ResetFailure
from solr_cluster import SolrCluster
from strategies import build_strategy_specs

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO) -> None:
    """Log to stderr so stdout carries only the CSV report."""
    logging.basicConfig(
        level=level,
        format='[%(levelname)s] %(asctime)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Measure Solr indexing throughput per client strategy across batch sizes"
    )
    parser.add_argument("--solr-url", type=str, default=SOLR_BASE_URL,
                        help="Solr node base URL")
    parser.add_argument("--solr-dir", type=str, default=SOLR_INSTALL_DIR,
                        help="Solr install directory containing bin/solr")
    parser.add_argument("--collection", type=str, default=COLLECTION_NAME,
                        help="Test collection name")
    parser.add_argument("--shards", type=int, default=NUM_SHARDS,
                        help="Number of shards for the test collection")
    parser.add_argument("--replicas", type=int, default=NUM_REPLICAS,
                        help="Replication factor for the test collection")
    parser.add_argument("--min-batch-size", type=int, default=MIN_BATCH_SIZE,
                        help="First batch size in the sweep")
    parser.add_argument("--max-batch-size", type=int, default=MAX_BATCH_SIZE,
                        help="Upper bound of the sweep (exclusive unless --include-max-batch-size)")
    parser.add_argument("--include-max-batch-size", action="store_true",
                        default=INCLUDE_MAX_BATCH_SIZE,
                        help="Also run the sweep at --max-batch-size")
    parser.add_argument("--total-docs", type=int, default=TOTAL_NUM_DOCS,
                        help="Documents indexed per trial")
    parser.add_argument("--strategies", type=str, default=",".join(STRATEGIES),
                        help="Comma-separated strategies, in column order (e.g. 'Http,Cloud')")
    parser.add_argument("--exclude-synthesis-time", action="store_true",
                        default=EXCLUDE_SYNTHESIS_TIME,
                        help="Do not count document generation in trial timings")
    parser.add_argument("--command-timeout", type=float, default=SOLR_COMMAND_TIMEOUT_SEC,
                        help="Timeout in seconds for each bin/solr command")
    parser.add_argument("--request-timeout", type=float, default=REQUEST_TIMEOUT_SEC,
                        help="Timeout in seconds for each update request")
    parser.add_argument("--queue-size", type=int, default=CONCURRENT_QUEUE_SIZE,
                        help="Pending requests allowed by the ConcurrentUpdate strategy")
    parser.add_argument("--threads", type=int, default=CONCURRENT_THREAD_COUNT,
                        help="Runner threads used by the ConcurrentUpdate strategy")
    parser.add_argument("--results-dir", type=str, default=RESULTS_DIR,
                        help="Directory for the saved CSV")
    parser.add_argument("--skip-start", action="store_true",
                        help="Use an already running cluster")
    parser.add_argument("--keep-running", action="store_true",
                        help="Leave the cluster running when the sweep ends")
    return parser.parse_args(argv)


def build_sweep_config(args: argparse.Namespace, cluster: SolrCluster) -> SweepConfig:
    names = [x.strip() for x in args.strategies.split(",") if x.strip()]
    specs = build_strategy_specs(
        names,
        base_url=args.solr_url,
        collection=args.collection,
        timeout=args.request_timeout,
        queue_size=args.queue_size,
        thread_count=args.threads
    )
    return SweepConfig(
        strategies=tuple(specs),
        reset_hook=cluster.reset_collection,
        total_docs=args.total_docs,
        min_batch_size=args.min_batch_size,
        max_batch_size=args.max_batch_size,
        include_max_batch_size=args.include_max_batch_size,
        exclude_synthesis_time=args.exclude_synthesis_time
    )


def log_config(args: argparse.Namespace, config: SweepConfig) -> None:
    """Log all configuration parameters at start."""
    logger.info("=" * 60)
    logger.info("Batch Sweep Configuration")
    logger.info("=" * 60)
    logger.info(f"Solr URL: {args.solr_url}")
    logger.info(f"Solr install: {args.solr_dir}")
    logger.info(f"Collection: {args.collection} ({args.shards} shards x {args.replicas} replicas)")
    logger.info(f"Batch sizes: {config.batch_sizes.start}..{config.batch_sizes.stop - 1}")
    logger.info(f"Docs per trial: {config.total_docs}")
    logger.info(f"Strategies: {', '.join(config.strategy_names)}")
    logger.info(f"Exclude synthesis time: {config.exclude_synthesis_time}")
    logger.info("=" * 60)


def install_cancel_handler(cancel_event: threading.Event) -> None:
    """First Ctrl-C stops the sweep after the running trial; a second one interrupts."""
    def handler(signum, frame):
        logger.warning("Interrupt received, stopping after the current trial (Ctrl-C again to abort)")
        cancel_event.set()
        signal.signal(signal.SIGINT, signal.default_int_handler)

    signal.signal(signal.SIGINT, handler)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    setup_logging()
    args = parse_args(argv)

    cluster = SolrCluster(
        solr_dir=args.solr_dir,
        collection=args.collection,
        shards=args.shards,
        replicas=args.replicas,
        base_url=args.solr_url,
        command_timeout=args.command_timeout
    )

    try:
        config = build_sweep_config(args, cluster)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    log_config(args, config)

    cancel_event = threading.Event()
    install_cancel_handler(cancel_event)

    started = False
    try:
        if not args.skip_start:
            logger.info("Starting Solr...")
            cluster.start()
            started = True
        cluster.wait_until_ready()

        report = run_sweep(config, output=sys.stdout, cancel_event=cancel_event)
    except BenchmarkError as e:
        logger.error(f"Sweep aborted: {e}")
        return 1
    finally:
        if started and not args.keep_running:
            logger.info("Stopping Solr...")
            try:
                cluster.stop()
            except ResetFailure as e:
                logger.warning(f"Could not stop Solr: {e}")

    save_report_csv(report, args.results_dir)
    print_summary_table(summarize_report(report))

    if report.cancelled:
        logger.warning("Sweep was cancelled; results are partial")
        return 130

    logger.info("Batch sweep completed!")
    logger.info(f"Results saved in: {args.results_dir}/")
    return 0


if __name__ == "__main__":
    sys.exit(main())
