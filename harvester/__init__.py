"""Funding-rounds harvester package.

Batch-scrapes per-company data from a session-authenticated, rate-limited
source with a pool of parallel execution units, streams results into an
append-only JSONL file and reshapes them into tabular outputs.

Key modules:
    models      -- WorkItem, Chunk, UnitMessage, PipelineStatus dataclasses
    partitioner -- partition() splitting items into contiguous chunks
    retry       -- RetryPolicy and retry_call() fixed-delay retry combinator
    session     -- SessionBase and HttpSession (curl_cffi / requests)
    base        -- BaseScraper abstract per-item pipeline
    scrapers    -- FinancialDetailsScraper funding-rounds extraction
    worker      -- ExecutionUnit processing one chunk in one session
    controller  -- WorkerPoolManager launching units and writing the sink
    aggregator  -- CompletionAggregator deciding overall run success
    storage     -- StorageBase, JsonlSink and read_jsonl()
    inputs      -- work item and credentials loading
    config      -- ScrapeOptions and PipelineConfig
    tabular     -- merge (long), pivot (wide) and CSV export
    log         -- logger factory with JSON and text formatters
    errors      -- exception hierarchy
"""
