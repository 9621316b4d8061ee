"""
Configuration for the Solr batch-size ingestion sweep
"""

# Solr endpoints
SOLR_BASE_URL = "http://localhost:8983/solr"

# Solr install used by bin/solr for cluster lifecycle commands
SOLR_INSTALL_DIR = "/path/to/installed/solr"
SOLR_COMMAND_TIMEOUT_SEC = 300

# Test collection
COLLECTION_NAME = "perf_test_collection"
NUM_SHARDS = 2
NUM_REPLICAS = 2

# Sweep parameters
MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 1000
INCLUDE_MAX_BATCH_SIZE = False  # Reference sweep stops at MAX_BATCH_SIZE - 1
TOTAL_NUM_DOCS = 500000  # 500K
EXCLUDE_SYNTHESIS_TIME = False

# Strategies, in report column order
STRATEGIES = ["Http", "ConcurrentUpdate", "Cloud"]

# Transport tuning
REQUEST_TIMEOUT_SEC = 60
CONCURRENT_QUEUE_SIZE = 10  # Pending update requests before submit blocks
CONCURRENT_THREAD_COUNT = 2

# Readiness polling
READY_MAX_RETRIES = 30
READY_RETRY_DELAY_SEC = 2.0

# Results directory
RESULTS_DIR = "results"
