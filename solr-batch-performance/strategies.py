"""
Ingestion strategies compared by the sweep.

Each strategy is a transport for pushing batches of documents into the test
collection through Solr's JSON update API. The harness only relies on
submit(), flush() and close(); the three transports differ in how batches
travel to the cluster:

- Http: every batch is one synchronous request to a single node.
- ConcurrentUpdate: batches are queued client-side and streamed by
  background runner threads.
- Cloud: the cluster state is read once and batches are spread over the
  shard leaders.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import requests

from config import (
    SOLR_BASE_URL, COLLECTION_NAME, REQUEST_TIMEOUT_SEC,
    CONCURRENT_QUEUE_SIZE, CONCURRENT_THREAD_COUNT
)
from errors import IngestionFailure

logger = logging.getLogger(__name__)

Document = Dict[str, str]


class IngestionStrategy(ABC):
    """Two-operation contract consumed by the harness.

    Instances are scoped to a single trial: use them as context managers so
    that connections are released whether the trial succeeds or not.
    """

    name = "base"

    def __init__(
        self,
        base_url: str = SOLR_BASE_URL,
        collection: str = COLLECTION_NAME,
        timeout: float = REQUEST_TIMEOUT_SEC,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.collection = collection
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()

    @abstractmethod
    def submit(self, batch: Sequence[Document]) -> None:
        """Send one batch of documents. Raises IngestionFailure."""

    @abstractmethod
    def flush(self) -> None:
        """Make every submitted document visible. Raises IngestionFailure."""

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "IngestionStrategy":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _post_update(self, node_url: str, payload, phase: str) -> None:
        url = f"{node_url}/{self.collection}/update"
        try:
            response = self.session.post(
                url, json=payload, params={"wt": "json"}, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise IngestionFailure(
                f"Update request to {url} failed: {e}",
                strategy=self.name,
                phase=phase
            ) from e

    def _commit(self, node_url: str) -> None:
        self._post_update(node_url, {"commit": {}}, phase="flush")


class HttpUpdateStrategy(IngestionStrategy):
    """Direct single-node transport."""

    name = "Http"

    def submit(self, batch: Sequence[Document]) -> None:
        self._post_update(self.base_url, list(batch), phase="submit")

    def flush(self) -> None:
        self._commit(self.base_url)


class ConcurrentUpdateStrategy(IngestionStrategy):
    """
    Client-side buffering transport.

    submit() returns as soon as the batch is queued. At most `queue_size`
    requests are pending at once; further submits block until a runner
    thread frees a slot. The first runner failure is re-raised from the
    next submit() or from flush().
    """

    name = "ConcurrentUpdate"

    def __init__(
        self,
        base_url: str = SOLR_BASE_URL,
        collection: str = COLLECTION_NAME,
        timeout: float = REQUEST_TIMEOUT_SEC,
        session: Optional[requests.Session] = None,
        queue_size: int = CONCURRENT_QUEUE_SIZE,
        thread_count: int = CONCURRENT_THREAD_COUNT
    ):
        if queue_size < 1 or thread_count < 1:
            raise ValueError("queue_size and thread_count must be positive")
        super().__init__(base_url, collection, timeout, session)
        self.queue_size = queue_size
        self.thread_count = thread_count
        self._slots = threading.BoundedSemaphore(queue_size)
        self._executor = ThreadPoolExecutor(
            max_workers=thread_count, thread_name_prefix="concurrent-update"
        )
        self._lock = threading.Lock()
        self._error: Optional[IngestionFailure] = None

    def _send(self, batch: List[Document]) -> None:
        try:
            self._post_update(self.base_url, batch, phase="submit")
        except Exception as e:
            if isinstance(e, IngestionFailure):
                error = e
            else:
                error = IngestionFailure(
                    f"Runner raised {type(e).__name__}: {e}",
                    strategy=self.name,
                    phase="submit"
                )
                error.__cause__ = e
            with self._lock:
                if self._error is None:
                    self._error = error
            logger.error(f"Runner failed to send batch of {len(batch)}: {error}")
        finally:
            self._slots.release()

    def _raise_pending_error(self) -> None:
        with self._lock:
            error = self._error
        if error is not None:
            raise error

    def submit(self, batch: Sequence[Document]) -> None:
        self._raise_pending_error()
        self._slots.acquire()
        try:
            self._executor.submit(self._send, list(batch))
        except RuntimeError as e:
            self._slots.release()
            raise IngestionFailure(
                f"Runner pool is closed: {e}", strategy=self.name, phase="submit"
            ) from e

    def _drain(self) -> None:
        # Holding every slot means no request is queued or in flight.
        for _ in range(self.queue_size):
            self._slots.acquire()
        for _ in range(self.queue_size):
            self._slots.release()

    def flush(self) -> None:
        self._drain()
        self._raise_pending_error()
        self._commit(self.base_url)

    def close(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)
        super().close()


class CloudStrategy(IngestionStrategy):
    """
    Cluster-aware routing transport.

    Reads CLUSTERSTATUS for the collection on first use and sends batches
    to the active shard leaders in turn. Solr forwards any document a
    leader does not own to the right shard.
    """

    name = "Cloud"

    def __init__(
        self,
        base_url: str = SOLR_BASE_URL,
        collection: str = COLLECTION_NAME,
        timeout: float = REQUEST_TIMEOUT_SEC,
        session: Optional[requests.Session] = None
    ):
        super().__init__(base_url, collection, timeout, session)
        self._leaders: Optional[List[str]] = None
        self._next = 0

    def discover_leaders(self) -> List[str]:
        """
        Fetch the base URLs of the collection's active shard leaders.

        Returns:
            Sorted list of leader node URLs (e.g. http://host:8983/solr)
        """
        url = f"{self.base_url}/admin/collections"
        try:
            response = self.session.get(
                url,
                params={"action": "CLUSTERSTATUS", "collection": self.collection, "wt": "json"},
                timeout=self.timeout
            )
            response.raise_for_status()
            status = response.json()
        except (requests.RequestException, ValueError) as e:
            raise IngestionFailure(
                f"Failed to read cluster state from {url}: {e}",
                strategy=self.name,
                phase="submit"
            ) from e

        shards = (
            status.get("cluster", {})
            .get("collections", {})
            .get(self.collection, {})
            .get("shards", {})
        )
        leaders = set()
        for shard in shards.values():
            for replica in shard.get("replicas", {}).values():
                if replica.get("leader") == "true" and replica.get("state") == "active":
                    leaders.add(replica["base_url"].rstrip("/"))

        if not leaders:
            raise IngestionFailure(
                f"No active shard leaders for collection {self.collection}",
                strategy=self.name,
                phase="submit"
            )

        logger.debug(f"Shard leaders for {self.collection}: {sorted(leaders)}")
        return sorted(leaders)

    def _leader(self) -> str:
        if self._leaders is None:
            self._leaders = self.discover_leaders()
        leader = self._leaders[self._next % len(self._leaders)]
        self._next += 1
        return leader

    def submit(self, batch: Sequence[Document]) -> None:
        self._post_update(self._leader(), list(batch), phase="submit")

    def flush(self) -> None:
        self._commit(self._leader())


@dataclass(frozen=True)
class StrategySpec:
    """A named factory producing one fresh strategy per trial."""

    name: str
    factory: Callable[[], IngestionStrategy]


STRATEGY_REGISTRY: "OrderedDict[str, type]" = OrderedDict([
    (HttpUpdateStrategy.name, HttpUpdateStrategy),
    (ConcurrentUpdateStrategy.name, ConcurrentUpdateStrategy),
    (CloudStrategy.name, CloudStrategy),
])


def build_strategy_specs(
    names: Sequence[str],
    base_url: str = SOLR_BASE_URL,
    collection: str = COLLECTION_NAME,
    timeout: float = REQUEST_TIMEOUT_SEC,
    queue_size: int = CONCURRENT_QUEUE_SIZE,
    thread_count: int = CONCURRENT_THREAD_COUNT
) -> List[StrategySpec]:
    """
    Build strategy specs in the requested order.

    Args:
        names: Registered strategy names, in report column order
        base_url: Solr node URL
        collection: Target collection
        timeout: Per-request timeout in seconds
        queue_size: Pending-request limit for ConcurrentUpdate
        thread_count: Runner threads for ConcurrentUpdate

    Returns:
        List of StrategySpec
    """
    specs = []
    for name in names:
        if name not in STRATEGY_REGISTRY:
            raise ValueError(
                f"Unknown strategy '{name}'. Choose from: {', '.join(STRATEGY_REGISTRY)}"
            )
        cls = STRATEGY_REGISTRY[name]
        kwargs = {"base_url": base_url, "collection": collection, "timeout": timeout}
        if cls is ConcurrentUpdateStrategy:
            kwargs.update(queue_size=queue_size, thread_count=thread_count)
        specs.append(StrategySpec(name, _factory(cls, kwargs)))
    return specs


def _factory(cls: type, kwargs: dict) -> Callable[[], IngestionStrategy]:
    def create() -> IngestionStrategy:
        return cls(**kwargs)
    return create
