"""
Solr cluster lifecycle for the batch-size sweep.

Wraps the bin/solr script of a local Solr install (start, stop, create and
delete the test collection) and the Collections API calls used to check
readiness.
"""

import time
import logging
import subprocess
from pathlib import Path
from typing import List

import requests

from config import (
    SOLR_BASE_URL, SOLR_INSTALL_DIR, SOLR_COMMAND_TIMEOUT_SEC,
    COLLECTION_NAME, NUM_SHARDS, NUM_REPLICAS, REQUEST_TIMEOUT_SEC,
    READY_MAX_RETRIES, READY_RETRY_DELAY_SEC
)
from errors import ResetFailure, ResetTimeoutError

logger = logging.getLogger(__name__)


class SolrCluster:
    """Drives a local SolrCloud install through bin/solr."""

    def __init__(
        self,
        solr_dir: str = SOLR_INSTALL_DIR,
        collection: str = COLLECTION_NAME,
        shards: int = NUM_SHARDS,
        replicas: int = NUM_REPLICAS,
        base_url: str = SOLR_BASE_URL,
        command_timeout: float = SOLR_COMMAND_TIMEOUT_SEC
    ):
        self.solr_dir = Path(solr_dir)
        self.collection = collection
        self.shards = shards
        self.replicas = replicas
        self.base_url = base_url.rstrip("/")
        self.command_timeout = command_timeout

    @property
    def collections_api(self) -> str:
        return f"{self.base_url}/admin/collections"

    def _run_command(self, *args: str) -> None:
        """
        Run bin/solr with the given arguments inside the Solr install.

        Args:
            args: Arguments passed to bin/solr

        Raises:
            ResetTimeoutError: if the command does not finish in time
            ResetFailure: if the command cannot be started or exits non-zero
        """
        command: List[str] = ["bin/solr", *args]
        logger.info(f"Running: {' '.join(command)}")

        try:
            result = subprocess.run(
                command,
                cwd=str(self.solr_dir),
                timeout=self.command_timeout
            )
        except subprocess.TimeoutExpired as e:
            raise ResetTimeoutError(
                f"'{' '.join(command)}' did not finish within {self.command_timeout}s",
                phase=args[0]
            ) from e
        except OSError as e:
            raise ResetFailure(
                f"Could not run '{' '.join(command)}' in {self.solr_dir}: {e}",
                phase=args[0]
            ) from e

        if result.returncode != 0:
            raise ResetFailure(
                f"'{' '.join(command)}' exited with status {result.returncode}",
                phase=args[0]
            )

    def start(self) -> None:
        self._run_command("start", "-e", "cloud", "-noprompt")

    def stop(self) -> None:
        self._run_command("stop", "-all")

    def create_collection(self) -> None:
        self._run_command(
            "create_collection", "-c", self.collection,
            "-shards", str(self.shards),
            "-replicationFactor", str(self.replicas)
        )

    def delete_collection(self) -> None:
        self._run_command("delete", "-c", self.collection)

    def collection_exists(self) -> bool:
        """Check the Collections API for the test collection."""
        try:
            response = requests.get(
                self.collections_api,
                params={"action": "LIST", "wt": "json"},
                timeout=REQUEST_TIMEOUT_SEC
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise ResetFailure(f"Failed to list collections: {e}", phase="list") from e

        return self.collection in response.json().get("collections", [])

    def reset_collection(self) -> None:
        """Drop the test collection if present and create it empty."""
        if self.collection_exists():
            self.delete_collection()
        self.create_collection()

    def wait_until_ready(
        self,
        max_retries: int = READY_MAX_RETRIES,
        retry_delay: float = READY_RETRY_DELAY_SEC
    ) -> None:
        """
        Wait for the Collections API to answer.

        Args:
            max_retries: Maximum number of retries
            retry_delay: Delay between retries in seconds

        Raises:
            ResetTimeoutError: if Solr is still unreachable after all retries
        """
        logger.info(f"Waiting for Solr at {self.base_url} ...")

        for i in range(max_retries):
            try:
                response = requests.get(
                    self.collections_api,
                    params={"action": "CLUSTERSTATUS", "wt": "json"},
                    timeout=5
                )
                if response.status_code == 200:
                    logger.info("Solr is ready")
                    return
            except requests.RequestException:
                pass

            if i < max_retries - 1:
                time.sleep(retry_delay)

        raise ResetTimeoutError(
            f"Solr not ready after {max_retries} attempts", phase="start"
        )
