"""
External Classifier Worker for the domain classifier system.

A single background worker drains the pending request set, sends one
categorization request per domain, and reports every outcome through the
registered result callback. Requests are strictly sequential, so at most one
is in flight at any time.

The worker sleeps until a domain is enqueued or the poll interval elapses,
then processes everything queued before sleeping again.
"""

import asyncio
import threading
from typing import Callable, Optional

from .affinity_worker import AffinityWorker
from .categorization_client import CategorizationClient
from .config import ExternalClassifierConfig
from .enums import LogLevel, ServiceCategory
from .event_log import EventLogger
from .pending_tracker import PendingRequestTracker


ResultCallback = Callable[[str, ServiceCategory], None]


class ExternalClassifierWorker:
    """
    Resolves queued domains through the categorization service.

    The worker starts on construction. stop() lets the current request
    finish; cancel() aborts it.
    """

    COMPONENT = "classifier_worker"

    def __init__(
        self,
        config: ExternalClassifierConfig,
        tracker: Optional[PendingRequestTracker] = None,
        client: Optional[CategorizationClient] = None,
        logger: Optional[EventLogger] = None,
    ) -> None:
        """
        Initialize and start the worker.

        Args:
            config: External classifier configuration
            tracker: Pending set to drain; a new one is created if omitted
            client: Categorization client; built from config if omitted
            logger: Optional event logger

        Raises:
            ConfigurationError: If the client cannot be built from config
            WorkerError: If the worker thread cannot be pinned to its CPUs
        """
        self._config = config
        self._logger = logger
        self._tracker = tracker or PendingRequestTracker()
        self._client = client or CategorizationClient(
            credential=config.credential,
            base_url=config.base_url,
            timeout=config.request_timeout_seconds,
            max_response_bytes=config.max_response_bytes,
            verify_tls=config.verify_tls,
            numeric_scores=config.numeric_scores,
            simulation_mode=config.simulation_mode,
            logger=logger,
        )
        self._callback: Optional[ResultCallback] = None
        self._callback_lock = threading.Lock()
        self._stop_requested = threading.Event()
        self._wakeup: Optional[asyncio.Event] = None
        self._requests_sent = 0

        self._worker = AffinityWorker(
            self._run,
            cpu_set=config.cpu_set,
            name="external-classifier",
        )
        self._tracker.set_listener(self.notify)
        self._log(LogLevel.DEBUG, "Worker started", {"cpu_set": list(config.cpu_set)})

    @property
    def tracker(self) -> PendingRequestTracker:
        return self._tracker

    @property
    def requests_sent(self) -> int:
        """Number of outbound requests issued so far."""
        return self._requests_sent

    def register_result_callback(self, callback: Optional[ResultCallback]) -> None:
        """Register the function receiving (domain, category) results."""
        with self._callback_lock:
            self._callback = callback

    def add_request(self, domain: str) -> bool:
        """
        Queue a domain for classification.

        Returns:
            True if a new request was queued
        """
        if self._stop_requested.is_set():
            return False
        return self._tracker.enqueue(domain)

    def is_pending(self, domain: str) -> bool:
        return self._tracker.is_pending(domain)

    def notify(self) -> None:
        """Wake the worker; safe to call from any thread."""
        self._worker.call_soon_threadsafe(self._set_wakeup)

    def _set_wakeup(self) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    async def _run(self) -> None:
        self._wakeup = asyncio.Event()
        try:
            while not self._stop_requested.is_set():
                await self._drain()
                if self._stop_requested.is_set():
                    break
                await self._wait_for_work()
        finally:
            await self._client.close()

    async def _wait_for_work(self) -> None:
        try:
            await asyncio.wait_for(
                self._wakeup.wait(),
                timeout=self._config.poll_interval_seconds,
            )
        except asyncio.TimeoutError:
            pass
        self._wakeup.clear()

    async def _drain(self) -> None:
        while not self._stop_requested.is_set():
            domain = self._tracker.dequeue_next()
            if domain is None:
                return
            await self._process(domain)

    async def _process(self, domain: str) -> None:
        try:
            self._requests_sent += 1
            response = await self._client.categorize(domain)
            self._log(
                LogLevel.DEBUG,
                "Categorization finished",
                {
                    "domain": domain,
                    "status": response.status.value,
                    "category": response.category.value,
                    "response_time_ms": round(response.response_time_ms, 1),
                },
            )
            self._deliver(domain, response.category)
        finally:
            self._tracker.remove(domain)

    def _deliver(self, domain: str, category: ServiceCategory) -> None:
        with self._callback_lock:
            callback = self._callback
        if callback is None:
            return
        try:
            callback(domain, category)
        except Exception as e:
            if self._logger is not None:
                self._logger.log_error(
                    self.COMPONENT,
                    "Result callback failed",
                    error=e,
                    additional_data={"domain": domain, "category": category.value},
                )

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop after the current request completes.

        Returns:
            True if the worker has ended
        """
        self._stop_requested.set()
        self.notify()
        stopped = self._worker.join(timeout)
        self._finish_log(stopped)
        return stopped

    def cancel(self, timeout: Optional[float] = None) -> bool:
        """
        Stop immediately, aborting any outstanding request.

        Returns:
            True if the worker has ended
        """
        self._stop_requested.set()
        self._worker.cancel()
        stopped = self._worker.join(timeout)
        self._finish_log(stopped)
        return stopped

    def is_running(self) -> bool:
        return self._worker.is_alive()

    def is_accepting(self) -> bool:
        """False once stop or cancel has been requested."""
        return not self._stop_requested.is_set()

    def _finish_log(self, stopped: bool) -> None:
        if stopped:
            # Nothing will resolve what is still queued
            self._tracker.clear()
        if self._worker.exception is not None and self._logger is not None:
            self._logger.log_error(
                self.COMPONENT,
                "Worker ended with an error",
                error=self._worker.exception,
            )
        self._log(
            LogLevel.DEBUG,
            "Worker stopped" if stopped else "Worker still running after timeout",
            {"requests_sent": self._requests_sent},
        )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger is not None:
            self._logger.log(level, self.COMPONENT, message, data)
