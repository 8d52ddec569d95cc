"""Remote inference tier: Gemini behind a single FIFO call queue.

All remote calls in the process go through one RemoteCallQueue. Its worker
thread runs calls strictly one at a time, waits `remote_delay` seconds
between the end of one call and the start of the next, and enforces a
rolling rate limit (`rate_limit_max` calls per `rate_limit_window`
seconds). Callers get a concurrent.futures.Future; abandoning it does not
abort a call already in flight, its result is simply dropped.
"""

import concurrent.futures
import logging
import queue
import threading
import time
from collections import deque
from typing import Callable

from src.agent import llm
from src.agent.prompts import ENHANCEMENT_SYSTEM_PROMPT
from src.config import PlanForgeConfig
from src.errors import (
    RemoteError,
    RemoteInfrastructureOutage,
    RemoteQuotaExceeded,
    RemoteRateLimited,
    RemoteUnavailable,
)

log = logging.getLogger(__name__)


class RateLimiter:
    """Rolling-window call counter."""

    def __init__(self, max_calls: int, window: float, clock: Callable[[], float] = time.monotonic):
        self.max_calls = max_calls
        self.window = window
        self._clock = clock
        self._calls: deque[float] = deque()
        self._lock = threading.Lock()

    def _expire(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.window:
            self._calls.popleft()

    def try_acquire(self) -> bool:
        with self._lock:
            now = self._clock()
            self._expire(now)
            if len(self._calls) >= self.max_calls:
                return False
            self._calls.append(now)
            return True

    @property
    def used(self) -> int:
        with self._lock:
            self._expire(self._clock())
            return len(self._calls)


class RemoteCallQueue:
    """Process-wide FIFO for remote calls with an inter-call delay."""

    def __init__(self, delay: float, limiter: RateLimiter):
        self.delay = delay
        self.limiter = limiter
        self._queue: queue.Queue = queue.Queue()
        self._worker: threading.Thread | None = None
        self._start_lock = threading.Lock()
        self._last_finished: float | None = None
        self._closed = False

    def submit(self, fn: Callable, *args, **kwargs) -> concurrent.futures.Future:
        if self._closed:
            raise RuntimeError("Remote call queue is closed")
        future: concurrent.futures.Future = concurrent.futures.Future()
        self._queue.put((future, fn, args, kwargs))
        self._ensure_worker()
        return future

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self, timeout: float | None = None) -> None:
        self._closed = True
        if self._worker is not None:
            self._queue.put(None)
            self._worker.join(timeout)

    def _ensure_worker(self) -> None:
        with self._start_lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(target=self._run, name="remote-call-queue", daemon=True)
                self._worker.start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                return
            future, fn, args, kwargs = item
            if not future.set_running_or_notify_cancel():
                continue
            self._wait_for_slot()
            if not self.limiter.try_acquire():
                future.set_exception(RemoteRateLimited(
                    f"Local rate limit reached ({self.limiter.max_calls} calls per {self.limiter.window:.0f}s)"
                ))
                continue
            try:
                result = fn(*args, **kwargs)
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(result)
            finally:
                self._last_finished = time.monotonic()

    def _wait_for_slot(self) -> None:
        if self._last_finished is None:
            return
        remaining = self._last_finished + self.delay - time.monotonic()
        if remaining > 0:
            time.sleep(remaining)


class RemoteInferenceService:
    """invoke({model, inputs, parameters}) -> {generated_text} over Gemini."""

    def __init__(self, config: PlanForgeConfig, client=None):
        self.config = config
        self.client = client
        self.limiter = RateLimiter(config.rate_limit_max, config.rate_limit_window)
        self.queue = RemoteCallQueue(config.remote_delay, self.limiter)

    def init(self) -> bool:
        """Build the client and check the service answers.

        False (not an exception) when no API key is configured or the key is
        rejected, so the caller can run without the remote tier.
        """
        if self.client is None:
            try:
                self.client = llm.get_client(self.config.api_key)
            except ValueError as e:
                log.warning("Remote tier disabled: %s", e)
                return False
        if self.config.remote_connection_check:
            return self.check_connection()
        return True

    def check_connection(self) -> bool:
        """Send one tiny generation through the queue. Drops the client on failure."""
        future = self.queue.submit(
            llm.generate, self.client, "Reply with OK.",
            model=self.config.remote_model, temperature=0.0, max_output_tokens=8,
        )
        try:
            future.result(timeout=self.config.init_timeout)
        except Exception as e:
            future.cancel()
            error = llm.classify_error(e)
            if isinstance(error, (RemoteRateLimited, RemoteQuotaExceeded)):
                # the key was accepted; back-off is handled per model
                log.info("Remote connection check throttled (%s)", error)
                return True
            log.warning("Remote tier disabled: connection check failed (%s)", error)
            self.client = None
            return False
        return True

    @property
    def ready(self) -> bool:
        return self.client is not None

    def invoke(self, request: dict) -> dict:
        """Run one generation synchronously on the caller's thread."""
        if self.client is None:
            raise RemoteUnavailable("Remote client not initialized")
        model = request.get("model") or self.config.remote_model
        params = request.get("parameters") or {}
        try:
            text = llm.generate(
                self.client,
                request["inputs"],
                model=model,
                system_instruction=params.get("system_instruction", ENHANCEMENT_SYSTEM_PROMPT),
                temperature=params.get("temperature", self.config.remote_temperature),
                max_output_tokens=params.get("max_new_tokens", self.config.remote_max_tokens),
            )
        except RemoteError:
            raise
        except Exception as e:
            raise llm.classify_error(e) from e
        if not text.strip():
            raise RemoteInfrastructureOutage(f"Empty response from {model}")
        return {"generated_text": text, "model": model}

    def submit(self, request: dict) -> concurrent.futures.Future:
        """Queue a call; the future resolves to invoke()'s result or its exception."""
        return self.queue.submit(self.invoke, request)

    def close(self) -> None:
        self.queue.close(timeout=1.0)
