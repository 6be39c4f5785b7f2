"""
Multi-Rate Scheduler - drives sampling and capture off one clock.

The primary loop samples both hands at the configured rate; every Nth
tick it also captures the scene, where N = max(1, round(primary / secondary)).
"""

import asyncio
import enum
import logging
import time
from typing import Awaitable, Callable, Optional, Protocol

from .capture import FrameCapture
from .hand_sampler import HandSampler
from .message import GesturePayload, PayloadBuilder, validate_payload

logger = logging.getLogger(__name__)


class ReadinessPolicy(enum.Enum):
    """Which hands must be ready before a payload is sent."""
    ANY = "any"
    BOTH = "both"


class PayloadSink(Protocol):
    """Outbound side of the pipeline (the stream client)."""

    @property
    def is_open(self) -> bool:
        ...

    async def send(self, payload: GesturePayload) -> bool:
        ...


def capture_interval(primary_rate: float, secondary_rate: float) -> int:
    """
    Number of primary ticks between captures.

    Uses Python's round() (half to even), floored to 1.
    """
    if primary_rate <= 0 or secondary_rate <= 0:
        raise ValueError("Rates must be positive")
    return max(1, round(primary_rate / secondary_rate))


class MultiRateScheduler:
    """
    Sampling loop with an interleaved lower-rate capture.

    The loop runs only while the sink reports an open connection and ends
    for good once it closes. A failed tick is logged and the loop goes on.
    """

    def __init__(
        self,
        left: HandSampler,
        right: HandSampler,
        sink: PayloadSink,
        capture: Optional[FrameCapture] = None,
        sample_rate: float = 20.0,
        capture_rate: float = 5.0,
        readiness: ReadinessPolicy = ReadinessPolicy.ANY,
        builder: Optional[PayloadBuilder] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize scheduler.

        Args:
            left: Left hand sampler
            right: Right hand sampler
            sink: Stream client the payloads go to
            capture: Scene capture, or None to stream poses only
            sample_rate: Primary rate in Hz
            capture_rate: Secondary capture rate in Hz
            readiness: Hand readiness policy gating each send
            builder: Payload builder (a fresh one by default)
            sleep: Rate-limiting wait, replaceable in tests
        """
        self.left = left
        self.right = right
        for sampler in (left, right):
            if not sampler.initialized:
                sampler.initialize()
        self.sink = sink
        self.capture = capture
        self.sample_rate = sample_rate
        self.capture_rate = capture_rate
        self.readiness = readiness
        self.builder = builder or PayloadBuilder()
        self._sleep = sleep

        self.interval = 1.0 / sample_rate
        self.capture_every = capture_interval(sample_rate, capture_rate)

        self.tick = 0
        self._running = False
        self._ticks_skipped = 0
        self._ticks_failed = 0
        self._payloads_sent = 0
        self._payloads_dropped = 0
        self._last_send_time: Optional[float] = None

        logger.info(
            f"Sending hand data every {self.interval:.2f}s ({sample_rate:g} Hz), "
            f"capture every {self.capture_every} ticks (~{sample_rate / self.capture_every:g} Hz)"
        )

    @property
    def running(self) -> bool:
        return self._running

    def data_ready(self) -> bool:
        """Apply the readiness policy to both samplers."""
        if self.readiness is ReadinessPolicy.BOTH:
            return self.left.is_ready() and self.right.is_ready()
        return self.left.is_ready() or self.right.is_ready()

    def is_capture_tick(self) -> bool:
        return self.capture is not None and self.tick % self.capture_every == 0

    async def run(self) -> None:
        """Main streaming loop."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        logger.info("Streaming loop started")
        try:
            while self.sink.is_open:
                await self._sleep(self.interval)
                if not self.sink.is_open:
                    break
                try:
                    await self.step()
                except Exception as e:
                    self._ticks_failed += 1
                    self.builder.clear_capture()
                    logger.error(f"Error in streaming loop: {e}")
        finally:
            self._running = False
            self.builder.clear_capture()
            logger.info("Streaming loop stopped")

    async def step(self) -> bool:
        """
        Run one primary tick after the rate wait.

        Returns:
            True if a payload was sent
        """
        self.left.sample()
        self.right.sample()

        if not self.data_ready():
            self._ticks_skipped += 1
            return False

        if self.is_capture_tick():
            result = await self.capture.capture()
            if result.ok:
                self.builder.attach_capture(result.image_b64)

        payload = self.builder.build(self.left.output, self.right.output)
        self.tick += 1

        valid, reason = validate_payload(payload)
        if not valid:
            self._payloads_dropped += 1
            logger.warning(f"Payload validation failed: {reason}")
            return False

        if await self.sink.send(payload):
            self._payloads_sent += 1
            self._last_send_time = time.time()
            return True

        self._payloads_dropped += 1
        return False

    def get_stats(self) -> dict:
        """Get scheduler statistics."""
        stats = {
            "running": self._running,
            "ticks": self.tick,
            "ticks_skipped": self._ticks_skipped,
            "ticks_failed": self._ticks_failed,
            "payloads_sent": self._payloads_sent,
            "payloads_dropped": self._payloads_dropped,
            "capture_every": self.capture_every,
            "last_send_time": self._last_send_time,
        }
        stats.update(self.builder.get_stats())
        return stats
