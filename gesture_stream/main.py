#!/usr/bin/env python3
"""
Gesture Stream Client - Main Entry Point

Replays (or receives) tracked hand joints, converts them into MediaPipe-style
hand-local landmarks, and streams them with periodic JPEG captures to an
inference backend over WebSocket.

Usage:
    python -m gesture_stream.main --rig-replay session.jsonl --camera 0
    python -m gesture_stream.main --server ws://10.0.0.5:8000/ws/process-gesture-stream \\
        --rig-replay session.jsonl --no-capture --readiness both
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, Awaitable, Callable, Optional

from .capture import CameraFrameSource, FrameCapture, FrameSource
from .config import ConfigError, StreamConfig
from .export import save_hand_sample
from .hand_sampler import HandSampler
from .normalizer import JointNormalizer
from .rig import RigReplay, load_recording
from .scheduler import MultiRateScheduler
from .skeletons import get_mapping
from .ws_client import StreamClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class GestureStreamClient:
    """
    Main client that integrates all components:
    - Rig replay (joint source)
    - Per-hand samplers and normalizer
    - Scene capture
    - Multi-rate scheduler
    - WebSocket stream client
    """

    def __init__(
        self,
        config: StreamConfig,
        replay: RigReplay,
        camera: Optional[FrameSource] = None,
        save_dir: Optional[str] = None,
        connector: Optional[Callable[..., Awaitable[Any]]] = None,
    ):
        """
        Initialize the gesture stream client.

        Args:
            config: Validated stream configuration
            replay: Rig replay feeding the left/right joint sources
            camera: Frame source for captures (None disables captures)
            save_dir: Directory to save the last valid hand samples on stop
            connector: Replacement for websockets.connect
        """
        self.config = config
        self.replay = replay
        self.camera = camera
        self.save_dir = save_dir

        normalizer = JointNormalizer(get_mapping(config.skeleton))
        self.left = HandSampler("left", replay.left, normalizer)
        self.right = HandSampler("right", replay.right, normalizer)
        self.left.initialize()
        self.right.initialize()

        self.capture: Optional[FrameCapture] = None
        if camera is not None:
            self.capture = FrameCapture(
                camera,
                width=config.capture_width,
                height=config.capture_height,
                quality=config.jpeg_quality,
            )

        self.ws_client = StreamClient(
            on_open=self._on_open,
            token=config.token,
            ping_interval=config.ping_interval,
            ping_timeout=config.ping_timeout,
            connector=connector,
        )
        self.scheduler = MultiRateScheduler(
            self.left,
            self.right,
            self.ws_client,
            capture=self.capture,
            sample_rate=config.sample_rate,
            capture_rate=config.capture_rate,
            readiness=config.readiness_policy,
        )

        self._replay_task: Optional[asyncio.Task] = None
        self._stopped = False

    async def run(self) -> None:
        """Connect and stream until the connection closes."""
        logger.info("Starting Gesture Stream Client...")
        self._replay_task = asyncio.create_task(self.replay.run())
        await self.ws_client.connect(self.config.server_url)
        await self.ws_client.wait_closed()
        logger.info(f"Session ended: {self.ws_client.get_stats()}")

    async def stop(self) -> None:
        """Stop the client and clean up resources."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Stopping Gesture Stream Client...")

        await self.ws_client.close()

        self.replay.stop()
        if self._replay_task:
            self._replay_task.cancel()
            try:
                await self._replay_task
            except asyncio.CancelledError:
                pass

        if self.capture:
            self.capture.close()
        elif self.camera:
            self.camera.close()

        if self.save_dir:
            self._save_samples()

        logger.info(f"Scheduler stats: {self.scheduler.get_stats()}")
        logger.info("Gesture Stream Client stopped")

    def _save_samples(self) -> None:
        for sampler in (self.left, self.right):
            if sampler.output is not None and sampler.output.valid:
                save_hand_sample(sampler.output, self.save_dir, sampler.name)
            else:
                logger.info(f"No valid {sampler.name} hand sample to save")

    async def _on_open(self) -> None:
        """Callback when WebSocket connects: run the streaming loop."""
        await self.scheduler.run()


async def main_async(args: argparse.Namespace, config: StreamConfig) -> None:
    """Async main entry point."""
    replay = RigReplay(load_recording(args.rig_replay), rate=args.replay_rate)

    camera = None
    if not args.no_capture:
        camera = CameraFrameSource(args.camera)
        if not camera.open():
            raise RuntimeError("Failed to initialize camera")

    client = GestureStreamClient(config, replay, camera=camera, save_dir=args.save_dir)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Shutdown signal received")
        asyncio.create_task(client.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await client.run()
    finally:
        await client.stop()


def build_parser(defaults: StreamConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Hand pose and scene capture streaming client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--server",
        type=str,
        default=defaults.server_url,
        help="WebSocket server URL",
    )
    parser.add_argument(
        "--token",
        type=str,
        default=defaults.token,
        help="Optional authentication token",
    )
    parser.add_argument(
        "--rig-replay",
        type=str,
        required=True,
        help="JSON-lines rig recording to replay as the joint source",
    )
    parser.add_argument(
        "--replay-rate",
        type=float,
        default=72.0,
        help="Rig replay rate (Hz)",
    )
    parser.add_argument(
        "--camera",
        type=str,
        default="0",
        help="Camera index or stream URL for scene captures",
    )
    parser.add_argument(
        "--no-capture",
        action="store_true",
        help="Stream hand data only, without scene captures",
    )
    parser.add_argument(
        "--sample-rate",
        type=float,
        default=defaults.sample_rate,
        help="Hand data rate (Hz)",
    )
    parser.add_argument(
        "--capture-rate",
        type=float,
        default=defaults.capture_rate,
        help="Scene capture rate (Hz, minimum 1)",
    )
    parser.add_argument(
        "--width",
        type=int,
        default=defaults.capture_width,
        help="Capture width (pixels)",
    )
    parser.add_argument(
        "--height",
        type=int,
        default=defaults.capture_height,
        help="Capture height (pixels)",
    )
    parser.add_argument(
        "--quality",
        type=int,
        default=defaults.jpeg_quality,
        help="JPEG quality (1-100)",
    )
    parser.add_argument(
        "--readiness",
        choices=["any", "both"],
        default=defaults.readiness,
        help="Send when any hand or only when both hands are tracked",
    )
    parser.add_argument(
        "--skeleton",
        choices=["openxr", "ovr"],
        default=defaults.skeleton,
        help="Joint naming scheme of the rig",
    )
    parser.add_argument(
        "--save-dir",
        type=str,
        default=None,
        help="Save the last valid hand samples here on exit",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main() -> None:
    """Main entry point."""
    try:
        defaults = StreamConfig.from_env()
    except ConfigError as e:
        logger.error(f"Invalid environment configuration: {e}")
        sys.exit(2)

    args = build_parser(defaults).parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.camera.isdigit():
        args.camera = int(args.camera)

    try:
        config = StreamConfig(
            server_url=args.server,
            token=args.token,
            sample_rate=args.sample_rate,
            capture_rate=args.capture_rate,
            capture_width=args.width,
            capture_height=args.height,
            jpeg_quality=args.quality,
            readiness=args.readiness,
            skeleton=args.skeleton,
            ping_interval=defaults.ping_interval,
            ping_timeout=defaults.ping_timeout,
        )
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    try:
        asyncio.run(main_async(args, config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Client error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
