"""Entry point: run the telemetry pipeline for one daemon connection.

Usage:
    python -m panelwatch.main --endpoint wss://node.example.com:8080/api/servers/<uuid>/ws \
        --token <jwt> --entity <server-identifier> [--memory-mb 4096 --disk-mb 51200]
"""

import argparse
import asyncio
import signal
import sys
from typing import Optional

from .alerting.history import AlertHistoryStore
from .alerting.manager import ACTIVE_ALERTS_EVENT, AlertManager
from .alerting.repository import AlertRuleRepository
from .config import PanelwatchConfig, get_config
from .database import close_engine, init_database
from .exceptions import StreamConnectError
from .maintenance.retention import RetentionManager
from .modules.telemetry_monitor import TelemetryMonitor
from .stream.client import StreamProtocolClient
from .stream.events import StreamEvent, StreamEventKind
from .telemetry.snapshot import ResourceLimits
from .telemetry.store import TelemetrySnapshotStore
from .utils.ansi import strip
from .utils.event_bus import EventBus
from .utils.logging import bind_entity, get_logger, setup_logging

logger = get_logger("panelwatch.main")


class TelemetrySession:
    """Wires one entity's pipeline and applies the reconnect policy.

    The stream client never retries; this session waits for its
    ``disconnected`` event and calls ``connect()`` again with exponential
    backoff, resetting the delay once the daemon accepts the token.
    """

    def __init__(
        self,
        config: PanelwatchConfig,
        entity_id: str,
        store: TelemetrySnapshotStore,
        alert_manager: AlertManager,
        limits: Optional[ResourceLimits] = None,
        client: Optional[StreamProtocolClient] = None,
    ):
        self._config = config
        self.entity_id = entity_id
        if client is not None:
            self.bus = client.bus
        else:
            self.bus = EventBus(
                queue_size=config.event_bus_queue_size,
                handler_timeout=config.event_handler_timeout,
            )
        self.client = client or StreamProtocolClient(self.bus, name=entity_id)
        self.monitor = TelemetryMonitor(
            entity_id,
            self.client,
            store,
            alert_manager,
            limits=limits,
            config={
                "console_buffer_size": config.console_buffer_size,
                "snapshot_write_timeout": config.snapshot_write_timeout,
            },
        )
        self._disconnected = asyncio.Event()
        self._attempt = 0
        self._running = False

    async def _on_connected(self, event_type: str, event: StreamEvent) -> None:
        self._attempt = 0
        self._disconnected.clear()

    async def _on_disconnected(self, event_type: str, event: StreamEvent) -> None:
        self._disconnected.set()

    def next_delay(self) -> float:
        delay = self._config.reconnect_initial_delay * (2 ** self._attempt)
        self._attempt += 1
        return min(delay, self._config.reconnect_max_delay)

    async def run(self, endpoint: str, token: str, origin: Optional[str] = None) -> None:
        """Keep the stream connected until ``stop()`` is called."""
        self._running = True
        self.bus.subscribe(StreamEventKind.CONNECTED.value, self._on_connected)
        self.bus.subscribe(StreamEventKind.DISCONNECTED.value, self._on_disconnected)
        await self.bus.start()
        await self.monitor.start()

        while self._running:
            self._disconnected.clear()
            try:
                await self.client.connect(endpoint, token, origin)
            except StreamConnectError as e:
                logger.warning("session_connect_failed", entity_id=self.entity_id, error=str(e))
            else:
                await self._disconnected.wait()
            if not self._running:
                break
            delay = self.next_delay()
            logger.info("session_reconnect_scheduled", entity_id=self.entity_id, delay=delay)
            await asyncio.sleep(delay)

    async def stop(self) -> None:
        self._running = False
        self._disconnected.set()
        await self.client.close()
        await self.bus.flush()
        await self.monitor.stop()
        await self.bus.stop()


async def print_stream_line(event_type: str, event: StreamEvent) -> None:
    """CLI sink for console output and daemon errors; logs go to stderr."""
    line = strip(event.data or "")
    if event_type == StreamEventKind.DAEMON_ERROR.value:
        line = f"[daemon error] {line}"
    print(line, flush=True)


async def print_alerts(event_type: str, data: dict) -> None:
    if data["alerts"]:
        print(f"[alerts] {', '.join(data['alerts'])}", flush=True)


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="panelwatch telemetry pipeline")
    parser.add_argument("--endpoint", required=True, help="Daemon websocket URL")
    parser.add_argument("--token", required=True, help="Websocket JWT from the panel API")
    parser.add_argument("--entity", required=True, help="Server identifier")
    parser.add_argument("--origin", default=None, help="Origin header (defaults to the endpoint)")
    parser.add_argument("--memory-mb", type=int, default=None, help="Memory limit in MiB")
    parser.add_argument("--disk-mb", type=int, default=None, help="Disk limit in MiB")
    parser.add_argument("--cpu", type=int, default=None, help="CPU limit in percent")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> None:
    config = get_config()
    setup_logging(
        debug=config.debug,
        log_dir=config.log_dir,
        log_max_bytes=config.log_max_bytes,
        log_backup_count=config.log_backup_count,
        stream=sys.stderr,
    )
    bind_entity(args.entity)
    factory = await init_database(config)

    store = TelemetrySnapshotStore(factory)
    limits = ResourceLimits(memory=args.memory_mb, disk=args.disk_mb, cpu=args.cpu)
    bus = EventBus(queue_size=config.event_bus_queue_size, handler_timeout=config.event_handler_timeout)
    history = AlertHistoryStore(factory)
    alert_manager = AlertManager(
        bus=bus,
        repository=AlertRuleRepository(factory),
        webhook_url=config.alert_webhook_url,
        history=history,
    )
    alert_manager.set_limits(args.entity, limits)
    retention = RetentionManager(store, config, history=history)

    session = TelemetrySession(
        config,
        args.entity,
        store,
        alert_manager,
        limits=limits,
        client=StreamProtocolClient(bus, name=args.entity),
    )

    bus.subscribe(StreamEventKind.CONSOLE_OUTPUT.value, print_stream_line)
    bus.subscribe(StreamEventKind.DAEMON_ERROR.value, print_stream_line)
    bus.subscribe(ACTIVE_ALERTS_EVENT, print_alerts)

    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            # Windows event loops lack signal handlers; Ctrl+C still raises
            logger.debug("signal_handler_unavailable", signal=sig.name)

    await retention.start()
    runner = asyncio.create_task(session.run(args.endpoint, args.token, args.origin))
    try:
        await stop_requested.wait()
    finally:
        await session.stop()
        runner.cancel()
        try:
            await runner
        except asyncio.CancelledError:
            pass
        await retention.stop()
        await alert_manager.drain()
        await close_engine()


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
