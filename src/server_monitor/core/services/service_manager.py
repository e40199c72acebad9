import logging
from typing import Optional

from server_monitor.core.adapters.appliance import ApplianceAdapter
from server_monitor.core.adapters.container import ContainerAdapter
from server_monitor.core.adapters.local_host import LocalHostAdapter
from server_monitor.core.appliance.channel import make_websocket_factory
from server_monitor.core.appliance.client import ApplianceClient
from server_monitor.core.appliance.protocol import resolve_credential
from server_monitor.core.config_loader import Settings
from server_monitor.core.processing.merge_engine import MergeEngine
from server_monitor.core.processing.trend_store import TrendStore
from server_monitor.core.services.collector import Collector
from server_monitor.core.services.snapshot_cache import SnapshotCache

logger = logging.getLogger(__name__)


class ServiceManager:
    """Builds the engine's components from settings and owns their lifecycle."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.appliance_client: Optional[ApplianceClient] = None
        self.collector: Optional[Collector] = None
        self.running = False

    def configure(self, settings: Settings) -> None:
        if self.running:
            raise RuntimeError("Cannot reconfigure while services are running")
        self.settings = settings
        self.appliance_client = self._build_appliance_client(settings)
        self.collector = Collector(
            local=LocalHostAdapter(host_root=settings.host_root),
            container=ContainerAdapter(socket_path=settings.docker_socket),
            appliance=ApplianceAdapter(self.appliance_client),
            merge_engine=MergeEngine(hostname_override=settings.server_hostname),
            trend_store=TrendStore(capacity=settings.trend_capacity),
            cache=SnapshotCache(),
            interval=settings.collection_interval_s,
        )

    @staticmethod
    def _build_appliance_client(settings: Settings) -> Optional[ApplianceClient]:
        if not settings.appliance_configured:
            logger.warning("Appliance not configured (TRUENAS_HOST/TRUENAS_TOKEN), using local data only")
            return None
        try:
            credential = resolve_credential(settings.truenas_token, settings.truenas_credential_kind)
        except ValueError as e:
            logger.error(f"Invalid appliance credential: {e}")
            return None
        logger.info(f"Appliance configured at {settings.truenas_host} ({credential.kind.value} login)")
        return ApplianceClient(
            credential=credential,
            channel_factory=make_websocket_factory(settings.truenas_host, verify_ssl=settings.truenas_verify_ssl),
            reconnect_delay=settings.reconnect_delay_s,
            poll_interval=settings.ipmi_poll_interval_s,
        )

    async def start_services(self) -> None:
        if self.running:
            return
        if self.collector is None:
            raise RuntimeError("ServiceManager.configure() must be called before start_services()")
        logger.info("Starting background services...")
        if self.appliance_client is not None:
            self.appliance_client.start()
        self.collector.start()
        self.running = True
        logger.info("Background services started.")

    async def stop_services(self) -> None:
        if not self.running:
            return
        self.running = False
        if self.collector is not None:
            await self.collector.stop()
        if self.appliance_client is not None:
            await self.appliance_client.stop()
        logger.info("Background services stopped.")

    def get_collector(self) -> Collector:
        if self.collector is None:
            raise RuntimeError("Services are not configured")
        return self.collector


service_manager = ServiceManager()
