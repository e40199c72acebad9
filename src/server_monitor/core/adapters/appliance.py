from typing import Optional

from server_monitor.core.adapters.base import AdapterReading
from server_monitor.core.appliance.client import APPLIANCE_SOURCE, ApplianceClient


class ApplianceAdapter:
    """
    Reads the appliance client's cached fragment. Never waits on the network:
    the client updates its cache from its own connection task.
    """

    name = APPLIANCE_SOURCE

    def __init__(self, client: Optional[ApplianceClient]):
        self.client = client

    @property
    def configured(self) -> bool:
        return self.client is not None

    def hostname(self) -> Optional[str]:
        if self.client is None:
            return None
        return self.client.get_hostname()

    def read(self) -> AdapterReading:
        if self.client is None:
            return AdapterReading.unavailable(APPLIANCE_SOURCE)
        return AdapterReading.of(self.client.latest_fragment())
