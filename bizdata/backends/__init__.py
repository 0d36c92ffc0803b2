"""
Backend adapters.

Pick one at construction time and hand it to the repositories:

    adapter = await create_backend()
    customers = CustomerRepo(adapter)
"""

from __future__ import annotations

from bizdata.backends.base import BackendAdapter
from bizdata.backends.gateway_adapter import GatewayAdapter
from bizdata.backends.sqlite_adapter import SqliteAdapter
from bizdata.config import Settings
from bizdata.config import settings as default_settings


async def create_backend(config: Settings | None = None) -> BackendAdapter:
    """Build the adapter named by BIZDATA_BACKEND, ready to use."""
    config = config or default_settings
    if config.uses_gateway:
        return GatewayAdapter(
            base_url=config.GATEWAY_URL,
            api_key=config.GATEWAY_API_KEY,
            timeout=config.BACKEND_TIMEOUT_SECONDS,
            batch_size=config.GATEWAY_BATCH_SIZE,
        )
    return await SqliteAdapter.connect(config.SQLITE_PATH, timeout=config.BACKEND_TIMEOUT_SECONDS)


__all__ = [
    "BackendAdapter",
    "GatewayAdapter",
    "SqliteAdapter",
    "create_backend",
]
