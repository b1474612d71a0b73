# External libs
import asyncio
import logging
from typing import Optional

# Internal libs
from core.event_hub import event_hub
from core.liveness_tracker import liveness_tracker
from core.services.incident_store import create_incident_store
from core.services.ingestion_router import ingestion_router

logger = logging.getLogger(__name__)


class ServiceManager:
    """Owns startup and shutdown of the background pieces: event hub binding, storage backend, liveness sweep."""

    def __init__(self):
        self.running = False

    async def start_services(self, storage_backend: Optional[str] = None):
        """Start background services if not already started.
        Args:
            storage_backend: ``memory`` or ``file``; None keeps the store built from config.
        """
        if self.running:
            return

        logger.info("Starting background services...")
        event_hub.bind(asyncio.get_running_loop())

        if storage_backend:
            ingestion_router.store = create_incident_store(storage_backend)

        liveness_tracker.start_sweeping()
        self.running = True
        logger.info("Background services started.")

    async def stop_services(self):
        """Stop background services."""
        self.running = False
        await liveness_tracker.stop_sweeping()
        event_hub.bind(None)
        logger.info("Background services stopped.")


service_manager = ServiceManager()
