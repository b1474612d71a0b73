import asyncio
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from core.config_loader import config_loader
from core.errors import LivenessUpdateError
from core.event_hub import DEVICE_STATUS, event_hub
from core.models.enums import LivenessState
from core.models.telemetry import utc_now

logger = logging.getLogger(__name__)


@dataclass
class DeviceLivenessState:
    """Last-seen timestamp and online flag of one device."""
    device_id: str
    last_seen: datetime
    online: bool = True

    @property
    def state(self) -> LivenessState:
        return LivenessState.ONLINE if self.online else LivenessState.OFFLINE

    def is_stale(self, now: datetime, threshold: timedelta) -> bool:
        return now - self.last_seen > threshold

    def to_document(self) -> dict:
        return {
            "deviceId": self.device_id,
            "lastSeen": self.last_seen.isoformat(),
            "online": self.online,
        }


class LivenessTracker:
    """
    Process-wide device liveness state.

    Per device: UNKNOWN -> ONLINE (first heartbeat) -> OFFLINE (sweep timeout or
    explicit offline) -> ONLINE (next heartbeat or explicit online), cycling forever.

    Every mutation holds that device's lock (acquired with a timeout). The
    registry lock only guards insertion into the mapping. ``snapshot`` reads
    without device locks and may lag the latest write.
    """

    def __init__(self, offline_threshold: Optional[timedelta] = None,
                 sweep_interval: Optional[float] = None,
                 lock_timeout: Optional[float] = None):
        cfg = config_loader.get_liveness_config()
        self.offline_threshold = offline_threshold or timedelta(seconds=cfg.offline_threshold_seconds)
        self.sweep_interval = sweep_interval if sweep_interval is not None else cfg.sweep_interval_seconds
        self.lock_timeout = lock_timeout if lock_timeout is not None else cfg.lock_timeout_seconds

        self._states: Dict[str, DeviceLivenessState] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._running = False
        self._sweep_task: Optional[asyncio.Task] = None

    # --- locking -------------------------------------------------------

    def _device_lock(self, device_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(device_id)
            if lock is None:
                lock = self._locks[device_id] = threading.Lock()
            return lock

    def _acquire(self, device_id: str) -> threading.Lock:
        lock = self._device_lock(device_id)
        if not lock.acquire(timeout=self.lock_timeout):
            raise LivenessUpdateError(f"Timed out waiting for liveness lock of {device_id}")
        return lock

    def _store(self, state: DeviceLivenessState):
        with self._registry_lock:
            self._states[state.device_id] = state

    # --- mutations -----------------------------------------------------

    def heartbeat(self, device_id: str, now: Optional[datetime] = None) -> DeviceLivenessState:
        """Record activity: ``last_seen = now`` and ``online = True``."""
        now = now or utc_now()
        lock = self._acquire(device_id)
        try:
            previous = self._states.get(device_id)
            state = DeviceLivenessState(device_id=device_id, last_seen=now, online=True)
            self._store(state)
        finally:
            lock.release()

        if previous is None or not previous.online:
            logger.info(f"✓ {device_id} is online")
            self._announce(state)
        return replace(state)

    def set_online(self, device_id: str, online: bool, now: Optional[datetime] = None) -> DeviceLivenessState:
        """Administrative override of the online flag.

        ``last_seen`` is left untouched for tracked devices; an untracked device
        starts with ``last_seen = now``.
        """
        lock = self._acquire(device_id)
        try:
            previous = self._states.get(device_id)
            if previous is None:
                state = DeviceLivenessState(device_id=device_id, last_seen=now or utc_now(), online=online)
            else:
                state = replace(previous, online=online)
            self._store(state)
        finally:
            lock.release()

        logger.info(f"Device {device_id} manually set {'online' if online else 'offline'}")
        if previous is None or previous.online != online:
            self._announce(state)
        return replace(state)

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """Mark devices silent for longer than the offline threshold as offline.

        Returns the ids that changed state in this pass.
        """
        now = now or utc_now()
        with self._registry_lock:
            device_ids = list(self._states.keys())

        expired: List[str] = []
        for device_id in device_ids:
            try:
                lock = self._acquire(device_id)
            except LivenessUpdateError as e:
                # Retried on the next pass
                logger.warning(f"Sweep skipped {device_id}: {e}")
                continue
            try:
                state = self._states.get(device_id)
                if state is None or not state.online or not state.is_stale(now, self.offline_threshold):
                    continue
                state = replace(state, online=False)
                self._store(state)
            finally:
                lock.release()

            silence = (now - state.last_seen).total_seconds()
            logger.warning(f"⚠ {device_id} marked offline (no activity for {silence:.0f}s)")
            expired.append(device_id)
            self._announce(state)
        return expired

    def mark_all_offline(self) -> List[str]:
        with self._registry_lock:
            device_ids = list(self._states.keys())
        for device_id in device_ids:
            self.set_online(device_id, False)
        return device_ids

    def clear(self):
        """Forget every tracked device."""
        with self._registry_lock:
            self._states.clear()
            self._locks.clear()

    # --- reads ---------------------------------------------------------

    def get(self, device_id: str) -> Optional[DeviceLivenessState]:
        state = self._states.get(device_id)
        return replace(state) if state else None

    def get_state(self, device_id: str) -> LivenessState:
        state = self._states.get(device_id)
        return state.state if state else LivenessState.UNKNOWN

    def snapshot(self) -> List[DeviceLivenessState]:
        with self._registry_lock:
            states = list(self._states.values())
        return [replace(s) for s in states]

    def _announce(self, state: DeviceLivenessState):
        try:
            event_hub.publish(DEVICE_STATUS, state.to_document())
        except Exception as e:
            logger.debug(f"Could not publish status of {state.device_id}: {e}")

    # --- periodic sweep ------------------------------------------------

    @property
    def is_sweeping(self) -> bool:
        return self._running

    def start_sweeping(self) -> asyncio.Task:
        """Schedule the periodic sweep on the running loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
        return self._sweep_task

    async def _sweep_loop(self):
        self._running = True
        logger.info(f"Starting liveness sweep (every {self.sweep_interval}s)...")
        try:
            while self._running:
                await asyncio.sleep(self.sweep_interval)
                try:
                    self.sweep()
                except Exception as e:
                    logger.error(f"Error in liveness sweep: {e}")
        except asyncio.CancelledError:
            logger.info("Liveness sweep stopped")
        finally:
            self._running = False

    async def stop_sweeping(self):
        self._running = False
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None


# Global instance
liveness_tracker = LivenessTracker()
