from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable
from sqlalchemy.orm.session import Session
from fusion_gate.db import db_security_event
from fusion_gate.log.system_log import system_logger
from fusion_gate.security.config import BURST_RULE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BurstCheck:
    """Events counted for the IP in the trailing window, and whether that is a burst."""
    count: int
    exceeded: bool


def count_recent_events(db: Session, ip_address: str, window_seconds: int = 60,
                        clock: Callable[[], datetime] = _utcnow) -> int:
    """
    Number of security events logged for `ip_address` during the last `window_seconds`.
    A failed query counts as 0.
    """
    since = clock() - timedelta(seconds=window_seconds)
    result = db_security_event.count_events_by_ip_since(db=db, ip_address=ip_address, since=since)
    if not result["success"]:
        system_logger.warning("Burst check skipped for %s: %s", ip_address, result["message"])
        return 0
    return result["data"]


class BurstDetector:
    """
    Secondary brute-force signal: an IP with more than `threshold` logged events
    in the trailing `window_seconds` is bursting.
    It reads the persisted event log, so it does not share state with the edge rate limiter.
    """

    def __init__(self, threshold: int = BURST_RULE["threshold"],
                 window_seconds: int = BURST_RULE["window_seconds"],
                 clock: Callable[[], datetime] = _utcnow):
        self.threshold = threshold
        self.window_seconds = window_seconds
        self.clock = clock

    def check(self, db: Session, ip_address: str) -> BurstCheck:
        count = count_recent_events(db, ip_address, self.window_seconds, clock=self.clock)
        return BurstCheck(count=count, exceeded=count > self.threshold)
