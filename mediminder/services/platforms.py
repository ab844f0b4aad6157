import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol


class NotificationPlatform(Protocol):
    """Local notification API of the device the reminders fire on."""

    async def ensure_permissions(self) -> bool: ...

    async def configure_channel(self, channel_id: str, name: str) -> None: ...

    async def schedule(self, title: str, body: str, data: Dict[str, Any], trigger_time: datetime) -> str: ...

    async def cancel(self, alert_id: str) -> None: ...

    async def cancel_all(self) -> None: ...

    async def list_scheduled(self) -> List[Dict[str, Any]]: ...


@dataclass
class ScheduledAlert:
    alert_id: str
    title: str
    body: str
    data: Dict[str, Any]
    trigger_time: datetime
    channel_id: Optional[str] = None


@dataclass
class InMemoryNotificationPlatform:
    """Records alerts instead of delivering them (development and tests)."""
    permission_granted: bool = True
    channel_id: Optional[str] = "meds"
    alerts: Dict[str, ScheduledAlert] = field(default_factory=dict)
    channels: Dict[str, str] = field(default_factory=dict)

    async def ensure_permissions(self) -> bool:
        return self.permission_granted

    async def configure_channel(self, channel_id: str, name: str) -> None:
        self.channels[channel_id] = name

    async def schedule(self, title: str, body: str, data: Dict[str, Any], trigger_time: datetime) -> str:
        alert_id = "notif_" + uuid.uuid4().hex[:8]
        self.alerts[alert_id] = ScheduledAlert(
            alert_id=alert_id,
            title=title,
            body=body,
            data=dict(data),
            trigger_time=trigger_time,
            channel_id=self.channel_id if self.channel_id in self.channels else None,
        )
        return alert_id

    async def cancel(self, alert_id: str) -> None:
        self.alerts.pop(alert_id, None)

    async def cancel_all(self) -> None:
        self.alerts.clear()

    async def list_scheduled(self) -> List[Dict[str, Any]]:
        return [
            {
                "alert_id": a.alert_id,
                "title": a.title,
                "body": a.body,
                "data": a.data,
                "trigger_time": a.trigger_time.isoformat(),
            }
            for a in sorted(self.alerts.values(), key=lambda a: a.trigger_time)
        ]
