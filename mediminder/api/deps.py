from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Any, Callable, Optional

from fastapi import HTTPException, Request

from mediminder.agent.graph import build_review_graph
from mediminder.services.chat import ChatService, GeminiProvider, HuggingFaceProvider
from mediminder.services.kv_store import KeyValueStore
from mediminder.services.notifications import NotificationScheduler
from mediminder.services.platforms import InMemoryNotificationPlatform, NotificationPlatform
from mediminder.services.reminders import ReminderOrchestrator
from mediminder.services.schedule_store import ScheduleStore
from mediminder.utils.time_utils import local_tz, utc_now


@dataclass
class ServiceContainer:
    kv: KeyValueStore
    store: ScheduleStore
    scheduler: NotificationScheduler
    orchestrator: ReminderOrchestrator
    chat: ChatService
    graph: Any  # compiled review graph


def build_container(
    kv: KeyValueStore,
    checkpointer,
    platform: Optional[NotificationPlatform] = None,
    chat: Optional[ChatService] = None,
    clock: Callable[[], datetime] = utc_now,
    today: Optional[Callable[[], date]] = None,
    tz: Optional[tzinfo] = None,
) -> ServiceContainer:
    tz = tz or local_tz()
    store = ScheduleStore(kv, clock=clock)
    scheduler = NotificationScheduler(platform or InMemoryNotificationPlatform(), kv, clock=clock, tz=tz)
    orchestrator = ReminderOrchestrator(store, scheduler, tz=tz, today=today)
    chat = chat or ChatService(GeminiProvider(), fallback=HuggingFaceProvider())
    return ServiceContainer(
        kv=kv,
        store=store,
        scheduler=scheduler,
        orchestrator=orchestrator,
        chat=chat,
        graph=build_review_graph(orchestrator, checkpointer),
    )


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Service is starting up.")
    return container
