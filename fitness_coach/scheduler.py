"""Time-triggered notification fan-out.

Each `NotificationTrigger` pairs a crontab expression with an audience query
and a pure compose function. `NotificationScheduler.run_forever` is a single
timer loop that launches every due trigger as its own task; within a firing,
recipients are notified one after another and a failure for one recipient is
logged and counted without touching the rest.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

from apscheduler.triggers.cron import CronTrigger

from fitness_coach.errors import RepositoryError, TransportError
from fitness_coach.interfaces import ChatTransport, UserRepository
from fitness_coach.models import OutboundMessage, User

logger = logging.getLogger(__name__)

UTC = ZoneInfo("UTC")

AudienceQuery = Callable[[UserRepository, datetime], Iterable[User]]
ContextBuilder = Callable[[UserRepository, User, datetime], dict]
Composer = Callable[[User, dict], OutboundMessage | None]


class NotificationTrigger:
    def __init__(
        self,
        name: str,
        cron: str,
        audience: AudienceQuery,
        compose: Composer,
        context: ContextBuilder | None = None,
        timezone: tzinfo = UTC,
    ) -> None:
        self.name = name
        self.cron = cron
        self.audience = audience
        self.compose = compose
        self.context = context
        self.timezone = timezone
        self._cron = CronTrigger.from_crontab(cron, timezone=timezone)

    def __repr__(self) -> str:
        return f"NotificationTrigger({self.name!r}, {self.cron!r})"

    def next_fire(self, after: datetime) -> datetime:
        """First scheduled time strictly after `after`."""
        # CronTrigger rounds up to whole seconds and includes its start point.
        return self._cron.get_next_fire_time(None, after + timedelta(microseconds=1))

    def last_fire(self, now: datetime, within: timedelta) -> datetime | None:
        """Most recent scheduled time in `(now - within, now]`, if any."""
        candidate = self.next_fire(now - within)
        if candidate is None or candidate > now:
            return None
        latest = candidate
        while True:
            following = self.next_fire(latest)
            if following is None or following > now:
                return latest
            latest = following

    def period_key(self, fire_time: datetime) -> str:
        return fire_time.astimezone(self.timezone).strftime("%Y-%m-%dT%H:%M")


@dataclass
class FiringReport:
    trigger: str
    period_key: str
    audience: int = 0
    sent: int = 0
    skipped: int = 0
    failed: list[str] = field(default_factory=list)
    aborted: bool = False


class NotificationScheduler:
    def __init__(
        self,
        repository: UserRepository,
        transport: ChatTransport,
        timezone: tzinfo = UTC,
        clock: Callable[[], datetime] | None = None,
        max_sleep: float = 60.0,
    ) -> None:
        self._repository = repository
        self._transport = transport
        self._timezone = timezone
        self._clock = clock or (lambda: datetime.now(self._timezone))
        self._max_sleep = max_sleep
        self._triggers: dict[str, NotificationTrigger] = {}
        self._running: dict[str, asyncio.Task] = {}
        self._stopping: asyncio.Event | None = None

    @property
    def triggers(self) -> list[NotificationTrigger]:
        return list(self._triggers.values())

    def register_trigger(
        self,
        name: str,
        cron: str,
        audience: AudienceQuery,
        compose: Composer,
        context: ContextBuilder | None = None,
    ) -> NotificationTrigger:
        if name in self._triggers:
            raise ValueError(f"trigger {name!r} is already registered")
        trigger = NotificationTrigger(name, cron, audience, compose, context, self._timezone)
        self._triggers[name] = trigger
        return trigger

    async def fire(self, trigger: NotificationTrigger, fire_time: datetime) -> FiringReport:
        report = FiringReport(trigger=trigger.name, period_key=trigger.period_key(fire_time))
        try:
            users = list(trigger.audience(self._repository, fire_time))
        except RepositoryError:
            logger.exception("Audience query for %s failed; skipping this firing", trigger.name)
            report.aborted = True
            return report

        report.audience = len(users)
        for user in users:
            try:
                if self._repository.notification_sent(user.user_id, trigger.name, report.period_key):
                    report.skipped += 1
                    continue
                context = trigger.context(self._repository, user, fire_time) if trigger.context else {}
                message = trigger.compose(user, context)
                if message is None:
                    report.skipped += 1
                    continue
                await self._transport.send_message(user.user_id, message)
            except (TransportError, RepositoryError) as exc:
                logger.warning("%s: could not notify user %s: %s", trigger.name, user.user_id, exc)
                report.failed.append(user.user_id)
                continue

            report.sent += 1
            try:
                self._repository.mark_notification_sent(user.user_id, trigger.name, report.period_key)
            except RepositoryError as exc:
                logger.warning("%s: sent to %s but ledger write failed: %s", trigger.name, user.user_id, exc)

        logger.info(
            "Trigger %s (%s): audience=%d sent=%d skipped=%d failed=%d",
            trigger.name,
            report.period_key,
            report.audience,
            report.sent,
            report.skipped,
            len(report.failed),
        )
        return report

    async def run_due(self, now: datetime | None = None, window: timedelta = timedelta(minutes=15)) -> list[FiringReport]:
        """Fire every trigger whose latest slot falls within `window` before `now`.

        Meant for an external cron that calls in periodically; the ledger
        keeps a slot from being delivered twice to the same user.
        """
        now = now or self._clock()
        due = [
            (trigger, fire_time)
            for trigger in self._triggers.values()
            if (fire_time := trigger.last_fire(now, window)) is not None
        ]
        if not due:
            return []
        return list(await asyncio.gather(*(self.fire(trigger, fire_time) for trigger, fire_time in due)))

    def _launch(self, trigger: NotificationTrigger, fire_time: datetime) -> None:
        previous = self._running.get(trigger.name)
        if previous is not None and not previous.done():
            logger.warning("Trigger %s still running; skipping slot %s", trigger.name, trigger.period_key(fire_time))
            return
        task = asyncio.create_task(self.fire(trigger, fire_time), name=f"trigger:{trigger.name}")
        task.add_done_callback(self._log_task_failure)
        self._running[trigger.name] = task

    @staticmethod
    def _log_task_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Firing %s crashed", task.get_name(), exc_info=exc)

    async def run_forever(self) -> None:
        self._stopping = asyncio.Event()
        now = self._clock()
        schedule = {name: trigger.next_fire(now) for name, trigger in self._triggers.items()}
        for name, fire_time in schedule.items():
            logger.info("Trigger %s next fires at %s", name, fire_time.isoformat())

        try:
            while not self._stopping.is_set() and schedule:
                delay = (min(schedule.values()) - self._clock()).total_seconds()
                if delay > 0:
                    try:
                        await asyncio.wait_for(self._stopping.wait(), timeout=min(delay, self._max_sleep))
                        break
                    except asyncio.TimeoutError:
                        continue

                now = self._clock()
                for name, fire_time in list(schedule.items()):
                    if fire_time <= now:
                        self._launch(self._triggers[name], fire_time)
                        schedule[name] = self._triggers[name].next_fire(now)
        finally:
            for task in self._running.values():
                if not task.done():
                    task.cancel()

    def stop(self) -> None:
        if self._stopping is not None:
            self._stopping.set()
