"""
Rack automation worker - one sequential pipeline per rack.

A worker takes one reading at a time through evaluate → reserve → resolve →
dispatch → record → persist. Nothing else runs for its rack until that cycle
is finished, which is what keeps a rack from double-dispatching.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Callable, List, Optional, Sequence, Set

from .adapter import ActuatorChannel, EventSink, RuleStore
from .cooldown import CooldownTracker
from .evaluators import ConditionEvaluator
from .models import (
    ActuatorCommand,
    AutomatedEvent,
    AutomationConfig,
    AutomationRule,
    DispatchFailure,
    DispatchPolicy,
    DispatchResult,
    RuleValidationError,
    SensorReading,
)
from .resolver import ActionResolver
from .validation import validate_rule

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


class WorkerState(Enum):
    """Where a rack worker is in its cycle."""

    IDLE = "idle"
    EVALUATING = "evaluating"
    DISPATCHING = "dispatching"


@dataclass
class CycleResult:
    """Outcome of processing one reading for one rack."""

    rack_id: str
    rules_evaluated: int = 0
    rules_satisfied: int = 0
    rules_reserved: int = 0
    commands: List[ActuatorCommand] = field(default_factory=list)
    executed_actions: List[str] = field(default_factory=list)
    event: Optional[AutomatedEvent] = None
    failures: List[DispatchFailure] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    aborted: bool = False  # A storage fault cut the cycle short


class RackWorker:
    """
    Sequential automation pipeline for a single rack.

    Readings arrive either through submit() (queued, processed by the
    worker's own task) or process() (awaited directly). Both paths share
    one lock, so cycles never overlap.
    """

    def __init__(
        self,
        rack_id: str,
        rule_store: RuleStore,
        actuator: ActuatorChannel,
        event_sink: EventSink,
        tracker: CooldownTracker,
        config: Optional[AutomationConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.rack_id = rack_id
        self._store = rule_store
        self._actuator = actuator
        self._sink = event_sink
        self._tracker = tracker
        self._config = config or AutomationConfig()
        self._clock = clock or _utc_now

        self._evaluator = ConditionEvaluator()
        self._resolver = ActionResolver()

        self._state = WorkerState.IDLE
        self._cycle_lock = asyncio.Lock()
        self._queue: "asyncio.Queue[Optional[SensorReading]]" = asyncio.Queue(
            maxsize=self._config.queue_size
        )
        self._task: Optional[asyncio.Task] = None
        self._closing = False
        self._known_rules: Set[str] = set()

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def known_rule_ids(self) -> Set[str]:
        """IDs of every rule this worker has loaded."""
        return set(self._known_rules)

    @property
    def pending(self) -> int:
        """Readings waiting in the queue."""
        return self._queue.qsize()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start the worker's queue-draining task. Needs a running event loop."""
        if self.is_running:
            return
        self._closing = False
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"rack-worker-{self.rack_id}"
        )
        logger.info(f"Started automation worker for rack {self.rack_id}")

    async def stop(self) -> None:
        """
        Stop the worker.

        Queued readings are discarded. A cycle already in progress runs to
        completion first.
        """
        self._closing = True

        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            dropped += 1
        if dropped:
            logger.info(f"Discarded {dropped} pending readings for rack {self.rack_id}")

        if self._task is not None:
            self._queue.put_nowait(None)
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

        # A direct process() call may still hold the lock
        async with self._cycle_lock:
            pass

        logger.info(f"Stopped automation worker for rack {self.rack_id}")

    def submit(self, reading: SensorReading) -> bool:
        """
        Queue a reading for processing.

        Returns:
            True if queued, False if the worker is closing or its queue is full
        """
        if reading.rack_id != self.rack_id:
            raise ValueError(
                f"Reading for rack {reading.rack_id} sent to worker for {self.rack_id}"
            )

        if self._closing:
            logger.debug(f"Worker for rack {self.rack_id} is closing, dropping reading")
            return False

        try:
            self._queue.put_nowait(reading)
        except asyncio.QueueFull:
            logger.warning(f"Reading queue full for rack {self.rack_id}, dropping reading")
            return False
        return True

    async def _run(self) -> None:
        while True:
            reading = await self._queue.get()
            if reading is None:
                break
            try:
                # Shielded so cancelling the worker never interrupts a cycle
                await asyncio.shield(self.process(reading))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Unexpected error processing reading for rack {self.rack_id}: {e}",
                    exc_info=True,
                )

    # =========================================================================
    # Cycle
    # =========================================================================

    async def process(
        self,
        reading: SensorReading,
        now: Optional[datetime] = None,
    ) -> CycleResult:
        """
        Run one full automation cycle for a reading.

        Args:
            reading: The sensor reading (must be for this worker's rack)
            now: Current time (for testing)

        Returns:
            What the cycle evaluated, dispatched and recorded
        """
        if reading.rack_id != self.rack_id:
            raise ValueError(
                f"Reading for rack {reading.rack_id} sent to worker for {self.rack_id}"
            )

        async with self._cycle_lock:
            try:
                return await self._run_cycle(reading, now or self._clock())
            finally:
                self._state = WorkerState.IDLE

    async def _run_cycle(self, reading: SensorReading, now: datetime) -> CycleResult:
        result = CycleResult(rack_id=self.rack_id)
        self._state = WorkerState.EVALUATING

        try:
            rules = list(await self._store.list_rules_for_rack(self.rack_id))
        except Exception as e:
            logger.warning(
                f"Could not load rules for rack {self.rack_id}, dropping reading: {e}"
            )
            result.errors.append(f"rule storage unavailable: {e}")
            result.aborted = True
            return result

        self._known_rules.update(rule.id for rule in rules)
        satisfied = self._evaluate(reading, rules, result)
        reserved = self._reserve(satisfied, now)
        result.rules_satisfied = len(satisfied)
        result.rules_reserved = len(reserved)

        if not reserved:
            return result

        resolution = self._resolver.resolve(reserved)
        result.commands = list(resolution.commands)

        self._state = WorkerState.DISPATCHING
        executed_rules: List[AutomationRule] = []
        for command in resolution.commands:
            rule = resolution.rule_for(command)
            if await self._dispatch(command, rule, now, result):
                result.executed_actions.append(command.describe())
                if rule not in executed_rules:
                    executed_rules.append(rule)

        if executed_rules:
            trigger = max(executed_rules, key=reserved.index)
            result.event = AutomatedEvent(
                rack_id=self.rack_id,
                rule_name=trigger.name,
                executed_actions=tuple(result.executed_actions),
                timestamp=now,
                rule_ids=tuple(r.id for r in executed_rules),
            )
            logger.info(
                f"Rule {trigger.name!r} triggered on rack {self.rack_id}: "
                f"{', '.join(result.executed_actions)}"
            )
            try:
                self._sink.record_event(result.event)
            except Exception as e:
                logger.error(f"Event sink failed for rack {self.rack_id}: {e}", exc_info=True)

        await self._persist(reserved, now, result)
        return result

    def _evaluate(
        self,
        reading: SensorReading,
        rules: Sequence[AutomationRule],
        result: CycleResult,
    ) -> List[AutomationRule]:
        """Return enabled, well-formed rules whose conditions hold."""
        satisfied = []
        for rule in rules:
            result.rules_evaluated += 1

            if not rule.is_enabled:
                continue

            if rule.rack_id != self.rack_id:
                logger.error(f"Rule {rule.id} belongs to rack {rule.rack_id}, not {self.rack_id}")
                result.errors.append(f"rule {rule.id}: wrong rack")
                continue

            try:
                validate_rule(rule)
            except RuleValidationError as e:
                logger.error(f"Skipping malformed rule {rule.id} ({rule.name!r}): {e}")
                result.errors.append(f"rule {rule.id}: {e}")
                continue

            if self._evaluator.evaluate(reading, rule.conditions):
                satisfied.append(rule)
        return satisfied

    def _reserve(self, satisfied: List[AutomationRule], now: datetime) -> List[AutomationRule]:
        reserved = []
        for rule in satisfied:
            self._tracker.prime(rule.id, rule.last_triggered_at)
            if self._tracker.try_reserve(rule.id, now, rule.cooldown_minutes):
                reserved.append(rule)
        return reserved

    async def _dispatch(
        self,
        command: ActuatorCommand,
        rule: AutomationRule,
        now: datetime,
        result: CycleResult,
    ) -> bool:
        """
        Send one command according to the dispatch policy.

        Returns:
            True if the command counts as executed
        """
        policy = self._config.dispatch_policy
        attempts = 1
        if policy is DispatchPolicy.ACKNOWLEDGED:
            attempts += max(0, self._config.dispatch_retries)

        reason = ""
        for attempt in range(1, attempts + 1):
            try:
                outcome = await asyncio.wait_for(
                    self._actuator.dispatch(self.rack_id, command),
                    timeout=self._config.dispatch_timeout,
                )
            except asyncio.TimeoutError:
                reason = f"timed out after {self._config.dispatch_timeout}s"
            except Exception as e:
                reason = str(e) or type(e).__name__
            else:
                if outcome is DispatchResult.ACCEPTED:
                    return True
                reason = "rejected"

            logger.warning(
                f"Dispatch of {command.describe()} to rack {self.rack_id} failed "
                f"(attempt {attempt}/{attempts}): {reason}"
            )

        failure = DispatchFailure(
            rack_id=self.rack_id,
            rule_name=rule.name,
            command=command,
            reason=reason,
            timestamp=now,
        )
        result.failures.append(failure)
        try:
            self._sink.record_failure(failure)
        except Exception as e:
            logger.error(f"Event sink failed for rack {self.rack_id}: {e}", exc_info=True)

        return policy is DispatchPolicy.FIRE_AND_FORGET

    async def _persist(
        self,
        reserved: List[AutomationRule],
        now: datetime,
        result: CycleResult,
    ) -> None:
        """Write back lastTriggeredAt for every reserved rule, winners and losers."""
        for rule in reserved:
            try:
                ok = await self._store.update_last_triggered(rule.id, now)
                reason = "write rejected"
            except Exception as e:
                ok = False
                reason = str(e)

            if not ok:
                logger.warning(
                    f"Could not persist trigger time for rule {rule.id} on rack "
                    f"{self.rack_id}, abandoning remaining writes: {reason}"
                )
                result.errors.append(f"cooldown persistence failed for {rule.id}: {reason}")
                result.aborted = True
                return
