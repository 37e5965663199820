"""Priority inversion lesson — three tasks and one mutex.

The Mars Pathfinder story, replayed tick by tick:

1. **Low** (priority 1) takes the mutex and starts its critical work.
2. **High** (priority 3) wakes at tick 1, preempts Low, and tries to take
   the mutex.  It is held, so High blocks.
3. **Medium** (priority 2) wakes at tick 2.  It needs no mutex at all.

Without inheritance Medium preempts Low, so Low cannot finish and High
waits for a task that has nothing to do with it — unbounded inversion.
With inheritance Low runs at High's priority until it releases, Medium
stays READY, and High gets the mutex as early as possible.

In **scripted** mode the tasks' own code takes and gives the mutex.  In
manual mode the tasks only do plain work and the learner issues every
take and give through ``request_acquire`` / ``request_release``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from py_rtos.errors import ContractViolationError
from py_rtos.isa import Acquire, Delay, Execute, Jump, Program, Release, WaitForInterrupt
from py_rtos.kernel import Kernel, Scenario, StepGranularity, TaskSpec

if TYPE_CHECKING:
    from py_rtos.snapshot import KernelSnapshot
    from py_rtos.sync.mutex import AcquireResult, ReleaseResult

IDLE_TID = 0
LOW_TID = 1
MEDIUM_TID = 2
HIGH_TID = 3

HIGH_WAKE_TICK = 1
MEDIUM_WAKE_TICK = 2
_REST_TICKS = 8
_MEDIUM_WORK = 4

LOW_PROGRAM = Program(
    "vLowTask",
    (
        Acquire(),
        Execute("update_shared_telemetry()"),
        Execute("flush_telemetry()"),
        Release(),
        Delay(_REST_TICKS),
        Jump(0),
    ),
)

MEDIUM_PROGRAM = Program(
    "vMediumTask",
    (
        *(Execute("crunch_numbers()") for _ in range(_MEDIUM_WORK)),
        Delay(_REST_TICKS),
        Jump(0),
    ),
)

HIGH_PROGRAM = Program(
    "vHighTask",
    (
        Acquire(),
        Execute("read_shared_telemetry()"),
        Release(),
        Delay(_REST_TICKS),
        Jump(0),
    ),
)

IDLE_PROGRAM = Program("prvIdleTask", (WaitForInterrupt(), Jump(0)))


def _work_program(name: str) -> Program:
    return Program(name, (Execute("do_work()"), Jump(0)))


def inversion_scenario(*, inheritance: bool = True, scripted: bool = True) -> Scenario:
    """Return the Low / Medium / High scenario.

    Args:
        inheritance: Whether the mutex uses priority inheritance.
        scripted: Whether the tasks take and give the mutex themselves
            (and wake at staggered ticks), or only do plain work.

    """
    if scripted:
        low, medium, high = LOW_PROGRAM, MEDIUM_PROGRAM, HIGH_PROGRAM
        medium_delay, high_delay = MEDIUM_WAKE_TICK, HIGH_WAKE_TICK
    else:
        low = _work_program("vLowTask")
        medium = _work_program("vMediumTask")
        high = _work_program("vHighTask")
        medium_delay = high_delay = 0
    return Scenario(
        name="inversion",
        tasks=(
            TaskSpec(tid=IDLE_TID, name="Idle", priority=0, program=IDLE_PROGRAM, idle=True),
            TaskSpec(tid=LOW_TID, name="Low", priority=1, program=low),
            TaskSpec(
                tid=MEDIUM_TID,
                name="Medium",
                priority=2,
                program=medium,
                initial_delay=medium_delay,
            ),
            TaskSpec(tid=HIGH_TID, name="High", priority=3, program=high, initial_delay=high_delay),
        ),
        cycles_per_tick=1,
        mutex=True,
        inheritance=inheritance,
    )


class InversionLesson:
    """Drive the priority inversion scenario."""

    name = "inversion"
    title = "Priority inversion — and how inheritance bounds it"

    def __init__(self, *, inheritance: bool = True, scripted: bool = True) -> None:
        """Create the lesson and boot its kernel."""
        self._scripted = scripted
        self._kernel = Kernel(inversion_scenario(inheritance=inheritance, scripted=scripted))

    @property
    def kernel(self) -> Kernel:
        """Return the underlying kernel."""
        return self._kernel

    @property
    def inheritance(self) -> bool:
        """Return whether priority inheritance is enabled."""
        return self._kernel.scenario.inheritance

    @property
    def scripted(self) -> bool:
        """Return whether the tasks drive the mutex themselves."""
        return self._scripted

    def set_inheritance(self, enabled: bool) -> KernelSnapshot:  # noqa: FBT001
        """Switch inheritance on or off and restart the scenario."""
        self._kernel = Kernel(inversion_scenario(inheritance=enabled, scripted=self._scripted))
        return self._kernel.snapshot()

    def reset(self) -> KernelSnapshot:
        """Return to tick 0 with Low running."""
        return self._kernel.reset()

    def step(self, granularity: StepGranularity = StepGranularity.MICRO) -> KernelSnapshot:
        """Advance by one micro-step, task instruction, or tick."""
        return self._kernel.step(granularity)

    def snapshot(self) -> KernelSnapshot:
        """Return the current state."""
        return self._kernel.snapshot()

    def _require_manual(self) -> None:
        if self._scripted:
            msg = "In scripted mode the tasks take and give the mutex themselves"
            raise ContractViolationError(msg)

    def request_acquire(self, tid: int) -> AcquireResult:
        """Make task *tid* take the mutex.

        Raises:
            ContractViolationError: In scripted mode, or if the request is illegal.

        """
        self._require_manual()
        return self._kernel.request_acquire(tid)

    def request_release(self, tid: int) -> ReleaseResult:
        """Make task *tid* give the mutex back.

        Raises:
            ContractViolationError: In scripted mode, or if *tid* is not the holder.

        """
        self._require_manual()
        return self._kernel.request_release(tid)

    def perform(self, action: str, params: dict[str, Any]) -> KernelSnapshot:
        """Run a named driver action.

        Raises:
            KeyError: If the action is unknown or a parameter is missing.

        """
        match action:
            case "acquire":
                self.request_acquire(int(params["tid"]))
            case "release":
                self.request_release(int(params["tid"]))
            case "set_inheritance":
                return self.set_inheritance(bool(params["enabled"]))
            case _:
                msg = f"Unknown action for {self.name}: {action}"
                raise KeyError(msg)
        return self.snapshot()
