"""Context switch lesson — the PendSV handler, one instruction at a time.

On a Cortex-M4 a FreeRTOS context switch happens in the PendSV
exception.  When the exception is taken, the hardware has *already*
pushed R0-R3, R12, LR, PC and xPSR of the outgoing task onto that task's
stack.  The handler only has to deal with the rest:

1. Read the task's stack pointer (PSP) and push R4-R11 below the
   hardware frame — the *software* context.
2. Store the new top of stack in the outgoing task's TCB.
3. Mask interrupts with BASEPRI and call ``vTaskSwitchContext`` to pick
   the incoming task.
4. Load that task's top of stack from its TCB, pop its R4-R11, point PSP
   at what is left and return — the hardware pops the rest.

Task A is switched out and Task B in.  The register values are made up
but shaped like a real STM32F4's, so the learner can follow each word.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from py_rtos.logging import Logger, LogLevel
from py_rtos.snapshot import View

MAX_SYSCALL_INTERRUPT_PRIORITY = 0x50
_WORD = 4
_SOFTWARE_REGISTERS = tuple(f"r{n}" for n in range(4, 12))
_HARDWARE_REGISTERS = ("r0", "r1", "r2", "r3", "r12", "lr", "pc", "xpsr")

TASK_A_REGISTERS: dict[str, int] = {
    "r0": 0x20001000,
    "r1": 0x00000001,
    "r2": 0x20000800,
    "r3": 0x00000000,
    **{name: 0xA0000000 + n for n, name in enumerate(_SOFTWARE_REGISTERS, start=4)},
    "r12": 0xDEADBEEF,
    "lr": 0xFFFFFFFD,
    "pc": 0x08001234,
    "xpsr": 0x01000000,
    "psp": 0x20000FF0,
    "msp": 0x2000FF00,
}

TASK_B_REGISTERS: dict[str, int] = {
    "r0": 0x20002000,
    "r1": 0x00000002,
    "r2": 0x20001800,
    "r3": 0x00000000,
    **{name: 0xB0000000 + n for n, name in enumerate(_SOFTWARE_REGISTERS, start=4)},
    "r12": 0xCAFEBABE,
    "lr": 0xFFFFFFFD,
    "pc": 0x08005678,
    "xpsr": 0x01000000,
    "psp": 0x20001FF0,
    "msp": 0x2000FF00,
}

TCB_A = "TCB_A"
TCB_B = "TCB_B"
TCB_ADDRESSES = {TCB_A: 0x20000100, TCB_B: 0x20000200}
CURRENT_TCB_ADDRESS = 0x20000004


@dataclass(frozen=True)
class PendSvStep:
    """One instruction of the handler.

    Attributes:
        line: Line number in the handler listing.
        mnemonic: The assembly instruction.
        description: What it does, in words.

    """

    line: int
    mnemonic: str
    description: str


PENDSV_STEPS: tuple[PendSvStep, ...] = (
    PendSvStep(2, "xPortPendSVHandler:", "Entry; R0-R3, R12, LR, PC, xPSR already stacked"),
    PendSvStep(3, "mrs r0, psp", "Read the outgoing task's stack pointer"),
    PendSvStep(8, "ldr r2, [r3]", "Load pxCurrentTCB"),
    PendSvStep(11, "stmdb r0!, {r4-r11}", "Push R4-R11 onto the outgoing task's stack"),
    PendSvStep(12, "str r0, [r2]", "Save the new top of stack in the TCB"),
    PendSvStep(14, "stmdb sp!, {r3, r14}", "Save R3 and EXC_RETURN on the main stack"),
    PendSvStep(18, "msr basepri, r0", "Mask interrupts up to configMAX_SYSCALL_INTERRUPT_PRIORITY"),
    PendSvStep(22, "bl vTaskSwitchContext", "Select the next task"),
    PendSvStep(26, "msr basepri, r0", "Unmask interrupts"),
    PendSvStep(28, "ldmia sp!, {r3, r14}", "Restore R3 and EXC_RETURN"),
    PendSvStep(31, "ldr r0, [r1]", "Load the incoming task's top of stack"),
    PendSvStep(33, "ldmia r0!, {r4-r11}", "Pop R4-R11 from the incoming task's stack"),
    PendSvStep(35, "msr psp, r0", "Point PSP at the incoming task's hardware frame"),
    PendSvStep(37, "bx r14", "Exception return; hardware pops the rest"),
)


@dataclass(frozen=True)
class ContextSwitchSnapshot(View):
    """State of the context switch lesson after a step."""

    step: int
    total_steps: int
    line: int
    mnemonic: str
    description: str
    registers: dict[str, str]
    basepri: int
    current_tcb: str
    top_of_stack: dict[str, str]
    stack_a: tuple[str, ...]
    stack_b: tuple[str, ...]
    running: str
    finished: bool
    log_line: str


def _hex(value: int) -> str:
    return f"0x{value:08X}"


class ContextSwitchLesson:
    """Replay the PendSV handler switching from Task A to Task B."""

    name = "context_switch"
    title = "Context switch — inside the PendSV handler"

    def __init__(self) -> None:
        """Create the lesson paused at the handler entry."""
        self._logger = Logger()
        self.reset()

    @property
    def position(self) -> int:
        """Return the index of the step just executed."""
        return self._position

    @property
    def finished(self) -> bool:
        """Return True once the exception return has run."""
        return self._position == len(PENDSV_STEPS) - 1

    def reset(self) -> ContextSwitchSnapshot:
        """Return to the handler entry with Task A's registers loaded."""
        self._position = 0
        self._registers = dict(TASK_A_REGISTERS)
        self._basepri = 0
        self._current_tcb = TCB_A
        self._running = "Task A"
        self._main_stack: list[int] = []
        # Task B was switched out earlier, so its software context is saved.
        b_top = TASK_B_REGISTERS["psp"] - len(_SOFTWARE_REGISTERS) * _WORD
        self._top_of_stack = {TCB_A: TASK_A_REGISTERS["psp"], TCB_B: b_top}
        self._stacks: dict[str, list[int]] = {
            TCB_A: [],
            TCB_B: [TASK_B_REGISTERS[name] for name in _SOFTWARE_REGISTERS],
        }
        self._logger.clear()
        self._log(PENDSV_STEPS[0])
        return self.snapshot()

    def step(self) -> ContextSwitchSnapshot:
        """Execute the next handler instruction (no-op when finished)."""
        if self.finished:
            return self.snapshot()
        self._position += 1
        self._apply(self._position)
        self._log(PENDSV_STEPS[self._position])
        return self.snapshot()

    def step_back(self) -> ContextSwitchSnapshot:
        """Undo one instruction by replaying the handler from the start."""
        target = max(0, self._position - 1)
        self.reset()
        while self._position < target:
            self.step()
        return self.snapshot()

    def perform(self, action: str, params: dict[str, Any]) -> ContextSwitchSnapshot:  # noqa: ARG002
        """Run a named driver action.

        Raises:
            KeyError: If the action is unknown.

        """
        match action:
            case "step_back":
                return self.step_back()
            case _:
                msg = f"Unknown action for {self.name}: {action}"
                raise KeyError(msg)

    def _apply(self, position: int) -> None:  # noqa: C901
        regs = self._registers
        match position:
            case 1:
                regs["r0"] = regs["psp"]
            case 2:
                regs["r3"] = CURRENT_TCB_ADDRESS
                regs["r2"] = TCB_ADDRESSES[TCB_A]
            case 3:
                self._stacks[TCB_A] = [regs[name] for name in _SOFTWARE_REGISTERS]
                regs["r0"] -= len(_SOFTWARE_REGISTERS) * _WORD
            case 4:
                self._top_of_stack[TCB_A] = regs["r0"]
            case 5:
                self._main_stack = [regs["r3"], regs["lr"]]
                regs["msp"] -= 2 * _WORD
            case 6:
                self._basepri = MAX_SYSCALL_INTERRUPT_PRIORITY
            case 7:
                self._current_tcb = TCB_B
            case 8:
                self._basepri = 0
            case 9:
                regs["r3"], regs["lr"] = self._main_stack
                self._main_stack = []
                regs["msp"] += 2 * _WORD
            case 10:
                regs["r1"] = TCB_ADDRESSES[TCB_B]
                regs["r0"] = self._top_of_stack[TCB_B]
            case 11:
                for name, value in zip(_SOFTWARE_REGISTERS, self._stacks[TCB_B], strict=True):
                    regs[name] = value
                self._stacks[TCB_B] = []
                regs["r0"] += len(_SOFTWARE_REGISTERS) * _WORD
            case 12:
                regs["psp"] = regs["r0"]
            case _:
                for name in _HARDWARE_REGISTERS:
                    regs[name] = TASK_B_REGISTERS[name]
                regs["psp"] += len(_HARDWARE_REGISTERS) * _WORD
                self._running = "Task B"

    def snapshot(self) -> ContextSwitchSnapshot:
        """Return the current state."""
        step = PENDSV_STEPS[self._position]
        last = self._logger.last
        return ContextSwitchSnapshot(
            step=self._position,
            total_steps=len(PENDSV_STEPS),
            line=step.line,
            mnemonic=step.mnemonic,
            description=step.description,
            registers={name: _hex(value) for name, value in self._registers.items()},
            basepri=self._basepri,
            current_tcb=self._current_tcb,
            top_of_stack={tcb: _hex(top) for tcb, top in self._top_of_stack.items()},
            stack_a=tuple(_hex(word) for word in self._stacks[TCB_A]),
            stack_b=tuple(_hex(word) for word in self._stacks[TCB_B]),
            running=self._running,
            finished=self.finished,
            log_line="" if last is None else last.message,
        )

    def _log(self, step: PendSvStep) -> None:
        self._logger.log(LogLevel.INFO, f"{step.mnemonic}  ; {step.description}", source="pendsv")
