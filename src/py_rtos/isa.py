"""The simulated instruction set.

Everything the simulated CPU does — kernel tick handling, the interrupt
handler, and the user tasks themselves — is written as a small program
of instructions.  Each instruction is a frozen dataclass carrying its
operands, and the kernel runs them with an ordinary fetch-decode-execute
loop over a program counter.  There are no string-keyed step tables:
``match`` on the instruction class *is* the decoder.

Instructions fall into three groups:

- **Kernel** — the SysTick handler: ``IncrementTick``, ``UnblockDue``,
  ``ServicePending``, ``SelectTask``, ``Branch``, ``SwitchContext``,
  ``Return``.
- **ISR** — the external interrupt handler: ``IsrEntry``,
  ``YieldFromIsr`` (plus ``Execute`` for its body).
- **Task** — what user code does: ``Execute``, ``EnterCritical``,
  ``ExitCritical``, ``Print``, ``Delay``, ``Acquire``, ``Release``,
  ``Yield``, ``WaitForInterrupt``, ``Jump``.
"""

from dataclasses import dataclass
from enum import StrEnum


class BranchCondition(StrEnum):
    """Conditions a kernel ``Branch`` can test."""

    NO_SWITCH = "no_switch"


# -- Kernel instructions ------------------------------------------------------


@dataclass(frozen=True)
class IncrementTick:
    """Advance the tick counter by one."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "xTaskIncrementTick()"


@dataclass(frozen=True)
class UnblockDue:
    """Move every delayed task whose wake tick has arrived to READY."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "prvUnblockDueTasks()"


@dataclass(frozen=True)
class ServicePending:
    """Take a latched interrupt if nothing masks it."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "NVIC_CheckPending()"


@dataclass(frozen=True)
class SelectTask:
    """Re-run the ready-list scheduler."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "vTaskSwitchContext()"


@dataclass(frozen=True)
class Branch:
    """Jump to *target* when *condition* holds."""

    condition: BranchCondition
    target: int

    def __str__(self) -> str:
        """Return the mnemonic."""
        return f"if {self.condition}: goto {self.target}"


@dataclass(frozen=True)
class SwitchContext:
    """Swap the CPU from the previous task to the selected one (PendSV)."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "PendSV_Handler()"


@dataclass(frozen=True)
class Return:
    """Leave kernel mode and resume the running task."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "return"


# -- ISR instructions ---------------------------------------------------------


@dataclass(frozen=True)
class IsrEntry:
    """Stack the exception frame and enter the handler."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "EXTI0_IRQHandler()"


@dataclass(frozen=True)
class YieldFromIsr:
    """Finish the handler and request a reschedule."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "portYIELD_FROM_ISR()"


# -- Task instructions --------------------------------------------------------


@dataclass(frozen=True)
class Execute:
    """Do one unit of ordinary work."""

    label: str

    def __str__(self) -> str:
        """Return the mnemonic."""
        return self.label


@dataclass(frozen=True)
class EnterCritical:
    """Mask interrupts (``taskENTER_CRITICAL``)."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "taskENTER_CRITICAL()"


@dataclass(frozen=True)
class ExitCritical:
    """Unmask interrupts one level (``taskEXIT_CRITICAL``)."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "taskEXIT_CRITICAL()"


@dataclass(frozen=True)
class Print:
    """Write a line to the UART; ``{tick}`` is replaced by the tick count."""

    template: str

    def render(self, tick: int) -> str:
        """Return the line printed at *tick*."""
        return self.template.format(tick=tick)

    def __str__(self) -> str:
        """Return the mnemonic."""
        return f'printf("{self.template}")'


@dataclass(frozen=True)
class Delay:
    """Block the calling task for *ticks* ticks (``vTaskDelay``)."""

    ticks: int

    def __str__(self) -> str:
        """Return the mnemonic."""
        return f"vTaskDelay({self.ticks})"


@dataclass(frozen=True)
class Acquire:
    """Take the scenario's mutex, blocking if it is held."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "xSemaphoreTake(xMutex, portMAX_DELAY)"


@dataclass(frozen=True)
class Release:
    """Give the scenario's mutex back."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "xSemaphoreGive(xMutex)"


@dataclass(frozen=True)
class Yield:
    """Give up the CPU to an equal-priority peer (``taskYIELD``)."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "taskYIELD()"


@dataclass(frozen=True)
class WaitForInterrupt:
    """Sleep until the next interrupt (``__WFI``); the idle task's body."""

    def __str__(self) -> str:
        """Return the mnemonic."""
        return "__WFI()"


@dataclass(frozen=True)
class Jump:
    """Continue at *target* (the ``for (;;)`` back-edge)."""

    target: int

    def __str__(self) -> str:
        """Return the mnemonic."""
        return f"goto {self.target}"


Instruction = (
    IncrementTick
    | UnblockDue
    | ServicePending
    | SelectTask
    | Branch
    | SwitchContext
    | Return
    | IsrEntry
    | YieldFromIsr
    | Execute
    | EnterCritical
    | ExitCritical
    | Print
    | Delay
    | Acquire
    | Release
    | Yield
    | WaitForInterrupt
    | Jump
)


@dataclass(frozen=True)
class Program:
    """A named, fixed instruction table.

    Raises:
        ValueError: If the program is empty or a jump or branch target
            lies outside it.

    """

    name: str
    instructions: tuple[Instruction, ...]

    def __post_init__(self) -> None:
        """Validate that every control transfer stays inside the program."""
        if not self.instructions:
            msg = f"Program {self.name!r} has no instructions"
            raise ValueError(msg)
        for index, instruction in enumerate(self.instructions):
            match instruction:
                case Jump(target=target) | Branch(target=target):
                    if not 0 <= target < len(self.instructions):
                        msg = (
                            f"Program {self.name!r}: instruction {index} "
                            f"targets {target}, out of range"
                        )
                        raise ValueError(msg)
                case _:
                    pass

    def __len__(self) -> int:
        """Return the number of instructions."""
        return len(self.instructions)

    def __getitem__(self, pc: int) -> Instruction:
        """Fetch the instruction at *pc*."""
        return self.instructions[pc]


KERNEL_SELECT = 3
_KERNEL_RETURN = 6

KERNEL_TICK_PROGRAM = Program(
    "SysTick_Handler",
    (
        IncrementTick(),
        UnblockDue(),
        ServicePending(),
        SelectTask(),
        Branch(BranchCondition.NO_SWITCH, _KERNEL_RETURN),
        SwitchContext(),
        Return(),
    ),
)
"""The tick handler.  Entering at ``KERNEL_SELECT`` is a bare reschedule."""

EXTI_ISR_PROGRAM = Program(
    "EXTI0_IRQHandler",
    (
        IsrEntry(),
        Execute("EXTI_ClearFlag(EXTI_Line0)"),
        YieldFromIsr(),
    ),
)
