"""Errors shared by every simulator subsystem.

The simulator separates three kinds of trouble:

- **Contract violations** — the driver asked for something the kernel
  would never allow (releasing a mutex you do not hold, delaying for
  zero ticks, dispatching a task that is not READY).  These raise
  ``ContractViolationError`` so the bug surfaces immediately.
- **Benign saturations** — leaving a critical section that was never
  entered, or finding nothing to run.  These clamp or fall back to the
  idle task; no exception.
- **Capacity outcomes** — a full or empty queue.  These are normal
  protocol results reported as status values.
"""


class ContractViolationError(RuntimeError):
    """Raise when a caller breaks an engine's usage contract.

    A learner driving the simulation through the UI should never be able
    to trigger this; it signals a bug in the driver or in a test.
    """
