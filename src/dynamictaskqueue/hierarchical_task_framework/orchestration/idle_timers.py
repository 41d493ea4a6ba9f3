from typing import TYPE_CHECKING, Optional

from loguru import logger

from dynamictaskqueue.hierarchical_task_framework.orchestration.timers import TimerSlot

if TYPE_CHECKING:
    from dynamictaskqueue.hierarchical_task_framework.orchestration.unit_runtime import UnitRuntime


class IdleTimers:
    """
    The two idle timers of a unit.

    ``auto_execute`` runs an AFTER-mode body once no child arrived for the
    configured time. ``auto_complete`` completes the unit once it stayed
    quiescent for the configured time. Neither is armed after shutdown began.
    """

    def __init__(self,
                 runtime: "UnitRuntime",
                 auto_execute_ms: Optional[float] = None,
                 auto_complete_ms: Optional[float] = None):
        self.runtime = runtime
        self.auto_execute_ms = auto_execute_ms
        self.auto_complete_ms = auto_complete_ms
        self._execute = TimerSlot(runtime.timers, "auto_execute")
        self._complete = TimerSlot(runtime.timers, "auto_complete")

    @property
    def execute_armed(self) -> bool:
        return self._execute.armed

    @property
    def complete_armed(self) -> bool:
        return self._complete.armed

    def on_registration(self):
        """A child was registered: restart auto-execute, drop auto-complete."""
        self._complete.cancel()
        if self.auto_execute_ms and not self.runtime.shutting_down and self.runtime.wants_auto_execute:
            self._execute.arm(self.auto_execute_ms, self.runtime.run_auto_execute)

    def arm_auto_complete(self) -> bool:
        """Arm auto-complete if the unit is quiescent. Returns True if armed."""
        if not self.auto_complete_ms or self.runtime.shutting_down:
            return False
        if not self.runtime.is_quiescent:
            return False
        self._complete.arm(self.auto_complete_ms, self._on_auto_complete)
        logger.debug(f"[{self.runtime.title}] auto-complete armed for {self.auto_complete_ms}ms")
        return True

    def _on_auto_complete(self):
        # A registration may have landed right at expiry
        if self.runtime.shutting_down or not self.runtime.is_quiescent:
            logger.debug(f"[{self.runtime.title}] auto-complete expired but the unit is busy again")
            return
        self.runtime.complete_when_idle()

    def cancel_all(self):
        self._execute.cancel()
        self._complete.cancel()
