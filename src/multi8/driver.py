"""Runner: the independently clocked activities that drive a VM.

Two daemon threads share one VM:
    - execution: calls vm.step() at config.cpu_hz
    - timers: calls vm.tick_timers() at config.timer_hz

A presenter samples vm.framebuffer_snapshot() and writes key state from its
own loop; the VM lock keeps all three consistent. While the machine waits on
Fx0A only the execution thread blocks, and stop() cancels that wait.
"""

import logging
import threading
import time
from typing import Optional

from .errors import VMError
from .vm import VM

logger = logging.getLogger(__name__)


class Runner:
    """Drive a VM from background threads.

    Attributes:
        vm: The machine being driven
        error: The VMError that stopped execution, if any
    """

    def __init__(self, vm: VM):
        self.vm = vm
        self.error: Optional[VMError] = None
        self._stop = threading.Event()
        self._exec_thread: Optional[threading.Thread] = None
        self._timer_thread: Optional[threading.Thread] = None

    def __enter__(self) -> "Runner":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    @property
    def is_running(self) -> bool:
        return self._exec_thread is not None and self._exec_thread.is_alive()

    def start(self) -> None:
        """Start the execution and timer threads."""
        if self.is_running:
            return
        self._stop.clear()
        self.error = None

        self._exec_thread = threading.Thread(target=self._execution_loop, name="multi8-exec", daemon=True)
        self._timer_thread = threading.Thread(target=self._timer_loop, name="multi8-timers", daemon=True)
        self._exec_thread.start()
        self._timer_thread.start()
        logger.info(f"Runner started: {self.vm.config.cpu_hz:g} Hz execution, "
                    f"{self.vm.config.timer_hz:g} Hz timers")

    def stop(self, timeout: Optional[float] = 1.0) -> None:
        """Stop both threads, cancelling any pending key wait."""
        self._stop.set()
        for thread in (self._exec_thread, self._timer_thread):
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout)
        logger.info("Runner stopped")

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the execution thread to finish."""
        if self._exec_thread is not None:
            self._exec_thread.join(timeout)

    def _execution_loop(self) -> None:
        try:
            self._execute()
        finally:
            # Timers stop with execution
            self._stop.set()

    def _execute(self) -> None:
        period = 1.0 / self.vm.config.cpu_hz
        limit = self.vm.config.max_cycles
        executed = 0

        while not self._stop.is_set():
            if limit is not None and executed >= limit:
                logger.info(f"Cycle limit reached ({limit})")
                break

            if self.vm.is_waiting_for_key():
                if not self.vm.wait_for_key(cancel=self._stop):
                    break
                continue

            start = time.perf_counter()
            try:
                self.vm.step()
            except VMError as e:
                logger.error(f"Execution error: {e}")
                if self.vm.config.reset_on_error:
                    self.vm.reset(reload_program=True)
                    continue
                self.error = e
                break
            executed += 1

            sleep_time = period - (time.perf_counter() - start)
            if sleep_time > 0:
                self._stop.wait(sleep_time)

    def _timer_loop(self) -> None:
        period = 1.0 / self.vm.config.timer_hz
        while not self._stop.wait(period):
            self.vm.tick_timers()


def run_headless(vm: VM, max_cycles: Optional[int] = None) -> int:
    """Drive a VM synchronously on a simulated clock.

    Timers tick once every round(cpu_hz / timer_hz) steps, so delay loops
    finish without wall-clock sleeping. Stops after max_cycles steps or when
    the machine suspends on Fx0A, since nothing can press a key.

    Args:
        vm: The machine being driven
        max_cycles: Step limit (vm.config.max_cycles if None)

    Returns:
        Number of steps executed

    Raises:
        ValueError: If no limit is given here or in the config
    """
    config = vm.config
    limit = max_cycles if max_cycles is not None else config.max_cycles
    if limit is None:
        raise ValueError("run_headless() needs max_cycles (argument or config)")
    steps_per_tick = max(1, round(config.cpu_hz / config.timer_hz))

    executed = 0
    while executed < limit:
        vm.step()
        executed += 1
        if executed % steps_per_tick == 0:
            vm.tick_timers()
        if vm.is_waiting_for_key():
            break
    return executed
