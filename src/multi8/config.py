"""VMConfig: runtime options for the MULTI-8 machine and its driver."""

import logging
from dataclasses import dataclass, fields, asdict
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


BOUNDS_POLICIES = ("raise", "wrap")
KEY_WAIT_MODES = ("suspend", "ignore")


@dataclass
class VMConfig:
    """Machine and driver configuration.

    Attributes:
        stack_size: Call stack capacity (return addresses)
        seed: Seed for the random source used by RND. None seeds from
            operating-system entropy (random.Random default), never the clock;
            pass a seed or inject an rng for reproducible runs
        bounds_policy: "raise" aborts the step with OutOfBoundsError,
            "wrap" masks the address into range and records a diagnostic
        key_wait: "suspend" makes Fx0A wait for a key press,
            "ignore" treats Fx0A as a no-op
        trace: Record an execution trace entry per step
        trace_limit: Maximum number of trace entries kept
        diagnostic_limit: Maximum number of diagnostics kept
        cpu_hz: Instruction rate used by the Runner
        timer_hz: Timer decrement rate used by the Runner
        reset_on_error: Runner resets (and reloads) the VM after a step error
        max_cycles: Default cycle limit for VM.run (None = unlimited)
    """
    stack_size: int = 30
    seed: Optional[int] = None
    bounds_policy: str = "raise"
    key_wait: str = "suspend"
    trace: bool = False
    trace_limit: int = 10000
    diagnostic_limit: int = 1000
    cpu_hz: float = 1000.0
    timer_hz: float = 60.0
    reset_on_error: bool = False
    max_cycles: Optional[int] = None

    def validate(self) -> "VMConfig":
        """Check option values.

        Returns:
            self, so calls can be chained

        Raises:
            ValueError: If any option is out of range
        """
        if self.stack_size <= 0:
            raise ValueError(f"stack_size must be positive, got {self.stack_size}")
        if self.bounds_policy not in BOUNDS_POLICIES:
            raise ValueError(f"bounds_policy must be one of {BOUNDS_POLICIES}, got {self.bounds_policy!r}")
        if self.key_wait not in KEY_WAIT_MODES:
            raise ValueError(f"key_wait must be one of {KEY_WAIT_MODES}, got {self.key_wait!r}")
        if self.trace_limit <= 0 or self.diagnostic_limit <= 0:
            raise ValueError("trace_limit and diagnostic_limit must be positive")
        if self.cpu_hz <= 0 or self.timer_hz <= 0:
            raise ValueError("cpu_hz and timer_hz must be positive")
        if self.max_cycles is not None and self.max_cycles < 0:
            raise ValueError(f"max_cycles must be non-negative, got {self.max_cycles}")
        return self

    @classmethod
    def from_dict(cls, options: Dict[str, Any]) -> "VMConfig":
        """Build a config from a plain dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        for key in options:
            if key not in known:
                logger.warning(f"Ignoring unknown config option: {key}")
        return cls(**{k: v for k, v in options.items() if k in known}).validate()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
