"""
Closed-loop height targeting.

The desk firmware has no "go to height" command, so the controller measures
the height, pushes the motor toward the target with a short pulse, and
repeats until the height is inside the tolerance band or the iteration and
time budgets run out. Pulses shrink as the desk closes in, and shrink further
after every overshoot.
"""

import asyncio
import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from uplift.codec import Height, HeightCodec
from uplift.errors import DeskCancelledError, DeskError
from uplift.protocol import DeskProtocol, MotorPulse

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_IN = 0.25
DEFAULT_MAX_ITERATIONS = 40
DEFAULT_TIMEOUT = 60.0
# Conservative estimate of desk travel speed, used to size pulses
DESK_SPEED_IN_PER_S = 1.0
MIN_PULSE_S = 0.1
MAX_PULSE_S = 2.0


class ControlState(enum.Enum):
    IDLE = "idle"
    MEASURING = "measuring"
    CORRECTING = "correcting"
    REACHED = "reached"
    TIMED_OUT = "timed_out"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ControlState.REACHED, ControlState.TIMED_OUT, ControlState.ERROR)


@dataclass
class ControlSession:
    """State of one set-height run."""

    target: Height
    tolerance: float
    deadline: float
    state: ControlState = ControlState.IDLE
    last_height: Height | None = None
    iterations: int = 0
    pulses: list[MotorPulse] = field(default_factory=list)
    gain: float = 1.0
    error: DeskError | None = None

    def error_to_target(self) -> float:
        return self.target.inches - self.last_height.inches


@dataclass(frozen=True)
class ControlResult:
    state: ControlState
    target: Height
    final_height: Height | None
    iterations: int
    pulses: int

    @property
    def reached(self) -> bool:
        return self.state is ControlState.REACHED


class HeightController:
    """Drives the desk to an arbitrary height with repeated motor pulses."""

    def __init__(
        self,
        protocol: DeskProtocol,
        tolerance: float = DEFAULT_TOLERANCE_IN,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        timeout: float = DEFAULT_TIMEOUT,
        speed: float = DESK_SPEED_IN_PER_S,
        min_pulse: float = MIN_PULSE_S,
        max_pulse: float = MAX_PULSE_S,
        codec: HeightCodec | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.protocol = protocol
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.timeout = timeout
        self.speed = speed
        self.min_pulse = min_pulse
        self.max_pulse = max_pulse
        self.codec = codec or HeightCodec()
        self.clock = clock
        self.session: ControlSession | None = None

    def pulse_duration(self, session: ControlSession) -> float:
        """Pulse length for the remaining distance, clamped to the pulse bounds and deadline."""
        distance = abs(session.error_to_target())
        duration = distance / self.speed * session.gain
        duration = max(self.min_pulse, min(self.max_pulse, duration))
        return min(duration, max(0.0, session.deadline - self.clock()))

    async def run(self, target: Height) -> ControlResult:
        """
        Move the desk to `target`.

        Returns:
            ControlResult in state REACHED or TIMED_OUT

        Raises:
            HeightOutOfRangeError: If the target is outside the travel envelope
            DeskError: If communication fails during a cycle (session state ERROR)
        """
        self.codec.validate(target)
        session = ControlSession(
            target=target,
            tolerance=self.tolerance,
            deadline=self.clock() + self.timeout,
        )
        self.session = session

        try:
            await self._converge(session)
        except DeskError as e:
            session.state = ControlState.ERROR
            session.error = e
            raise
        except asyncio.CancelledError:
            session.state = ControlState.ERROR
            session.error = DeskCancelledError("Set height interrupted")
            raise
        finally:
            await self._halt(session)

        result = ControlResult(
            state=session.state,
            target=target,
            final_height=session.last_height,
            iterations=session.iterations,
            pulses=len(session.pulses),
        )
        logger.info(
            "Set %s finished %s at %s after %d correction(s)",
            target,
            session.state.name,
            session.last_height,
            session.iterations,
        )
        return result

    async def _converge(self, session: ControlSession):
        last_direction: MotorPulse | None = None

        while True:
            session.state = ControlState.MEASURING
            session.last_height = await self.protocol.query_height()

            session.state = ControlState.CORRECTING
            error = session.error_to_target()
            if abs(error) <= session.tolerance:
                session.state = ControlState.REACHED
                return

            if session.iterations >= self.max_iterations or self.clock() >= session.deadline:
                logger.warning(
                    "Could not reach %s: stopped at %s (%d corrections)",
                    session.target,
                    session.last_height,
                    session.iterations,
                )
                session.state = ControlState.TIMED_OUT
                return

            direction = MotorPulse.UP if error > 0 else MotorPulse.DOWN
            if last_direction is not None and direction is not last_direction:
                session.gain /= 2
            last_direction = direction

            duration = self.pulse_duration(session)
            logger.debug(
                "%s -> %s: %s for %.2fs", session.last_height, session.target, direction.name, duration
            )
            await self.protocol.pulse(direction, duration)
            session.pulses.append(direction)
            session.iterations += 1

    async def _halt(self, session: ControlSession):
        try:
            await self.protocol.stop()
        except DeskError as e:
            logger.error("Failed to stop desk: %s", e)
            if session.state is not ControlState.ERROR:
                session.state = ControlState.ERROR
                session.error = e
                raise
