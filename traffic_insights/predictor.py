"""
Signal timing predictors for the Traffic Insights service
Map a vehicle count to a green-time recommendation

Two interchangeable implementations:
- LocalPredictor: in-process model, no I/O
- SubprocessPredictor: external model process, one short-lived child per call
"""
import asyncio
import json
import logging
from typing import List, Protocol, runtime_checkable

import numpy as np
from pydantic import ValidationError

from .config import Settings
from .exceptions import PredictorError, PredictorTimeoutError
from .models import SignalPlan, SignalTimingResult

logger = logging.getLogger(__name__)


# Green time bounds (seconds)
MIN_GREEN = 5.0
MAX_GREEN = 60.0

# Vehicle count at which green time saturates at MAX_GREEN
SATURATION_COUNT = 50

# Fixed phases of the signal cycle (seconds)
YELLOW_TIME = 4.0
CYCLE_LENGTH = 90.0


def recommend_plan(vehicle_count: int) -> SignalTimingResult:
    """
    Reference timing model

    Green time grows linearly with the vehicle count between MIN_GREEN
    (empty road) and MAX_GREEN (SATURATION_COUNT vehicles or more).
    Red fills whatever is left of the cycle.
    """
    if vehicle_count < 0:
        raise ValueError(f"vehicle_count must be non-negative, got {vehicle_count}")

    green = float(np.interp(vehicle_count, [0, SATURATION_COUNT], [MIN_GREEN, MAX_GREEN]))
    green = round(green, 1)
    red = round(max(0.0, CYCLE_LENGTH - green - YELLOW_TIME), 1)

    return SignalTimingResult(
        seconds=green,
        plan=SignalPlan(green=green, yellow=YELLOW_TIME, red=red)
    )


def parse_predictor_output(output: str, output_format: str = "number") -> SignalTimingResult:
    """
    Parse what an external predictor wrote to standard output

    Args:
        output: Raw stdout text
        output_format: "number" (plain seconds) or "json" (a number, or an
            object with green/yellow/red, or an object with signalTiming)

    Raises:
        PredictorError: output is empty or does not match the format
    """
    text = output.strip()
    if not text:
        raise PredictorError("Predictor produced no output")

    try:
        if output_format == "number":
            return SignalTimingResult(seconds=float(text))

        payload = json.loads(text)

        # bool is an int subclass, reject it explicitly
        if isinstance(payload, (int, float)) and not isinstance(payload, bool):
            return SignalTimingResult(seconds=float(payload))

        if isinstance(payload, dict):
            if "green" in payload:
                plan = SignalPlan.model_validate(payload)
                return SignalTimingResult(seconds=plan.green, plan=plan)
            if "signalTiming" in payload:
                return SignalTimingResult(seconds=float(payload["signalTiming"]))

    except (ValueError, TypeError, ValidationError) as e:
        # json.JSONDecodeError is a ValueError
        raise PredictorError(f"Unparsable predictor output: {text!r}") from e

    raise PredictorError(f"Unexpected predictor payload: {text!r}")


@runtime_checkable
class SignalTimingPredictor(Protocol):
    """Anything that maps a vehicle count to a signal timing"""

    async def predict(self, vehicle_count: int) -> SignalTimingResult:
        ...


class LocalPredictor:
    """
    In-process predictor

    Runs the reference timing model directly, no child process.
    """

    async def predict(self, vehicle_count: int) -> SignalTimingResult:
        try:
            return recommend_plan(vehicle_count)
        except ValueError as e:
            raise PredictorError(str(e)) from e


class SubprocessPredictor:
    """
    Out-of-process predictor

    Launches `command + [vehicle_count]` and reads the result from stdout.
    Any stderr output or non-zero exit status is a failure. A call that
    exceeds `timeout` seconds, or whose request is cancelled, kills the child.
    """

    def __init__(
        self,
        command: List[str],
        output_format: str = "number",
        timeout: float = 5.0,
        max_concurrency: int = 8
    ):
        if not command:
            raise ValueError("Predictor command must not be empty")

        self.command = list(command)
        self.output_format = output_format
        self.timeout = timeout

        # Bounds child-process fan-out under load
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def predict(self, vehicle_count: int) -> SignalTimingResult:
        async with self._semaphore:
            return await self._run(vehicle_count)

    async def _run(self, vehicle_count: int) -> SignalTimingResult:
        args = self.command + [str(vehicle_count)]
        logger.debug(f"Launching predictor: {args}")

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise PredictorError(f"Could not start predictor: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            await self._kill(process)
            raise PredictorTimeoutError(
                f"Predictor did not answer within {self.timeout:.1f}s"
            )
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        error_text = stderr.decode(errors="replace").strip()
        if error_text or process.returncode != 0:
            raise PredictorError(
                f"Predictor failed with exit status {process.returncode}",
                stderr=error_text
            )

        return parse_predictor_output(stdout.decode(errors="replace"), self.output_format)

    async def _kill(self, process: asyncio.subprocess.Process):
        """Kill and reap a child that is still running"""
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        logger.warning(f"Predictor process {process.pid} killed")


def build_predictor(settings: Settings) -> SignalTimingPredictor:
    """Create the predictor selected by PREDICTOR_MODE"""
    if settings.PREDICTOR_MODE == "subprocess":
        return SubprocessPredictor(
            command=settings.PREDICTOR_COMMAND,
            output_format=settings.PREDICTOR_OUTPUT,
            timeout=settings.PREDICTOR_TIMEOUT_SECONDS,
            max_concurrency=settings.PREDICTOR_MAX_CONCURRENCY
        )
    return LocalPredictor()
