"""Best-effort startup sequence.

Steps run one after another before the server accepts traffic.  A step
that fails or runs past its time budget is recorded as a failed outcome
and logged; it never aborts startup.  The caller gets the full outcome
list back.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from payflow.config import Settings
from payflow.exceptions import ErrorReport, StartupStepError
from payflow.services.accounts import AccountService
from payflow.services.tokens import TokenService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartupStep:
    name: str
    action: Callable[[], Awaitable[object]]


@dataclass(frozen=True)
class StepOutcome:
    name: str
    ok: bool
    duration_ms: float
    error: Optional[ErrorReport] = None

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "ok": self.ok,
            "duration_ms": round(self.duration_ms, 1),
            "error": self.error.as_dict() if self.error else None,
        }


async def run_step(step: StartupStep, timeout: Optional[float]) -> StepOutcome:
    start = time.perf_counter()
    try:
        await asyncio.wait_for(step.action(), timeout=timeout)
    except asyncio.TimeoutError as e:
        error = StartupStepError(f"{step.name} timed out after {timeout:g}s")
        error.__cause__ = e
        report = ErrorReport.from_exception(error)
    except Exception as e:
        report = ErrorReport.from_exception(e)
    else:
        return StepOutcome(step.name, True, (time.perf_counter() - start) * 1000)

    duration_ms = (time.perf_counter() - start) * 1000
    logger.warning("Startup step %s failed: %s", step.name, report)
    return StepOutcome(step.name, False, duration_ms, report)


async def run_startup(steps: Sequence[StartupStep], timeout: Optional[float] = 30.0) -> list[StepOutcome]:
    """Run ``steps`` in order and return one outcome per step."""
    outcomes = []
    for step in steps:
        outcome = await run_step(step, timeout)
        if outcome.ok:
            logger.info("Startup step %s completed in %.1fms", step.name, outcome.duration_ms)
        outcomes.append(outcome)

    failed = [o.name for o in outcomes if not o.ok]
    if failed:
        logger.warning(
            "Startup finished with %d/%d steps failed: %s", len(failed), len(outcomes), ", ".join(failed)
        )
    else:
        logger.info("Startup finished: %d steps ok", len(outcomes))
    return outcomes


def default_steps(settings: Settings, tokens: TokenService, accounts: AccountService) -> list[StartupStep]:
    """Seed mock tokens, then provision each configured custodial account."""
    symbols = settings.mock_token_symbols
    steps = [StartupStep("create_mock_tokens", lambda: tokens.create_mock_tokens(symbols))]
    for name in settings.custodial_account_names:
        steps.append(
            StartupStep(
                f"create_custodial_account:{name}",
                lambda name=name: accounts.create_custodial_account(name),
            )
        )
    return steps
