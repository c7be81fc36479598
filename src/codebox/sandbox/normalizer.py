"""Result normalizer — maps a terminal outcome to an :class:`ExecutionResult`."""

from __future__ import annotations

from codebox.sandbox.models import ExecutionOutcome, ExecutionResult, ExecutionState

NO_OUTPUT_MESSAGE = "Program executed successfully with no output"
TIMEOUT_MESSAGE = "Code execution timed out"
CANCELLED_MESSAGE = "Code execution was cancelled"
UNKNOWN_FAILURE_MESSAGE = "Code execution failed"


def normalize(outcome: ExecutionOutcome, language: str) -> ExecutionResult:
    """Build the caller-facing result for *outcome*.

    ============  =======  ===================  ========================  =========
    state         success  output               error                     exit_code
    ============  =======  ===================  ========================  =========
    completed/0   True     stdout or sentinel   stderr or None            0
    completed/N   False    stdout or None       stderr or exit message    N
    timed_out     False    None                 timeout message           -1
    cancelled     False    None                 cancellation message      -1
    failed        False    None                 underlying error message  -1
    ============  =======  ===================  ========================  =========
    """
    common = {"execution_time_ms": outcome.elapsed_ms, "language": language}

    if outcome.state is ExecutionState.COMPLETED and outcome.exit_code is not None:
        if outcome.exit_code == 0:
            return ExecutionResult(
                success=True,
                output=outcome.stdout or NO_OUTPUT_MESSAGE,
                error=outcome.stderr or None,
                exit_code=0,
                **common,
            )
        return ExecutionResult(
            success=False,
            output=outcome.stdout or None,
            error=outcome.stderr or f"Process exited with code {outcome.exit_code}",
            exit_code=outcome.exit_code,
            **common,
        )

    if outcome.state is ExecutionState.TIMED_OUT:
        error = TIMEOUT_MESSAGE
    elif outcome.state is ExecutionState.CANCELLED:
        error = CANCELLED_MESSAGE
    else:
        error = outcome.error or UNKNOWN_FAILURE_MESSAGE
    return ExecutionResult(success=False, output=None, error=error, exit_code=-1, **common)
