"""
Ledger errors.

Expected failures (bad amount, over-allocation, wrong target) are not
exceptions: the engine returns CommandResult.fail(..., code="validation").
"""


class ConsistencyViolation(Exception):
    """
    A recomputed aggregate came out negative or non-finite, or does not fit
    its money column.

    Raised inside the recompute transaction so nothing is written.
    """

    def __init__(self, target: str, value):
        self.target = target
        self.value = value
        super().__init__(f"Inconsistent aggregate for {target}: {value}")
