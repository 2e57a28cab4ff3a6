"""Error kinds raised by the order engine."""

from __future__ import annotations


class OrderEngineError(Exception):
    """Base class for every error the engine raises on purpose."""


class ValidationError(OrderEngineError):
    """Malformed order request. Carries every violation, not just the first."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__("; ".join(self.violations) or "invalid order request")


class RiskConstraintViolation(OrderEngineError):
    """Order breaks a portfolio risk rule."""

    check = "risk"

    def __init__(self, message: str, *, check: str | None = None) -> None:
        super().__init__(message)
        if check is not None:
            self.check = check


class InsufficientFundsError(RiskConstraintViolation):
    check = "funds"


class InsufficientSharesError(RiskConstraintViolation):
    check = "shares"


class MarketClosedError(OrderEngineError):
    """Trading attempted outside permitted hours."""


class OrderNotFoundError(OrderEngineError):
    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class ConcurrentModificationError(OrderEngineError):
    """Compare-and-set refused: the stored status moved under us."""

    def __init__(self, order_id: str, expected: str, actual: str | None = None) -> None:
        self.order_id = order_id
        self.expected = expected
        self.actual = actual
        detail = f" (found {actual})" if actual else ""
        super().__init__(f"Order {order_id} is no longer {expected}{detail}")


class ExecutionError(OrderEngineError):
    """Failure while executing an order against external collaborators."""


class PriceUnavailableError(ExecutionError):
    pass


class LedgerError(ExecutionError):
    pass


class BacktestExecutionError(OrderEngineError):
    pass


class BacktestNotFoundError(OrderEngineError):
    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Backtest not found: {run_id}")
