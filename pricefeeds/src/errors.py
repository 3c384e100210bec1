"""Exceptions raised by price feeds.

Routine upstream unavailability (a failed read, a zero balance) is never an
exception: it travels through the arithmetic as ``None``. The classes below
are reserved for out-of-contract requests and configuration faults.
"""


class PriceFeedError(Exception):
    """Base exception for price feed errors."""

    pass


class OutOfLookbackError(PriceFeedError):
    """Raised when a historical time precedes the feed's retained window.

    :ivar time: Requested timestamp.
    :ivar earliest: Earliest timestamp the feed can answer for.
    """

    def __init__(self, uuid: str, time: int, earliest: float):
        """Initialize the error.

        :param uuid: Identifier of the feed that rejected the request.
        :param time: Requested timestamp.
        :param earliest: Earliest supported timestamp.
        """
        self.time = time
        self.earliest = earliest
        super().__init__(
            f"{uuid}: time {time} is earlier than the lookback window (earliest {earliest})"
        )


class NoDataError(PriceFeedError):
    """Raised when no valid price can be produced for an in-window request."""

    pass


class BlockNotFoundError(NoDataError):
    """Raised when no block exists at or before a requested timestamp."""

    pass


class FeedConfigError(PriceFeedError):
    """Raised when a feed configuration is invalid (fails at construction)."""

    pass


class ExpressionError(PriceFeedError):
    """Base exception for expression feed faults."""

    pass


class ExpressionSyntaxError(ExpressionError):
    """Raised when an expression cannot be parsed.

    :ivar position: Character offset of the offending token.
    """

    def __init__(self, message: str, position: int):
        """Initialize the syntax error.

        :param message: Description of the problem.
        :param position: Character offset in the expression text.
        """
        self.position = position
        super().__init__(f"{message} at position {position}")


class UnresolvedSymbolError(ExpressionError):
    """Raised when an expression references a name nothing defines.

    :ivar symbol: The unresolved name.
    """

    def __init__(self, symbol: str):
        """Initialize the error.

        :param symbol: The unresolved name.
        """
        self.symbol = symbol
        super().__init__(f"Unresolved symbol '{symbol}'")


class EvaluationError(ExpressionError):
    """Raised on arithmetic faults while evaluating an expression."""

    pass
