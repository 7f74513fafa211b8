"""Domain errors raised by the standings/promotion services."""


class PromotionError(Exception):
    """Base class for standings/promotion failures."""


class TemplatesNotFoundError(PromotionError):
    """The tournament's format has no bracket-phase templates."""


class ManualRankingError(PromotionError):
    """A submitted manual ranking does not describe the block."""


class InvalidResultError(PromotionError):
    """A submitted match result is inconsistent (unknown winner, bad status...)."""


class NotFoundError(PromotionError):
    """A referenced tournament, block or match does not exist."""
