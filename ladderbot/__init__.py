"""ladderbot: scheduled DCA ladder bot with per-level take-profit and a global trailing stop."""

__version__ = "1.0.0"
