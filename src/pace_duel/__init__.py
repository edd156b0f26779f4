"""pace-duel: two-person fitness challenge engine."""

__version__ = "0.1.0"
