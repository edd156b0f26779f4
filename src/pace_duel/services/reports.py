"""Outcome counters shared by the sweeps."""

from dataclasses import dataclass


@dataclass
class SweepReport:
    """What a sweep pass did.

    ``examined`` counts the units the sweep looked at (challenges, or
    participants for sync), ``changed`` those it wrote something for.
    """

    name: str
    examined: int = 0
    changed: int = 0
    skipped: int = 0
    failed: int = 0

    def merge(self, other: "SweepReport") -> None:
        self.examined += other.examined
        self.changed += other.changed
        self.skipped += other.skipped
        self.failed += other.failed

    def summary(self) -> str:
        return (
            f"{self.name}: examined={self.examined} changed={self.changed} "
            f"skipped={self.skipped} failed={self.failed}"
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "examined": self.examined,
            "changed": self.changed,
            "skipped": self.skipped,
            "failed": self.failed,
        }
