"""Detection contracts — data structures shared by all modules."""

from src.contracts.alert import AttackAlert
from src.contracts.attempt import ConnectionAttempt
from src.contracts.enums import AlertType, CountryTag, Severity

__all__ = ["AlertType", "AttackAlert", "ConnectionAttempt", "CountryTag", "Severity"]
