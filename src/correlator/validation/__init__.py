from correlator.validation.model import CounterExample, FailureMode, Validation, ValidationCase
from correlator.validation.repository import ValidationRepository

__all__ = [
    "CounterExample",
    "FailureMode",
    "Validation",
    "ValidationCase",
    "ValidationRepository",
]
