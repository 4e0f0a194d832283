"""In-process distributed tracing with sampling, live trace dumps, test helpers and a syscall table generator."""

__version__ = "0.1.0"

__all__ = [
    "annotations",
    "context",
    "event_output",
    "harness",
    "live",
    "sampling",
    "span",
    "syscall_enum",
    "testing",
    "tracing",
]