"""Dev Maestro - plan-file task tracking package."""

# No imports at package level to avoid circular import issues
# Import modules directly where needed

__version__ = "1.0.0"

__all__ = [
    "board",
    "config",
    "errors",
    "models",
    "plan",
    "store",
]
