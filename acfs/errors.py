"""Message formatting shared by the CLI and the document loaders.

Errors start with 'Error: ', warnings with 'Warning: '. Document
validation errors name the entity and the field so the operator can find
the offending entry in manifest.yaml or contracts.yaml.
"""

RESUME_HINT = "fix the problem and re-run 'acfs install' to resume"


def format_error(message: str) -> str:
    return f"Error: {message}"


def format_warning(message: str) -> str:
    return f"Warning: {message}"


def format_field_error(entity: str, field: str, issue: str) -> str:
    """Format a document validation error.

    Examples:
        >>> format_field_error("Module 'shell.omz'", "dependencies[0]", "is unknown")
        "Module 'shell.omz' field 'dependencies[0]' is unknown"
        >>> format_field_error("Contract 'phase:agents'", "[1].requires_env", "must be a non-empty string")
        "Contract 'phase:agents' field '[1].requires_env' must be a non-empty string"
    """
    return f"{entity} field '{field}' {issue}"


def format_suggestion(message: str, suggestion: str) -> str:
    """Format an error followed by what to do about it."""
    return f"{format_error(message)}. Hint: {suggestion}"


def format_phase_failure(label: str, detail: str | None) -> str:
    """Format the end-of-run report for a failed phase.

    The hint points at resume because completed phases are not repeated.

    Examples:
        >>> format_phase_failure("6/9 Coding Agents", "phase work reported failure")
        "Error: phase '6/9 Coding Agents' failed: phase work reported failure. Hint: fix the problem and re-run 'acfs install' to resume"
    """
    message = f"phase '{label}' failed"
    if detail:
        message += f": {detail}"
    return format_suggestion(message, RESUME_HINT)


def format_unpersisted(phases: list[str], path) -> str:
    """Warn that completed phases only exist in memory and may run again."""
    return format_warning(
        f"progress for {', '.join(phases)} was not saved to {path}; "
        "these phases will run again next time"
    )


__all__ = [
    "RESUME_HINT",
    "format_error",
    "format_warning",
    "format_field_error",
    "format_suggestion",
    "format_phase_failure",
    "format_unpersisted",
]
