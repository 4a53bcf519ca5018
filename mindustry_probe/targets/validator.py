"""Target list validator.

Checks parsed targets before they are probed.
"""

from .schema import Target, ValidationError, ValidationResult


def validate_targets(targets: list[Target]) -> ValidationResult:
    """Validate a list of targets.

    Checks:
    - Host is not empty
    - Port is within 1-65535

    Args:
        targets: Parsed targets.

    Returns:
        ValidationResult with errors and warnings.
    """
    errors: list[ValidationError] = []
    warnings: list[ValidationError] = []

    for i, target in enumerate(targets):
        path = f"targets[{i}]"

        if not target.host:
            errors.append(ValidationError(
                path=f"{path}.host",
                message="'host' is required and must not be empty.",
            ))

        if not isinstance(target.port, int) or not 1 <= target.port <= 65535:
            errors.append(ValidationError(
                path=f"{path}.port",
                message=f"Invalid port '{target.port}'. Must be 1-65535.",
            ))

    if not targets:
        warnings.append(ValidationError(
            path="targets",
            message="No targets defined. The round will return an empty report.",
            severity="warning",
        ))

    return ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
    )
