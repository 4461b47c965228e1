"""Custom exceptions for dynamigrate.

This module provides a hierarchy of exceptions with helpful hints so an
operator can tell what went wrong and where to look next.
"""


class DynamigrateError(Exception):
    """Base exception for all dynamigrate errors.

    All dynamigrate exceptions inherit from this class, making it easy
    to catch every tool-specific failure at the pipeline boundary.
    """

    def __init__(self, message: str, hint: str | None = None):
        """Initialize the exception.

        Args:
            message: The error message
            hint: Optional hint for resolving the error
        """
        self.message = message
        self.hint = hint
        super().__init__(message)

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}\nHint: {self.hint}"
        return self.message


class ConfigurationError(DynamigrateError):
    """Raised when the migration settings are invalid."""

    def __init__(
        self,
        message: str | None = None,
        missing_fields: list[str] | None = None,
    ):
        """Initialize the configuration error.

        Args:
            message: Custom error message
            missing_fields: List of missing or invalid configuration fields
        """
        self.missing_fields = missing_fields or []

        if missing_fields:
            fields_str = ", ".join(missing_fields)
            message = f"Missing or invalid configuration: {fields_str}"
            hint = "Pass them as command line options or environment variables."
        else:
            hint = "Check your migration settings."

        super().__init__(message or "Invalid migration configuration", hint)


class PrerequisiteMissingError(DynamigrateError):
    """Raised when a required external tool or file is not available."""

    INSTALL_HINTS = {
        "sam": "Install the SAM CLI: pip install aws-sam-cli",
        "aws": "Install the AWS CLI: https://aws.amazon.com/cli/",
    }

    def __init__(self, prerequisite: str, message: str | None = None):
        """Initialize the prerequisite error.

        Args:
            prerequisite: Name of the missing tool or file
            message: Custom error message
        """
        self.prerequisite = prerequisite
        super().__init__(
            message or f"Required tool '{prerequisite}' was not found on PATH",
            self.INSTALL_HINTS.get(prerequisite),
        )


class CredentialInvalidError(DynamigrateError):
    """Raised when AWS credentials are missing, expired or rejected."""

    def __init__(
        self,
        message: str | None = None,
        original_error: Exception | None = None,
    ):
        """Initialize the credential error.

        Args:
            message: Custom error message
            original_error: The original exception that caused this error
        """
        self.original_error = original_error

        if message:
            final_message, hint = message, None
        elif original_error:
            final_message, hint = self._format_error(original_error)
        else:
            final_message = "AWS credentials are not configured"
            hint = "Configure credentials with: aws configure"

        super().__init__(final_message, hint)

    def _format_error(self, error: Exception) -> tuple[str, str | None]:
        """Pick a message and hint from the botocore error text."""
        error_str = str(error)

        if "Unable to locate credentials" in error_str:
            return (
                "AWS credentials are not configured",
                "Configure credentials with: aws configure",
            )

        if "InvalidClientTokenId" in error_str or "InvalidAccessKeyId" in error_str:
            return (
                "Invalid AWS access key ID",
                "Check your AWS_ACCESS_KEY_ID environment variable.",
            )

        if "SignatureDoesNotMatch" in error_str:
            return (
                "AWS signature mismatch",
                "Check your AWS_SECRET_ACCESS_KEY environment variable.",
            )

        if "ExpiredToken" in error_str:
            return (
                "AWS credentials have expired",
                "Refresh the session (aws sso login) or issue new access keys.",
            )

        return (f"AWS credential check failed: {error}", None)


class TableNotFoundError(DynamigrateError):
    """Raised when a table does not exist in the store.

    During backup this is recoverable: the table is skipped.
    """

    def __init__(self, table_name: str):
        """Initialize the table not found error.

        Args:
            table_name: The table that was not found
        """
        self.table_name = table_name
        super().__init__(
            f"Table '{table_name}' does not exist",
            "Check the table name and region, or ignore if this is a first-time migration.",
        )


class TableOperationError(DynamigrateError):
    """Raised when a store operation fails for a reason other than a missing table."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        table_name: str | None = None,
        original_error: Exception | None = None,
    ):
        """Initialize the operation error.

        Args:
            message: The error message
            operation: The DynamoDB operation that failed (e.g., 'scan')
            table_name: The table involved in the operation
            original_error: The original exception
        """
        self.operation = operation
        self.table_name = table_name
        self.original_error = original_error

        hint = None
        if "AccessDenied" in message:
            hint = "The caller lacks IAM permission for this DynamoDB operation."
        elif "ResourceInUse" in message:
            hint = f"Table '{table_name}' is being created or deleted; retry once it settles."

        super().__init__(message, hint)


class StackOperationError(DynamigrateError):
    """Raised when a CloudFormation call about the stack fails."""

    def __init__(
        self,
        stack_name: str,
        operation: str,
        original_error: Exception | None = None,
    ):
        self.stack_name = stack_name
        self.operation = operation
        self.original_error = original_error

        hint = None
        if "AccessDenied" in str(original_error):
            hint = "The caller lacks IAM permission for this CloudFormation operation."
        super().__init__(
            f"{operation} on stack '{stack_name}' failed: {original_error}", hint
        )


class SnapshotNotFoundError(DynamigrateError):
    """Raised when a snapshot file is missing for a table."""

    def __init__(self, table_name: str, path: str):
        """Initialize the snapshot not found error.

        Args:
            table_name: The table whose snapshot is missing
            path: The file that was expected
        """
        self.table_name = table_name
        self.path = path
        super().__init__(
            f"No snapshot for table '{table_name}' at {path}",
            "Tables that did not exist at backup time have no snapshot.",
        )


class SnapshotFormatError(DynamigrateError):
    """Raised when a snapshot file cannot be parsed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(
            f"Snapshot {path} is not a valid table dump: {reason}",
            "Snapshots are JSON objects with an 'Items' list and a 'Count'.",
        )


class ReadinessTimeoutError(DynamigrateError):
    """Raised when a resource does not become ready within the attempt budget."""

    def __init__(
        self,
        resource: str,
        attempts: int,
        last_state: str | None = None,
    ):
        """Initialize the readiness timeout.

        Args:
            resource: Description of the resource that was polled
            attempts: Number of probes performed
            last_state: The last observed state
        """
        self.resource = resource
        self.attempts = attempts
        self.last_state = last_state

        message = f"{resource} was not ready after {attempts} attempts"
        if last_state:
            message += f" (last state: {last_state})"

        super().__init__(
            message,
            "Infrastructure may be partially converged. Inspect it in the AWS "
            "console, then re-run or roll back manually.",
        )


class WaitCancelledError(ReadinessTimeoutError):
    """Raised when a readiness wait is interrupted by its cancellation token."""

    def __init__(self, resource: str, attempts: int, last_state: str | None = None):
        super().__init__(resource, attempts, last_state)
        self.message = f"Waiting for {resource} was cancelled after {attempts} attempts"


class ConfirmationDeclinedError(DynamigrateError):
    """Raised when the operator declines a confirmation gate."""

    def __init__(self, step: str):
        self.step = step
        super().__init__(
            f"Confirmation declined before '{step}'; nothing was changed",
            "Re-run with --yes for unattended operation.",
        )


class InfrastructureApplyError(DynamigrateError):
    """Raised when the infrastructure tool fails to apply a template."""

    def __init__(
        self,
        template: str,
        stack_name: str,
        detail: str | None = None,
        returncode: int | None = None,
    ):
        """Initialize the apply error.

        Args:
            template: The template that was being applied
            stack_name: The stack the template was applied to
            detail: Tail of the tool output, if any
            returncode: Exit status of the tool, if it ran
        """
        self.template = template
        self.stack_name = stack_name
        self.detail = detail
        self.returncode = returncode

        message = f"Applying {template} to stack '{stack_name}' failed"
        if returncode is not None:
            message += f" (exit status {returncode})"
        if detail:
            message += f":\n{detail}"

        super().__init__(
            message,
            "Check the CloudFormation events for the stack in the AWS console.",
        )
