from __future__ import annotations

NOT_FOUND = "DYNAMODB_NOT_FOUND"
THROUGHPUT_EXCEEDED = "DYNAMODB_THROUGHPUT_EXCEEDED"
NONEXISTENT_TABLE = "DYNAMODB_NONEXISTENT_TABLE"
NONEXISTENT_INDEX = "DYNAMODB_NONEXISTENT_INDEX"
TABLE_EXISTS = "DYNAMODB_TABLE_EXISTS"
TABLE_NOT_ACTIVE = "DYNAMODB_TABLE_NOT_ACTIVE"


class OperationalError(Exception):
    code = "DYNAMODB_OPERATIONAL"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(OperationalError):
    code = NOT_FOUND


class ConflictError(OperationalError):
    code = "DYNAMODB_CONFLICT"


class RecordExistsError(ConflictError):
    code = "DYNAMODB_RECORD_EXISTS"


class ConditionFailedError(ConflictError):
    code = "DYNAMODB_CONDITION_FAILED"


class ThroughputExceededError(OperationalError):
    code = THROUGHPUT_EXCEEDED


class NonExistentTableError(OperationalError):
    code = NONEXISTENT_TABLE


class NonExistentIndexError(OperationalError):
    code = NONEXISTENT_INDEX


class TableExistsError(OperationalError):
    code = TABLE_EXISTS


class TableNotActiveError(OperationalError):
    code = TABLE_NOT_ACTIVE


class SchemaError(OperationalError):
    code = "DYNAMODB_SCHEMA"


class ValidationError(OperationalError):
    code = "DYNAMODB_VALIDATION"


class BatchRetryExceededError(OperationalError):
    code = "DYNAMODB_BATCH_RETRY_EXCEEDED"

    def __init__(self, *, operation: str, unprocessed_count: int) -> None:
        super().__init__(f"{operation}: retry limit exceeded (unprocessed={unprocessed_count})")
        self.operation = operation
        self.unprocessed_count = unprocessed_count


class DynamoDBError(OperationalError):
    code = "DYNAMODB_ERROR"

    def __init__(self, *, aws_code: str, message: str) -> None:
        super().__init__(f"{aws_code}: {message}")
        self.aws_code = aws_code
        self.aws_message = message


def migration_required(err: NonExistentTableError | NonExistentIndexError) -> OperationalError:
    """Re-raise a missing table/index fault with a hint to run ``migrate_up``.

    The error class (and so its ``code``) is kept.
    """
    return type(err)(f"{err.message} (migration probably required: run migrate_up)")
