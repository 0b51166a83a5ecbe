from __future__ import annotations

import re

from botocore.exceptions import ClientError

from .errors import (
    ConditionFailedError,
    DynamoDBError,
    NonExistentIndexError,
    NonExistentTableError,
    TableExistsError,
    ThroughputExceededError,
    ValidationError,
)

_THROTTLE_CODES = frozenset(
    {"ProvisionedThroughputExceededException", "ThrottlingException", "RequestLimitExceeded"}
)
_MISSING_INDEX = re.compile(r"does not have the specified index")
_ALREADY_EXISTS = re.compile(r"already\s+exists", re.IGNORECASE)


def error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def error_message(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Message", ""))


def is_resource_not_found(err: ClientError) -> bool:
    return error_code(err) == "ResourceNotFoundException"


def is_table_exists(err: ClientError) -> bool:
    return error_code(err) == "ResourceInUseException" and bool(_ALREADY_EXISTS.search(error_message(err)))


def is_nonexistent_index(err: ClientError) -> bool:
    return error_code(err) == "ValidationException" and bool(_MISSING_INDEX.search(error_message(err)))


def map_client_error(err: ClientError) -> Exception:
    code = error_code(err)
    message = error_message(err)

    if code == "ConditionalCheckFailedException":
        return ConditionFailedError(message or "conditional check failed")
    if code in _THROTTLE_CODES:
        return ThroughputExceededError(message or "provisioned throughput exceeded")
    if code == "ResourceNotFoundException":
        return NonExistentTableError(message or "requested resource not found")
    if is_nonexistent_index(err):
        return NonExistentIndexError(message)
    if code == "ValidationException":
        return ValidationError(message or "validation failed")
    if is_table_exists(err):
        return TableExistsError(message)

    return DynamoDBError(aws_code=code or "UnknownError", message=message or str(err))
