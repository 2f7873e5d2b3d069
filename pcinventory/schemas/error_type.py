from enum import Enum

class ErrorType(str, Enum):
    '''
    Structured classification of what can go wrong in an engine operation.

    INPUT_ERROR: request body malformed (missing field, wrong type).
    VALIDATION_ERROR: missing build name, no lines, quantity above availability. Nothing was written.
    NOT_FOUND: the addressed part / build does not exist in the collection.
    PERMISSION_DENIED: no identity, or identity not allowed to touch the collection.
    STORE_ERROR: network / database failure on a store call.
    TIMEOUT_ERROR: the build write did not answer in time; it may still complete later.
    PARTIAL_FAILURE: the operation finished but some part bookkeeping failed (logged, not rolled back).
    SYSTEM_ERROR: anything unclassified.
    '''
    INPUT_ERROR = "INPUT_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    STORE_ERROR = "STORE_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    SYSTEM_ERROR = "SYSTEM_ERROR"
