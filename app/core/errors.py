class DataServiceError(Exception):
    """A call to the remote data service failed."""

    def __init__(self, operation: str, table: str, cause: Exception = None):
        self.operation = operation
        self.table = table
        self.cause = cause
        message = f"{operation} on '{table}' failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class NotFoundError(Exception):
    """A row the caller required does not exist."""

    def __init__(self, table: str, key: str):
        self.table = table
        self.key = key
        super().__init__(f"No row in '{table}' for {key}")
