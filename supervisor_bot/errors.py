class SupervisorError(Exception):
    """Base class for errors raised by the bot core."""


class ValidationError(SupervisorError):
    pass


class GroupNotFound(SupervisorError):
    def __init__(self, group_id: str):
        super().__init__(f"Group not found: {group_id}")
        self.group_id = group_id


class GroupAlreadyExists(ValidationError):
    def __init__(self, group_id: str):
        super().__init__(f"Group already exists: {group_id}")
        self.group_id = group_id


class StoreUnavailable(SupervisorError):
    """The key-value backend could not be reached or failed mid-operation."""


class ProviderError(SupervisorError):
    def __init__(self, message: str, timeout: bool = False):
        super().__init__(message)
        self.timeout = timeout


class UnsupportedModel(SupervisorError, ValueError):
    def __init__(self, model: str):
        super().__init__(f"Unsupported model: {model}")
        self.model = model
