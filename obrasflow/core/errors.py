from typing import Any, Mapping


class StoreError(Exception):
    pass


class StoreInitError(StoreError):
    """O banco local nao pode ser construido nem restaurado. Fatal."""


class StatementError(StoreError):
    def __init__(self, message: str, statement: str, params: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.statement = statement
        self.params = dict(params or {})

    def __str__(self) -> str:
        return f"{self.args[0]} (statement={self.statement!r} params={self.params!r})"


class QueryError(StatementError):
    pass


class ExecuteError(StatementError):
    pass


class RepositoryError(Exception):
    pass


class AuthenticationError(Exception):
    def __init__(self, message: str = "Credenciais invalidas") -> None:
        super().__init__(message)


class RemoteError(Exception):
    pass


class PermissionLookupError(Exception):
    pass


class SlotError(Exception):
    pass


class SlotQuotaExceeded(SlotError):
    pass
