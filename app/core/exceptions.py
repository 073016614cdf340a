"""Error taxonomy shared by services, the AI pipeline and the HTTP layer."""


class GranaError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationError(GranaError):
    status_code = 401

    def __init__(self, message: str = "Usuário não autenticado"):
        super().__init__(message)


class NotFoundError(GranaError):
    status_code = 404


class ExternalServiceError(GranaError):
    """A data store, gateway or classifier call failed; wraps the provider's error text."""
    status_code = 502


class ExtractionError(GranaError):
    status_code = 422

    def __init__(self, message: str = "Não foi possível extrair a transação da mensagem"):
        super().__init__(message)


class ConfigurationError(GranaError):
    status_code = 409


class ConcurrencyError(GranaError):
    status_code = 409
