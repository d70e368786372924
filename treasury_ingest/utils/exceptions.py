"""Exception hierarchy for the ingestion pipeline."""


class IngestError(Exception):
    """Base exception for ingestion errors."""


class StatementParseError(IngestError):
    """The statement file could not be parsed."""


class AccountNotFoundError(IngestError):
    """An explicitly requested account does not exist or is inactive."""


class PersistenceError(IngestError):
    """A store write failed."""


class StoreReadError(IngestError):
    """A store read failed."""


class ConfigurationError(IngestError):
    """Matching configuration is invalid."""
