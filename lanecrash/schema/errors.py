class ValidationError(ValueError): ...


class InsufficientFunds(ValueError): ...


class SessionNotFound(LookupError): ...


class AlreadyResolved(SessionNotFound): ...


class AlreadyActive(ValueError): ...


class InvariantViolation(RuntimeError):
    """The engine reached a state it must refuse to serve a round from."""
