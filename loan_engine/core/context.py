import contextvars

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")
_loan_id: contextvars.ContextVar[str] = contextvars.ContextVar("loan_id", default="-")


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> str:
    return _request_id.get()


def set_loan_id(loan_id: str) -> None:
    _loan_id.set(loan_id)


def get_loan_id() -> str:
    return _loan_id.get()


def clear_context() -> None:
    _request_id.set("-")
    _loan_id.set("-")
