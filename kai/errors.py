"""Error types shared across kAI components."""


class EmptyInputError(ValueError):
    """Raised when an uploaded table has no header or no data rows."""


class ExecutionError(RuntimeError):
    """A confirmed action could not be carried out.

    The message is user-facing: the executor reports it verbatim.
    """
