from typing import Optional, Sequence


class RunCIError(Exception):
    pass


class ConfigError(RunCIError):
    pass


class CompileError(ConfigError):
    source: str

    def __init__(self, *args, **kwargs):
        self.source = kwargs.pop("source")
        super().__init__(*args, **kwargs)


class EvalError(RunCIError):
    pass


class ListingError(RunCIError):
    pass


class StalenessError(RunCIError):
    pass


class AuthError(RunCIError):
    status_code: int

    def __init__(self, *args, **kwargs):
        self.status_code = kwargs.pop("status_code")
        super().__init__(*args, **kwargs)


class ProcessError(RunCIError):
    argv: Sequence[str]

    def __init__(self, *args, **kwargs):
        self.argv = tuple(kwargs.pop("argv"))
        super().__init__(*args, **kwargs)


class ExecutionError(RunCIError):
    step: str
    argv: Sequence[str]
    returncode: Optional[int]
    output: str

    def __init__(self, *args, **kwargs):
        self.step = kwargs.pop("step")
        self.argv = tuple(kwargs.pop("argv", ()))
        self.returncode = kwargs.pop("returncode", None)
        self.output = kwargs.pop("output", "")
        super().__init__(*args, **kwargs)

    def __str__(self) -> str:
        message = super().__str__()
        if self.output:
            return f"{message}: {self.output.strip()}"
        return message
