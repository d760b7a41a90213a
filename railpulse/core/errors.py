from typing import List, Optional


class LoadValidationError(ValueError):
    """Station/section/train data is malformed or inconsistent; the load is aborted."""

    def __init__(self, message: str, problems: Optional[List[str]] = None) -> None:
        self.problems = list(problems or [])
        if self.problems:
            message = f"{message}: " + "; ".join(self.problems)
        super().__init__(message)


class DepartureEditRejected(ValueError):
    """A departure-time edit arrived after the train's Depart event could be moved."""
