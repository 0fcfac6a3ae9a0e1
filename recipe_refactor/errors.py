from __future__ import annotations


class RefactorError(Exception):
    """Base error for the recipe refactoring pipeline."""


class CommandError(RefactorError):
    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        returncode: int | None = None,
        stdout: str | None = None,
        stderr: str | None = None,
    ):
        super().__init__(message)
        self.command = list(command or [])
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""

    @property
    def details(self) -> str:
        return (
            f"{self}\n"
            f"--- Stderr ---\n{self.stderr.strip() or 'No stderr output.'}\n"
            f"--- Stdout ---\n{self.stdout.strip() or 'No stdout output.'}"
        )


class CatalogError(RefactorError):
    pass


class ResolutionError(RefactorError):
    pass


class EvaluationError(RefactorError):
    pass


class PatchError(RefactorError):
    def __init__(self, message: str, *, reason: str):
        super().__init__(message)
        self.reason = reason


class VerificationError(RefactorError):
    def __init__(self, message: str, *, diff: str = ""):
        super().__init__(message)
        self.diff = diff


class RevertError(RefactorError):
    pass
