from typing import Optional

NESTED_TOO_DEEPLY = "rule nested too deeply"


class TalonError(Exception):
    """Base class for every error raised by the TALON runtime."""
    kind = "TalonError"


class ParseError(TalonError):
    kind = "ParseError"

    def __init__(self, reason: str, line: Optional[int] = None, column: Optional[int] = None,
                 offset: Optional[int] = None):
        self.reason = reason
        self.line = line
        self.column = column
        self.offset = offset
        where = f" at line {line}, column {column}" if line is not None else ""
        super().__init__(f"{reason}{where}")


class EvaluationError(TalonError):
    """Raised while walking an expression tree. Aborts the rest of the rule."""
    kind = "EvaluationError"

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.message = message
        self.line = line
        self.column = column
        super().__init__(message)

    def __str__(self) -> str:
        return self.message

    def at(self, line: Optional[int], column: Optional[int]) -> "EvaluationError":
        """Attach a source position unless one is already known."""
        if self.line is None:
            self.line = line
            self.column = column
        return self


class TalonTypeError(EvaluationError, TypeError):
    """Method or operator not supported on the receiver kind."""
    kind = "TypeError"


class TalonIndexError(EvaluationError, IndexError):
    kind = "IndexError"


class ConversionError(EvaluationError, ValueError):
    """as() target incompatible with the source or value out of range."""
    kind = "ConversionError"


class TalonKeyError(EvaluationError, KeyError):
    kind = "KeyError"


class EmptyCollectionError(EvaluationError):
    kind = "EmptyCollectionError"


class UndefinedVariableError(EvaluationError):
    kind = "UndefinedVariableError"


class ArithmeticEvaluationError(EvaluationError, ArithmeticError):
    """Overflow, underflow or division by zero in integer arithmetic."""
    kind = "ArithmeticError"


class ContextValidationError(TalonError):
    """Event context carries a key that is not a valid local variable name."""
    kind = "ContextValidationError"


class PredefinedLoadError(TalonError):
    kind = "PredefinedLoadError"

    def __init__(self, index: int, statement: str, cause: TalonError):
        self.index = index
        self.statement = statement
        self.cause = cause
        super().__init__(f"predefined statement #{index} {statement!r} failed: {cause}")


class RuleFileError(TalonError):
    kind = "RuleFileError"


class RuntimeStateError(TalonError):
    kind = "RuntimeStateError"
