from .config import PredefinedPolicy, RuntimeConfig
from .environment import InMemoryBackend, PersistentStore, StorageBackend
from .errors import (
    ArithmeticEvaluationError,
    ContextValidationError,
    ConversionError,
    EmptyCollectionError,
    EvaluationError,
    ParseError,
    PredefinedLoadError,
    RuleFileError,
    RuntimeStateError,
    TalonError,
    TalonIndexError,
    TalonKeyError,
    TalonTypeError,
    UndefinedVariableError,
)
from .parser import parse
from .persistence import PersistenceManager, PersistentState
from .predefined import PredefinedLoader, load_predefined_file
from .rules import TalonFile, load_rule_files
from .runtime import Runtime
from .schemas import ErrorInfo, EvaluationResult, EventContext, EventVerdict
from .types import ConversionTarget, TypedValue, ValueTag

__version__ = "0.1.0"
