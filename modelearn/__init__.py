# Mode learner package
from .errors import InspectError, InvariantViolation, LoadError, ModelearnError
from .relation import Relation, RelationTable
from .models import Classifier, Prediction, SceneSig, SigEntry, SigInfo, TrainData, VoteDecision
from .combinations import CombinationGenerator
from .mode import ModeInfo
from .em import EM
from .persistence import dumps_em, load_em, loads_em, save_em
from .inspect import inspect_em
from .timers import TimerSet

__all__ = [
    "ModelearnError",
    "InvariantViolation",
    "LoadError",
    "InspectError",
    "Relation",
    "RelationTable",
    "Classifier",
    "Prediction",
    "SceneSig",
    "SigEntry",
    "SigInfo",
    "TrainData",
    "VoteDecision",
    "CombinationGenerator",
    "ModeInfo",
    "EM",
    "save_em",
    "load_em",
    "dumps_em",
    "loads_em",
    "inspect_em",
    "TimerSet",
]
