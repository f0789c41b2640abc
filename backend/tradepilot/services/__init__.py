"""Services module - Business logic and external integrations"""

from .decision_parser import DecisionParser
from .decision_service import DecisionService
from .prompt_builder import PromptBuilder
from .risk import RiskCheck, RiskValidator, RiskVerdict

__all__ = [
    "DecisionParser",
    "DecisionService",
    "PromptBuilder",
    "RiskCheck",
    "RiskValidator",
    "RiskVerdict",
]
