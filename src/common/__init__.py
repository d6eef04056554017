# ABOUTME: Makes the shared common package importable across the CCIS engines and CLI.
# ABOUTME: Re-exports the value objects and engine entry points for convenience.

from .ccis_calculation import calculate_ccis_level, detect_gaming_patterns, generate_intervention_recommendation
from .config import DEFAULT_CONFIG, EngineConfig, load_engine_config
from .errors import BusinessRuleError, CCISError, CCISValidationError
from .gaming_detection import analyze_session, generate_gaming_report
from .mastery_aggregation import calculate_overall_ccis_level
from .scaffolding import adjust_for_gaming, calculate_optimal_scaffolding, optimize_for_advancement
from .schemas import BehavioralSignals, CCISLevel, CompetencyType, ConfidenceScore

__all__ = [
    "BehavioralSignals",
    "BusinessRuleError",
    "CCISError",
    "CCISLevel",
    "CCISValidationError",
    "CompetencyType",
    "ConfidenceScore",
    "DEFAULT_CONFIG",
    "EngineConfig",
    "adjust_for_gaming",
    "analyze_session",
    "calculate_ccis_level",
    "calculate_optimal_scaffolding",
    "detect_gaming_patterns",
    "generate_gaming_report",
    "generate_intervention_recommendation",
    "load_engine_config",
    "optimize_for_advancement",
]
