from .context import AnalysisContext, AnalyzerSignal, SectionAnalysis
from .density import analyze_density, classify_density
from .structural import analyze_structure, measure_completeness
from .temporal import analyze_temporal, detect_gaps

__all__ = [
    "AnalysisContext",
    "AnalyzerSignal",
    "SectionAnalysis",
    "analyze_density",
    "classify_density",
    "analyze_structure",
    "measure_completeness",
    "analyze_temporal",
    "detect_gaps",
]
