from .search import Search
from .analysis_report import AnalysisReport
