from .fittedmodel import FittedModel, ModelFitError, ModelSpecification
from .anovacalc import FixedEffectComparison, tukeyhsd
from .regression import BetaRegression, LinearRegression
from .modelfitter import add_fixed_effect, drop_random_effect, fit
from .diagnostics import ResidualDiagnostic, raw_residuals, residuals_by_group, simulate_residuals
from .pairwise import PairwiseComparison, compact_letter_display, pairwise_comparison
from .marginal import marginal_predictions
from .grouptools import summarize_groups
from .workflow import PerchAnalysis, PerchAnalysisResults
