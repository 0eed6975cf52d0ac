"""
	Residual diagnostics for fitted models. These only report values; deciding whether a model needs to be respecified is left to
	whoever reads them.

	Simulated residuals follow the approach of the DHARMa package: the fitted model is used to simulate many new responses for every
	observation, and the scaled residual of an observation is the fraction of its simulations that fall below the observed value.
	For a correctly specified model the scaled residuals are uniformly distributed regardless of the error family.
"""
from typing import *

import numpy
import pandas
from loguru import logger
from scipy import stats

from analysis.fittedmodel import FittedModel

STATUS_COMPUTED = 'computed'
STATUS_INCONCLUSIVE = 'inconclusive'


class ResidualDiagnostic:
	"""
		Attributes
		----------
		kind: str
			'raw', 'simulated', or 'by.{column}'
		model: str
			The formula of the diagnosed model.
		table: pandas.DataFrame
			The residual values. Indexed the same as the rows used to fit the model.
		tests: Dict[str,float]
			The test statistics. NaN when the diagnostic is inconclusive.
		status: {'computed', 'inconclusive'}
		reason: Optional[str]
			Why the diagnostic is inconclusive.
	"""

	def __init__(self, kind: str, model: str, table: pandas.DataFrame, tests: Dict[str, float] = None, status: str = STATUS_COMPUTED,
			reason: Optional[str] = None):
		self.kind = kind
		self.model = model
		self.table = table
		self.tests = tests if tests is not None else dict()
		self.status = status
		self.reason = reason

	@property
	def is_inconclusive(self) -> bool:
		return self.status == STATUS_INCONCLUSIVE

	@property
	def residual_column(self) -> str:
		return 'scaled.residual' if 'scaled.residual' in self.table.columns else 'residual'

	def summary(self) -> str:
		lines = [f"{self.kind} residuals of '{self.model}' ({self.status})"]
		if self.reason:
			lines.append(f"\t{self.reason}")
		for name, value in self.tests.items():
			lines.append(f"\t{name}: {value:.4g}")
		return "\n".join(lines)

	def to_series(self) -> pandas.Series:
		data = {'kind': self.kind, 'model': self.model, 'status': self.status, 'reason': self.reason}
		data.update(self.tests)
		return pandas.Series(data)


def raw_residuals(model: FittedModel) -> ResidualDiagnostic:
	""" The residuals (observed - fitted) of the model on the response scale."""
	fitted = model.fitted()
	table = pandas.DataFrame(
		{
			'observed': model.observed,
			'fitted':   fitted,
			'residual': model.observed - fitted
		}
	)
	return ResidualDiagnostic('raw', model.formula, table)


def scaled_residuals(observed: numpy.ndarray, simulations: numpy.ndarray, random_state: numpy.random.Generator) -> numpy.ndarray:
	"""
		Calculates the quantile of each observation within its simulated values. Ties are broken randomly so that the residuals stay
		uniform for discrete responses.
	Parameters
	----------
	observed: numpy.ndarray
		The observed responses, shape (observations,)
	simulations: numpy.ndarray
		The simulated responses, shape (observations, simulations)
	"""
	observed = numpy.asarray(observed, dtype = float)[:, numpy.newaxis]
	number_of_simulations = simulations.shape[1]
	less = (simulations < observed).sum(axis = 1)
	equal = (simulations == observed).sum(axis = 1)
	noise = random_state.uniform(size = len(observed))
	return (less + noise * (equal + 1)) / (number_of_simulations + 1)


def _dispersion_test(observed: numpy.ndarray, simulations: numpy.ndarray) -> Tuple[float, float]:
	""" Compares the spread of the observations around the simulated mean to the spread of the simulations themselves."""
	simulated_mean = simulations.mean(axis = 1)
	observed_spread = numpy.var(observed - simulated_mean)
	simulated_spread = numpy.var(simulations - simulated_mean[:, numpy.newaxis], axis = 0)
	ratio = observed_spread / simulated_spread.mean()
	pvalue = 2 * min(numpy.mean(simulated_spread >= observed_spread), numpy.mean(simulated_spread <= observed_spread))
	return float(ratio), float(min(pvalue, 1.0))


def _outlier_test(observed: numpy.ndarray, simulations: numpy.ndarray) -> Tuple[int, float]:
	""" Counts the observations outside the range of their simulations and tests whether that is more than expected by chance."""
	is_outside = (observed < simulations.min(axis = 1)) | (observed > simulations.max(axis = 1))
	expected_probability = 2 / (simulations.shape[1] + 1)
	outliers = int(is_outside.sum())
	pvalue = stats.binomtest(outliers, len(observed), expected_probability).pvalue
	return outliers, float(pvalue)


def simulate_residuals(model: FittedModel, n_simulations: int = 250, seed: Optional[int] = None,
		minimum_observations: int = 10) -> ResidualDiagnostic:
	"""
		Calculates the simulated (scaled) residuals of a model along with tests for uniformity, dispersion, and outliers.
	Parameters
	----------
	model: FittedModel
	n_simulations: int
		The number of responses to simulate for each observation.
	seed: Optional[int]
		Makes the simulations reproducible.
	minimum_observations: int
		Models fit to fewer rows than this are reported as inconclusive. The scaled residuals are still calculated.
	"""
	random_state = numpy.random.default_rng(seed)
	observed = model.observed.values.astype(float)
	simulations = model.simulate(n_simulations, random_state)

	table = pandas.DataFrame({'observed': model.observed, 'fitted': model.fitted()})
	table['scaled.residual'] = scaled_residuals(observed, simulations, random_state)

	if len(observed) < minimum_observations:
		reason = f"Only {len(observed)} observations (need at least {minimum_observations})."
		logger.warning(f"The simulated residuals of '{model.formula}' are inconclusive: {reason}")
		tests = {name: numpy.nan for name in ['uniformity.statistic', 'uniformity.pvalue', 'dispersion.ratio', 'dispersion.pvalue',
			'outliers', 'outliers.pvalue']}
		return ResidualDiagnostic('simulated', model.formula, table, tests, STATUS_INCONCLUSIVE, reason)

	uniformity = stats.kstest(table['scaled.residual'].values, 'uniform')
	dispersion_ratio, dispersion_pvalue = _dispersion_test(observed, simulations)
	outliers, outliers_pvalue = _outlier_test(observed, simulations)

	tests = {
		'uniformity.statistic': float(uniformity.statistic),
		'uniformity.pvalue':    float(uniformity.pvalue),
		'dispersion.ratio':     dispersion_ratio,
		'dispersion.pvalue':    dispersion_pvalue,
		'outliers':             outliers,
		'outliers.pvalue':      outliers_pvalue
	}
	diagnostic = ResidualDiagnostic('simulated', model.formula, table, tests)
	logger.debug(diagnostic.summary())
	return diagnostic


def residuals_by_group(diagnostic: ResidualDiagnostic, values: pandas.Series, maximum_levels: int = 10, bins: int = 5) -> ResidualDiagnostic:
	"""
		Summarizes the residuals at each level of a covariate and tests whether their spread is the same across levels (Levene's test).
		Used to look for patterns in the residuals that suggest a covariate is missing from the model.
	Parameters
	----------
	diagnostic: ResidualDiagnostic
		The raw or simulated residuals of a model.
	values: pandas.Series
		The covariate. Should share an index with the table the model was fit to.
	maximum_levels: int
		Numeric covariates with more distinct values than this are binned into `bins` quantiles.
	"""
	name = values.name if values.name is not None else 'group'
	values = values.reindex(diagnostic.table.index)
	if pandas.api.types.is_numeric_dtype(values) and values.nunique() > maximum_levels:
		levels = pandas.qcut(values, bins, duplicates = 'drop')
	else:
		levels = values

	frame = pandas.DataFrame({'level': levels, 'residual': diagnostic.table[diagnostic.residual_column]}).dropna()
	groups = frame.groupby('level', observed = True)['residual']
	summary = groups.agg(['count', 'mean', 'median', 'std'])
	summary.index.name = name

	samples = [group.values for _, group in groups if len(group) >= 2]
	kind = f"by.{name}"
	if len(samples) < 2:
		reason = f"Need at least two levels of '{name}' with two or more residuals."
		tests = {'levene.statistic': numpy.nan, 'levene.pvalue': numpy.nan}
		return ResidualDiagnostic(kind, diagnostic.model, summary, tests, STATUS_INCONCLUSIVE, reason)

	levene = stats.levene(*samples)
	tests = {'levene.statistic': float(levene.statistic), 'levene.pvalue': float(levene.pvalue)}
	result = ResidualDiagnostic(kind, diagnostic.model, summary, tests)
	logger.debug(result.summary())
	return result
