from typing import *

import numpy
import pandas
import patsy
from loguru import logger
from scipy import stats


class ModelFitError(RuntimeError):
	""" Raised when a model can't be fit. The rest of the analysis can continue, but the model has to be respecified."""


class ModelSpecification(NamedTuple):
	response: str
	fixed_effects: Tuple[str, ...] = ()
	random_effect: Optional[str] = None
	family: str = 'gaussian'
	link: str = 'identity'

	@property
	def columns(self) -> List[str]:
		columns = [self.response] + list(self.fixed_effects)
		if self.random_effect:
			columns.append(self.random_effect)
		return columns


class OverallTest(NamedTuple):
	name: str
	statistic: float
	df: Tuple[float, ...]
	pvalue: float


def quote(column: str) -> str:
	""" Wraps a column name so that patsy accepts names like `body.weight`."""
	return f'Q("{column}")'


def is_categorical(series: pandas.Series) -> bool:
	return not pandas.api.types.is_numeric_dtype(series) or isinstance(series.dtype, pandas.CategoricalDtype)


def build_formula(response: str, fixed_effects: Iterable[str], table: pandas.DataFrame) -> str:
	terms = list()
	for column in fixed_effects:
		if is_categorical(table[column]):
			terms.append(f"C({quote(column)})")
		else:
			terms.append(quote(column))
	if not terms:
		terms = ['1']
	return f"{quote(response)} ~ {' + '.join(terms)}"


def complete_cases(table: pandas.DataFrame, columns: List[str]) -> pandas.DataFrame:
	""" Removes rows missing any of the columns used by the model."""
	missing = [i for i in columns if i not in table.columns]
	if missing:
		message = f"The table does not have the columns {missing}. Got {list(table.columns)}"
		raise ValueError(message)
	complete = table.dropna(subset = columns).copy()
	dropped = len(table) - len(complete)
	if dropped:
		logger.info(f"Dropped {dropped} rows with missing values in {columns}")
	# Unused categories would add empty columns to the design matrix.
	for column in columns:
		if isinstance(complete[column].dtype, pandas.CategoricalDtype):
			complete[column] = complete[column].cat.remove_unused_categories()
	return complete


def coefficient_table(estimate: pandas.Series, std_error: Iterable[float], statistic: Iterable[float], pvalue: Iterable[float],
		lower: Iterable[float], upper: Iterable[float]) -> pandas.DataFrame:
	table = pandas.DataFrame(
		{
			'estimate':  numpy.asarray(estimate, dtype = float),
			'std.error': numpy.asarray(std_error, dtype = float),
			'statistic': numpy.asarray(statistic, dtype = float),
			'pvalue':    numpy.asarray(pvalue, dtype = float),
			'lower':     numpy.asarray(lower, dtype = float),
			'upper':     numpy.asarray(upper, dtype = float)
		},
		index = list(estimate.index)
	)
	table.index.name = 'term'
	return table


def wald_coefficients(estimate: pandas.Series, std_error: pandas.Series, alpha: float) -> pandas.DataFrame:
	""" Coefficient table based on the normal approximation. Used for models fit by maximum likelihood."""
	std_error = numpy.asarray(std_error, dtype = float)
	statistic = estimate.values / std_error
	pvalue = 2 * stats.norm.sf(numpy.abs(statistic))
	q = stats.norm.ppf(1 - alpha / 2)
	return coefficient_table(estimate, std_error, statistic, pvalue, estimate.values - q * std_error, estimate.values + q * std_error)


def likelihood_ratio_test(llf: float, llf_null: float, df: int) -> OverallTest:
	statistic = 2 * (llf - llf_null)
	pvalue = stats.chi2.sf(statistic, df) if df > 0 else numpy.nan
	return OverallTest('likelihood ratio', float(statistic), (float(df),), float(pvalue))


class FittedModel:
	"""
		Base class for a fitted model. The model is fit when the object is created and isn't modified afterwards.
		Respecified models are new objects (see `modelfitter.drop_random_effect()` and `modelfitter.add_fixed_effect()`).

		Subclasses implement `_fit()`, `_coefficients()`, `_overall_test()`, `fitted()`, `simulate()` and `mean_parameters()`.
	"""
	name = 'model'

	def __init__(self, table: pandas.DataFrame, specification: ModelSpecification, alpha: float = 0.05):
		self.specification = specification
		self.alpha = alpha
		self.source_table = table
		self.table = complete_cases(table, specification.columns)
		if self.table.empty:
			message = f"There are no complete rows for {specification.columns}"
			raise ModelFitError(message)

		self.formula = build_formula(specification.response, specification.fixed_effects, self.table)
		self._check_specification()

		# The design matrix is kept to generate predictions and simulations for new data.
		self.endog, self.design = patsy.dmatrices(self.formula, self.table, return_type = 'dataframe')
		self._check_rank()

		logger.debug(f"Fitting {self.name} '{self.formula}' to {len(self.table)} rows.")
		self.result = self._fit()
		self.coefficients: pandas.DataFrame = self._coefficients()
		self.test: OverallTest = self._overall_test()
		logger.info(f"{self.name} '{self.formula}': {self.test.name} = {self.test.statistic:.4g}, p = {self.test.pvalue:.4g}")

	def __repr__(self) -> str:
		return f"{self.__class__.__name__}('{self.formula}')"

	@property
	def response(self) -> str:
		return self.specification.response

	@property
	def observed(self) -> pandas.Series:
		return self.table[self.response]

	def _check_specification(self) -> None:
		pass

	def _check_rank(self) -> None:
		rank = numpy.linalg.matrix_rank(self.design.values)
		if rank < self.design.shape[1]:
			message = f"The design matrix for '{self.formula}' is rank-deficient ({rank} < {self.design.shape[1]} columns: {list(self.design.columns)})"
			raise ModelFitError(message)
		if len(self.design) <= self.design.shape[1]:
			message = f"'{self.formula}' has {self.design.shape[1]} coefficients but only {len(self.design)} observations."
			raise ModelFitError(message)

	def _fit(self):
		raise NotImplementedError

	def _coefficients(self) -> pandas.DataFrame:
		raise NotImplementedError

	def _overall_test(self) -> OverallTest:
		raise NotImplementedError

	def fitted(self) -> pandas.Series:
		raise NotImplementedError

	def residuals(self) -> pandas.Series:
		""" The raw (response-scale) residuals."""
		return self.observed - self.fitted()

	def simulate(self, n: int, random_state: numpy.random.Generator) -> numpy.ndarray:
		""" Generates `n` synthetic responses for every observation. Returns an array with shape (observations, n)."""
		raise NotImplementedError

	def mean_parameters(self) -> Tuple[pandas.Series, pandas.DataFrame]:
		""" The coefficients of the linear predictor for the mean and their covariance matrix."""
		raise NotImplementedError

	def inverse_link(self, values: numpy.ndarray) -> numpy.ndarray:
		return values

	def critical_value(self, alpha: float) -> float:
		return stats.norm.ppf(1 - alpha / 2)

	def linear_predictor(self, design: pandas.DataFrame) -> numpy.ndarray:
		params, _ = self.mean_parameters()
		return design.values @ params.values

	def design_for(self, data: pandas.DataFrame) -> pandas.DataFrame:
		""" Builds the design matrix for new data using the encoding of the fitted data."""
		return patsy.build_design_matrices([self.design.design_info], data, return_type = 'dataframe')[0]

	def summary(self) -> str:
		return str(self.result.summary())
