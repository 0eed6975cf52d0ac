from typing import *

import numpy
import pandas
import statsmodels.api as sm
from loguru import logger
from scipy import stats
from statsmodels.regression import linear_model
from statsmodels.sandbox.stats.multicomp import TukeyHSDResults  # Used to add a typing annotation to tukeyhsd()
from statsmodels.stats.multicomp import MultiComparison

from analysis.fittedmodel import FittedModel, ModelFitError, OverallTest, coefficient_table, is_categorical


def combine_groups(table: pandas.DataFrame, columns: Iterable[str]) -> pandas.Series:
	""" Combines several categorical columns into a single group label. ex. 'condition' and 'strain' become 'condition-strain'"""
	columns = list(columns)
	groups = table[columns[0]].astype(str)
	for column in columns[1:]:
		groups = groups + "-" + table[column].astype(str)
	return groups


def tukeyhsd(table: pandas.DataFrame, column: str, groups: pandas.Series, alpha: float = 0.05) -> TukeyHSDResults:
	"""
		Performs tukey multiple-comparison statistics.
	Parameters
	----------
	table: A table with one observation per row.
	column: The column with the relevant values. Should be the response of the compared model.
	groups: The group label of each row in `table`.
	alpha: The family-wise error rate.
	"""
	number_of_unique_categories = groups.nunique()
	logger.debug(f"tukey groups: {sorted(groups.unique())}")
	if number_of_unique_categories < 2:
		message = f"Need at least two groups to compare '{column}', got {number_of_unique_categories}"
		raise ModelFitError(message)
	return MultiComparison(table[column].values, groups.astype(str).values).tukeyhsd(alpha = alpha)


class FixedEffectComparison(FittedModel):
	"""
		Compares the group means of the response, analogous to a one-way (or additive multi-way) ANOVA.
		Every fixed effect must be categorical.

		Attributes
		----------
		anova_table: The type-I ANOVA table (`df`, `sum_sq`, `mean_sq`, `F`, `PR(>F)`)
		groups: The group label of each observation. Multiple factors are joined with '-'.
	"""
	name = 'comparison'

	def _check_specification(self) -> None:
		if not self.specification.fixed_effects:
			message = "A group comparison needs at least one grouping column."
			raise ModelFitError(message)
		for column in self.specification.fixed_effects:
			if not is_categorical(self.table[column]):
				message = f"'{column}' is numeric. Group comparisons need categorical fixed effects."
				raise ModelFitError(message)
		self.groups = combine_groups(self.table, self.specification.fixed_effects)
		if self.groups.nunique() < 2:
			message = f"'{self.formula}' only has one group ({self.groups.iloc[0]})."
			raise ModelFitError(message)

	def _fit(self) -> linear_model.RegressionResultsWrapper:
		logger.info(f"The equation used for ANOVA is {self.formula}")
		regression = linear_model.OLS.from_formula(self.formula, data = self.table).fit()
		self.anova_table = sm.stats.anova_lm(regression, typ = 1)
		return regression

	def _coefficients(self) -> pandas.DataFrame:
		confint = numpy.asarray(self.result.conf_int(alpha = self.alpha))
		return coefficient_table(self.result.params, self.result.bse, self.result.tvalues, self.result.pvalues, confint[:, 0], confint[:, 1])

	def _overall_test(self) -> OverallTest:
		return OverallTest('F', float(self.result.fvalue), (float(self.result.df_model), float(self.result.df_resid)), float(self.result.f_pvalue))

	def fitted(self) -> pandas.Series:
		return pandas.Series(numpy.asarray(self.result.fittedvalues), index = self.table.index)

	def simulate(self, n: int, random_state: numpy.random.Generator) -> numpy.ndarray:
		fitted = self.fitted().values[:, numpy.newaxis]
		sigma = numpy.sqrt(self.result.scale)
		return fitted + random_state.normal(0, sigma, size = (len(fitted), n))

	def mean_parameters(self) -> Tuple[pandas.Series, pandas.DataFrame]:
		columns = list(self.design.columns)
		return self.result.params[columns], self.result.cov_params().loc[columns, columns]

	def critical_value(self, alpha: float) -> float:
		return stats.t.ppf(1 - alpha / 2, self.result.df_resid)

	def group_means(self) -> pandas.Series:
		return self.observed.groupby(self.groups).mean()

	def tukeyhsd(self, alpha: Optional[float] = None) -> TukeyHSDResults:
		if alpha is None:
			alpha = self.alpha
		return tukeyhsd(self.table, self.response, self.groups, alpha)
