import warnings
from typing import *

import numpy
import pandas
from loguru import logger
from scipy import stats
from statsmodels.genmod.families import links
from statsmodels.othermod.betareg import BetaModel
from statsmodels.regression import linear_model
from statsmodels.regression.mixed_linear_model import MixedLM
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from analysis.fittedmodel import (FittedModel, ModelFitError, OverallTest, coefficient_table, likelihood_ratio_test, quote,
	wald_coefficients)

BETA_LINKS = {
	'logit':   links.Logit,
	'probit':  links.Probit,
	'cloglog': links.CLogLog
}


def check_random_effect(table: pandas.DataFrame, fixed_effects: Iterable[str], group: str) -> None:
	"""
		Makes sure the random effect isn't confounded with the fixed effects. This happens when every fixed effect is constant within
		each group and every group has a unique combination of fixed effects, since the group intercepts can then reproduce the
		fixed effects exactly.
	"""
	fixed_effects = list(fixed_effects)
	number_of_groups = table[group].nunique()
	if number_of_groups < 2:
		message = f"The random effect '{group}' needs at least two groups, got {number_of_groups}"
		raise ModelFitError(message)
	if not fixed_effects:
		return
	values_per_group = table.groupby(group, observed = True)[fixed_effects].nunique()
	is_constant_within_groups = (values_per_group <= 1).all().all()
	if not is_constant_within_groups:
		return
	combinations = table.drop_duplicates(subset = [group])[fixed_effects].drop_duplicates()
	if len(combinations) == number_of_groups:
		message = (
			f"Every '{group}' has a unique combination of {fixed_effects}, so the random effect is confounded with the fixed effects. "
			f"Drop the '{group}' random effect and refit."
		)
		raise ModelFitError(message)


class LinearRegression(FittedModel):
	"""
		Gaussian regression of the response on continuous and/or categorical covariates.
		Fit with ordinary least squares, or as a mixed model with a random intercept per group when `random_effect` is given.
		Mixed models are fit by maximum likelihood so that they can be compared with a likelihood ratio test.
	"""
	name = 'regression'

	@property
	def is_mixed(self) -> bool:
		return self.specification.random_effect is not None

	def _check_specification(self) -> None:
		if self.is_mixed:
			check_random_effect(self.table, self.specification.fixed_effects, self.specification.random_effect)

	def _fit(self):
		if not self.is_mixed:
			return linear_model.OLS.from_formula(self.formula, data = self.table).fit()
		result = self._fit_mixed(self.formula)
		null_result = self._fit_mixed(f"{quote(self.response)} ~ 1")
		self.llf_null = float(null_result.llf)
		return result

	def _fit_mixed(self, formula: str):
		groups = self.table[self.specification.random_effect].astype(str)
		with warnings.catch_warnings(record = True) as caught:
			warnings.simplefilter('always', ConvergenceWarning)
			try:
				result = MixedLM.from_formula(formula, data = self.table, groups = groups).fit(reml = False)
			except (numpy.linalg.LinAlgError, ValueError) as exception:
				message = f"Could not fit '{formula}' with a random intercept for '{self.specification.random_effect}': {exception}"
				raise ModelFitError(message) from exception
		for warning in caught:
			logger.warning(f"'{formula}': {warning.message}")
		if not result.converged:
			message = f"'{formula}' with a random intercept for '{self.specification.random_effect}' did not converge."
			raise ModelFitError(message)
		return result

	def _coefficients(self) -> pandas.DataFrame:
		if self.is_mixed:
			return wald_coefficients(self.result.fe_params, self.result.bse_fe, self.alpha)
		confint = numpy.asarray(self.result.conf_int(alpha = self.alpha))
		return coefficient_table(self.result.params, self.result.bse, self.result.tvalues, self.result.pvalues, confint[:, 0], confint[:, 1])

	def _overall_test(self) -> OverallTest:
		if self.is_mixed:
			df = self.design.shape[1] - 1
			return likelihood_ratio_test(self.result.llf, self.llf_null, df)
		return OverallTest('F', float(self.result.fvalue), (float(self.result.df_model), float(self.result.df_resid)), float(self.result.f_pvalue))

	@property
	def variance_components(self) -> Dict[str, float]:
		""" The variance of the random intercepts and of the residuals."""
		if not self.is_mixed:
			return {'Residual': float(self.result.scale)}
		return {
			self.specification.random_effect: float(numpy.asarray(self.result.cov_re)[0, 0]),
			'Residual':                       float(self.result.scale)
		}

	def fitted(self) -> pandas.Series:
		# For mixed models this includes the predicted random intercepts.
		return pandas.Series(numpy.asarray(self.result.fittedvalues), index = self.table.index)

	def simulate(self, n: int, random_state: numpy.random.Generator) -> numpy.ndarray:
		""" Simulations from a mixed model draw new random intercepts rather than conditioning on the fitted ones."""
		number_of_observations = len(self.table)
		sigma = numpy.sqrt(self.result.scale)
		noise = random_state.normal(0, sigma, size = (number_of_observations, n))
		if not self.is_mixed:
			return self.fitted().values[:, numpy.newaxis] + noise

		mean = self.linear_predictor(self.design)[:, numpy.newaxis]
		codes, uniques = pandas.factorize(self.table[self.specification.random_effect].astype(str))
		group_sd = numpy.sqrt(max(self.variance_components[self.specification.random_effect], 0))
		intercepts = random_state.normal(0, group_sd, size = (len(uniques), n))
		return mean + intercepts[codes, :] + noise

	def mean_parameters(self) -> Tuple[pandas.Series, pandas.DataFrame]:
		columns = list(self.design.columns)
		if self.is_mixed:
			return self.result.fe_params[columns], self.result.cov_params().loc[columns, columns]
		return self.result.params[columns], self.result.cov_params().loc[columns, columns]

	def critical_value(self, alpha: float) -> float:
		if self.is_mixed:
			return stats.norm.ppf(1 - alpha / 2)
		return stats.t.ppf(1 - alpha / 2, self.result.df_resid)


class BetaRegression(FittedModel):
	"""
		Regression of a proportion (ex. the survival ratio) using a beta distribution. The mean uses `link` (logit by default) and the
		precision is constant. The response has to be strictly between 0 and 1.
	"""
	name = 'beta regression'

	def _check_specification(self) -> None:
		if self.specification.random_effect is not None:
			message = "Random effects are not supported for beta regression."
			raise ModelFitError(message)
		if self.specification.link not in BETA_LINKS:
			message = f"Unsupported link '{self.specification.link}' for beta regression. Expected one of {list(BETA_LINKS)}"
			raise ValueError(message)
		response = self.table[self.response]
		outside = response[(response <= 0) | (response >= 1)]
		if len(outside) > 0:
			message = f"Beta regression needs '{self.response}' to be between 0 and 1 (exclusive). Got {sorted(outside.unique())}"
			raise ModelFitError(message)
		self.link = BETA_LINKS[self.specification.link]()

	def _fit_beta(self, formula: str):
		with warnings.catch_warnings(record = True) as caught:
			warnings.simplefilter('always', ConvergenceWarning)
			try:
				result = BetaModel.from_formula(formula, self.table, link = self.link).fit(disp = False)
			except (numpy.linalg.LinAlgError, ValueError) as exception:
				message = f"Could not fit the beta regression '{formula}': {exception}"
				raise ModelFitError(message) from exception
		for warning in caught:
			logger.warning(f"'{formula}': {warning.message}")
		if not result.mle_retvals.get('converged', True):
			message = f"The beta regression '{formula}' did not converge."
			raise ModelFitError(message)
		return result

	def _fit(self):
		result = self._fit_beta(self.formula)
		null_result = self._fit_beta(f"{quote(self.response)} ~ 1")
		self.llf_null = float(null_result.llf)
		return result

	def _coefficients(self) -> pandas.DataFrame:
		# The last parameter is the log of the precision.
		params = pandas.Series(numpy.asarray(self.result.params), index = list(self.design.columns) + ['precision'])
		return wald_coefficients(params, numpy.sqrt(numpy.diag(numpy.asarray(self.result.cov_params()))), self.alpha)

	def _overall_test(self) -> OverallTest:
		return likelihood_ratio_test(self.result.llf, self.llf_null, self.design.shape[1] - 1)

	@property
	def precision(self) -> float:
		""" The precision (phi) of the beta distribution. Stored on the log scale."""
		return float(numpy.exp(numpy.asarray(self.result.params)[-1]))

	def inverse_link(self, values: numpy.ndarray) -> numpy.ndarray:
		return self.link.inverse(values)

	def fitted(self) -> pandas.Series:
		""" The fitted mean proportions."""
		return pandas.Series(self.inverse_link(self.linear_predictor(self.design)), index = self.table.index)

	def simulate(self, n: int, random_state: numpy.random.Generator) -> numpy.ndarray:
		mean = self.fitted().values[:, numpy.newaxis]
		precision = self.precision
		return random_state.beta(mean * precision, (1 - mean) * precision, size = (len(mean), n))

	def mean_parameters(self) -> Tuple[pandas.Series, pandas.DataFrame]:
		number_of_columns = self.design.shape[1]
		columns = list(self.design.columns)
		params = pandas.Series(numpy.asarray(self.result.params)[:number_of_columns], index = columns)
		covariance = numpy.asarray(self.result.cov_params())[:number_of_columns, :number_of_columns]
		return params, pandas.DataFrame(covariance, index = columns, columns = columns)
