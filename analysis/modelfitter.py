"""
	Chooses which kind of model to fit for a response:
	- `FixedEffectComparison`: gaussian response, only categorical fixed effects and no random effect (an ANOVA).
	- `LinearRegression`: gaussian response with continuous covariates and/or a random intercept.
	- `BetaRegression`: a proportion between 0 and 1 (`family = 'beta'`).
"""
from typing import *

import pandas
from loguru import logger

from analysis.anovacalc import FixedEffectComparison
from analysis.fittedmodel import FittedModel, ModelFitError, ModelSpecification, is_categorical
from analysis.regression import BetaRegression, LinearRegression

DEFAULT_LINKS = {
	'gaussian': 'identity',
	'beta':     'logit'
}


def fit(table: pandas.DataFrame, response: str, fixed_effects: Union[str, Iterable[str]] = (), random_effect: Optional[str] = None,
		family: str = 'gaussian', link: Optional[str] = None, alpha: float = 0.05) -> FittedModel:
	"""
		Fits `response` against the fixed effects (and an optional random intercept for `random_effect`).
	Parameters
	----------
	table: pandas.DataFrame
		Rows missing the response or any of the covariates are excluded.
	response: str
	fixed_effects: Union[str, Iterable[str]]
		Numeric columns are treated as continuous covariates, all others as categorical.
	random_effect: Optional[str]
		The grouping column for a random intercept.
	family: {'gaussian', 'beta'}
	link: Optional[str]
		'identity' for gaussian models; 'logit', 'probit' or 'cloglog' for beta models. Uses the canonical link if not given.
	alpha: float
		Used for the confidence intervals of the coefficients.

	Raises
	------
	ModelFitError: The model could not be fit (rank-deficient design, confounded random effect, no convergence, etc.)
	"""
	if isinstance(fixed_effects, str):
		fixed_effects = [fixed_effects]
	fixed_effects = tuple(fixed_effects)
	if family not in DEFAULT_LINKS:
		message = f"Unsupported family '{family}'. Expected one of {list(DEFAULT_LINKS)}"
		raise ValueError(message)
	if link is None:
		link = DEFAULT_LINKS[family]
	if family == 'gaussian' and link != 'identity':
		message = f"Gaussian models only support the identity link. Transform the response instead (got '{link}')."
		raise ValueError(message)

	specification = ModelSpecification(response, fixed_effects, random_effect, family, link)
	model_class = select_model(table, specification)
	logger.debug(f"Using {model_class.__name__} for {specification}")
	return model_class(table, specification, alpha = alpha)


def select_model(table: pandas.DataFrame, specification: ModelSpecification) -> Type[FittedModel]:
	if specification.family == 'beta':
		return BetaRegression
	missing = [i for i in specification.fixed_effects if i not in table.columns]
	if missing:
		message = f"The table does not have the columns {missing}"
		raise ValueError(message)
	only_categorical = all(is_categorical(table[i]) for i in specification.fixed_effects)
	if specification.random_effect is None and specification.fixed_effects and only_categorical:
		return FixedEffectComparison
	return LinearRegression


def refit(model: FittedModel, **changes) -> FittedModel:
	""" Fits a new model to the same data with some of the specification changed. `model` is not modified."""
	specification = model.specification._replace(**changes)
	logger.info(f"Respecifying {model.formula}: {changes}")
	return fit(
		model.source_table,
		specification.response,
		specification.fixed_effects,
		random_effect = specification.random_effect,
		family = specification.family,
		link = specification.link,
		alpha = model.alpha
	)


def drop_random_effect(model: FittedModel) -> FittedModel:
	""" Refits the model without its random effect."""
	if model.specification.random_effect is None:
		message = f"{model} does not have a random effect."
		raise ValueError(message)
	return refit(model, random_effect = None)


def add_fixed_effect(model: FittedModel, column: str) -> FittedModel:
	""" Refits the model with an extra fixed effect. Usually a covariate the residuals were found to depend on."""
	if column in model.specification.fixed_effects:
		message = f"'{column}' is already a fixed effect of {model}"
		raise ValueError(message)
	return refit(model, fixed_effects = model.specification.fixed_effects + (column,))
