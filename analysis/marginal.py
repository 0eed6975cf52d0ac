from typing import *

import numpy
import pandas
from loguru import logger

from analysis.fittedmodel import FittedModel, is_categorical


def _levels(series: pandas.Series) -> List[Any]:
	if isinstance(series.dtype, pandas.CategoricalDtype):
		return list(series.cat.categories)
	return sorted(series.dropna().unique())


def reference_values(model: FittedModel) -> Dict[str, Any]:
	""" The value each covariate is held at when it isn't the focal term. Numeric covariates use the mean, categorical covariates the first level."""
	values = dict()
	for column in model.specification.fixed_effects:
		series = model.table[column]
		if is_categorical(series):
			values[column] = _levels(series)[0]
		else:
			values[column] = float(series.mean())
	return values


def default_values(series: pandas.Series, maximum_values: int = 25, number_of_points: int = 50) -> List[Any]:
	if is_categorical(series):
		return _levels(series)
	unique = sorted(series.dropna().unique())
	if len(unique) <= maximum_values:
		return unique
	return list(numpy.linspace(min(unique), max(unique), number_of_points))


def marginal_predictions(model: FittedModel, term: str, values: Optional[Iterable[Any]] = None, alpha: Optional[float] = None) -> pandas.DataFrame:
	"""
		Predicts the mean response at each value of `term` while holding the other covariates at their reference values.
		The confidence bounds are calculated on the scale of the linear predictor and transformed with the inverse link, so they
		stay within the range of the response.
	Parameters
	----------
	model: FittedModel
	term: str
		One of the fixed effects of the model.
	values: Optional[Iterable[Any]]
		Defaults to the observed values of `term` (or an evenly spaced grid when there are many).
	alpha: Optional[float]

	Returns
	-------
	pandas.DataFrame
		Columns: `term`, `predicted`, `std.error` (on the linear predictor scale), `conf.low`, `conf.high`
	"""
	if term not in model.specification.fixed_effects:
		message = f"'{term}' is not a fixed effect of {model}. Expected one of {list(model.specification.fixed_effects)}"
		raise ValueError(message)
	if alpha is None:
		alpha = model.alpha
	if values is None:
		values = default_values(model.table[term])
	values = list(values)

	newdata = pandas.DataFrame({term: values})
	for column, value in reference_values(model).items():
		if column != term:
			newdata[column] = value
	logger.debug(f"Predicting '{model.response}' at {len(values)} values of '{term}'")

	design = model.design_for(newdata)
	_, covariance = model.mean_parameters()
	linear_predictor = model.linear_predictor(design)
	std_error = numpy.sqrt(numpy.einsum('ij,jk,ik->i', design.values, covariance.values, design.values))
	critical_value = model.critical_value(alpha)

	predictions = pandas.DataFrame(
		{
			term:        values,
			'predicted': model.inverse_link(linear_predictor),
			'std.error': std_error,
			'conf.low':  model.inverse_link(linear_predictor - critical_value * std_error),
			'conf.high': model.inverse_link(linear_predictor + critical_value * std_error)
		}
	)
	return predictions
