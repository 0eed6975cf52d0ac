from pathlib import Path
from typing import *

import numpy
import pandas
from loguru import logger

import table_schema
from table_schema import CONCENTRATION, CORRAL, TREATMENT
from validation import LoadError, ValidateTable


def checkdir(path: Union[str, Path]) -> Path:
	path = Path(path)
	if not path.exists():
		path.mkdir(parents = True)
	return path


def load_tables(filename_biometrics: Union[str, Path], filename_population: Union[str, Path]) -> Tuple[pandas.DataFrame, pandas.DataFrame]:
	""" Reads and validates both input tables. Any problem with either file is fatal."""
	validator = ValidateTable()
	biometrics = validator.check_biometrics(filename_biometrics)
	population = validator.check_population(filename_population)
	return biometrics, population


def join_tables(biometrics: pandas.DataFrame, population: pandas.DataFrame) -> pandas.DataFrame:
	"""
		Combines the data by mesocosm ID. Every fish in `biometrics` is kept, even if its corral isn't in `population`.
		The population fields of those fish are left missing.
	"""
	population = population.copy()
	if CONCENTRATION in biometrics.columns and CONCENTRATION in population.columns:
		logger.debug(f"Both tables have a '{CONCENTRATION}' column. Using the values from the biometrics table.")
		population = population.drop(columns = [CONCENTRATION])

	try:
		table = biometrics.merge(population, on = CORRAL, how = 'left', suffixes = ('', '.pop'), validate = 'many_to_one')
	except pandas.errors.MergeError as exception:
		duplicated = population[CORRAL][population[CORRAL].duplicated()].unique()
		message = f"The population table has more than one row for corrals {list(duplicated)}"
		raise LoadError(message) from exception

	unmatched = sorted(set(biometrics[CORRAL].unique()) - set(population[CORRAL].unique()))
	if unmatched:
		logger.warning(f"The corrals {unmatched} are not in the population table. Their population fields will be missing.")
	if CONCENTRATION not in table.columns:
		message = f"Neither table has a '{CONCENTRATION}' column."
		raise LoadError(message)
	return table


def remove_missing_response(table: pandas.DataFrame, column: str = table_schema.TOTAL_LENGTH) -> pandas.DataFrame:
	""" Removes fish without a measured `column`. These are mostly non-perch fish that got into the mesocosms."""
	is_missing = table[column].isna()
	if is_missing.any():
		logger.info(f"Removing {is_missing.sum()} rows without a '{column}' value.")
	return table[~is_missing].reset_index(drop = True)


def format_concentration(value: float) -> str:
	""" Formats a concentration as a label. Whole numbers are written without a decimal."""
	if pandas.isna(value):
		return value
	value = float(value)
	if value.is_integer():
		return str(int(value))
	return f"{value:g}"


def add_treatment_labels(table: pandas.DataFrame, reference_corral: Optional[str] = None) -> pandas.DataFrame:
	"""
		Adds a `treatment` column. This is the concentration, except that the control corrals (concentration 0) are split into
		'0 (1)' and '0 (2)' so that the two independent controls aren't treated as the same group.
	Parameters
	----------
	table: pandas.DataFrame
	reference_corral: Optional[str]
		The control corral labeled '0 (1)'. Every other control corral is labeled '0 (2)'.
		Defaults to the first control corral in alphabetical order.
	"""
	table = table.copy()
	labels = table[CONCENTRATION].apply(format_concentration)

	is_control = table[CONCENTRATION] == 0
	control_corrals = sorted(table.loc[is_control, CORRAL].unique())
	if control_corrals:
		if reference_corral is None:
			reference_corral = control_corrals[0]
		elif reference_corral not in control_corrals:
			message = f"The reference corral '{reference_corral}' is not one of the control corrals {control_corrals}"
			raise ValueError(message)
		if len(control_corrals) == 1:
			logger.warning(f"Only one control corral was found ({reference_corral}).")
		is_reference = table[CORRAL] == reference_corral
		labels[is_control & is_reference] = "0 (1)"
		labels[is_control & ~is_reference] = "0 (2)"

	if labels.isna().any():
		logger.warning(f"{labels.isna().sum()} rows have no concentration and will not have a treatment label.")

	# Order the labels by concentration so that the groups are plotted in a sensible order.
	order = table.assign(_label = labels).dropna(subset = ['_label']).sort_values(by = [CONCENTRATION, '_label'])['_label'].unique()
	table[TREATMENT] = pandas.Categorical(labels, categories = list(order), ordered = True)
	return table


def add_condition_index(table: pandas.DataFrame) -> pandas.DataFrame:
	""" Adds Fulton's condition factor (K = weight / length^3). Missing when either measurement is missing."""
	table = table.copy()
	table[table_schema.CONDITION_INDEX] = table[table_schema.BODY_WEIGHT] / (table[table_schema.TOTAL_LENGTH] ** 3)
	return table


def add_log_column(table: pandas.DataFrame, column: str, offset: float = 0) -> pandas.DataFrame:
	table = table.copy()
	table['log.' + column] = numpy.log(table[column] + offset)
	return table


def add_survival_ratio(population: pandas.DataFrame) -> pandas.DataFrame:
	population = population.copy()
	population[table_schema.SURVIVAL_RATIO] = population[table_schema.END_COUNT] / population[table_schema.START_COUNT]
	return population


def prepare_table(table: pandas.DataFrame, reference_corral: Optional[str] = None) -> pandas.DataFrame:
	""" Runs all of the filters and derivations on the joined table."""
	table = remove_missing_response(table, table_schema.TOTAL_LENGTH)
	table = add_treatment_labels(table, reference_corral)
	table = add_condition_index(table)
	table = add_log_column(table, CONCENTRATION, table_schema.CONCENTRATION_OFFSET)
	return table


def tukey_to_json(result) -> Dict[str, Any]:
	""" Converts TukeyHSDResults to a dictionary."""

	data = {
		'confint':      list(tuple(float(j) for j in i) for i in result.confint),
		'df_total':     int(result.df_total),
		'groupsunique': list(str(i) for i in result.groupsunique),
		'meandiffs':    list(float(i) for i in result.meandiffs),
		'pvalues':      list(float(i) for i in result.pvalues),
		'q_crit':       float(result.q_crit),
		'reject':       list(bool(i) for i in result.reject),
		'std_pairs':    list(float(i) for i in result.std_pairs),
		'variance':     float(result.variance)
	}
	return data
