from typing import *

import pandas
from loguru import logger


def summarize_groups(table: pandas.DataFrame, by: Union[str, List[str]], columns: Union[str, List[str]]) -> pandas.DataFrame:
	"""
		Calculates the number of observations, mean, and standard deviation of each column for every group. Missing values are ignored.
		Groups with fewer than two observations of a column have an undefined (NaN) standard deviation.
	Parameters
	----------
	table: pandas.DataFrame
	by: Union[str, List[str]]
		The column(s) to group by. Rows missing any of these are excluded.
	columns: Union[str, List[str]]
		The numeric columns to summarize.

	Returns
	-------
	pandas.DataFrame
		Indexed by the groups, with the columns `n.{column}`, `mean.{column}`, and `sd.{column}` for each column.
	"""
	if isinstance(by, str):
		by = [by]
	if isinstance(columns, str):
		columns = [columns]

	groups = table.groupby(by = by, observed = True)
	summary = dict()
	for column in columns:
		summary[f"n.{column}"] = groups[column].count()
		summary[f"mean.{column}"] = groups[column].mean()
		summary[f"sd.{column}"] = groups[column].std(ddof = 1)
	summary = pandas.DataFrame(summary)
	logger.debug(f"Summarized {columns} over {len(summary)} groups of {by}")
	return summary


def group_maximum(table: pandas.DataFrame, by: List[str], column: str) -> pandas.DataFrame:
	""" The largest non-missing value of `column` in each group. Used to position labels above each group in a figure."""
	result = table.groupby(by = by, observed = True)[column].max().rename('y').reset_index()
	return result.dropna(subset = ['y'])
