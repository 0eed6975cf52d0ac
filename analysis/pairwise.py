import itertools
import math
import string
from typing import *

import pandas
from loguru import logger
from toolz import itertoolz

from analysis.anovacalc import FixedEffectComparison


class PairwiseComparison:
	"""
		The Tukey comparisons between every pair of groups of a `FixedEffectComparison`.

		Attributes
		----------
		table: pandas.DataFrame
			One row per unordered pair of groups with columns `group1`, `group2`, `meandiff`, `p-adj`, `lower`, `upper`, `reject`.
			`meandiff` is the mean of `group2` minus the mean of `group1`.
		groups: List[str]
			The compared groups, in the order they appear in the model.
		means: pandas.Series
			The mean response of each group.
	"""

	def __init__(self, table: pandas.DataFrame, groups: List[str], alpha: float, means: Optional[pandas.Series] = None, result: Any = None):
		self.table = table
		self.groups = groups
		self.alpha = alpha
		self.means = means
		self.result = result

		self._significant = {frozenset((row['group1'], row['group2'])): bool(row['reject']) for _, row in table.iterrows()}

	def __len__(self) -> int:
		return len(self.table)

	def pairs(self) -> List[Tuple[str, str]]:
		return list(zip(self.table['group1'], self.table['group2']))

	def is_significant(self, left: str, right: str) -> bool:
		try:
			return self._significant[frozenset((left, right))]
		except KeyError:
			message = f"There is no comparison between '{left}' and '{right}'"
			raise KeyError(message)

	def significant_pairs(self) -> List[Tuple[str, str]]:
		return [(left, right) for left, right in self.pairs() if self.is_significant(left, right)]

	def squareform(self, field: str = 'meandiff') -> pandas.DataFrame:
		""" Converts the comparisons into a square matrix of `field`. `meandiff` changes sign when the pair is reversed."""
		pairwise_values = dict()
		for _, row in self.table.iterrows():
			left, right = row['group1'], row['group2']
			value = row[field]
			if field == 'reject':
				value = int(value)
			pairwise_values[left, right] = value
			pairwise_values[right, left] = -value if field == 'meandiff' else value
		return squareform(pairwise_values, labels = self.groups)

	def letters(self, order: Optional[List[str]] = None) -> Dict[str, str]:
		""" The compact letter display of the groups. Groups which share a letter are not significantly different."""
		if order is None:
			order = self.groups
		return compact_letter_display(order, self.significant_pairs())


def squareform(pairwise_values: Dict[Tuple[str, str], float], default = math.nan, labels: Optional[List[str]] = None) -> pandas.DataFrame:
	""" Converts a dictionary with all pairwise values for a set of points into a square matrix representation.
	"""
	if labels is None:
		labels = sorted(set(itertools.chain.from_iterable(pairwise_values.keys())))
	_square_map = dict()
	for left in labels:
		series = dict()
		for right in labels:
			value = pairwise_values.get((left, right), default)
			series[right] = value
		_square_map[left] = series
	return pandas.DataFrame(_square_map)


def _letter(index: int) -> str:
	alphabet = string.ascii_lowercase
	if index < len(alphabet):
		return alphabet[index]
	return alphabet[index % len(alphabet)] + str(index // len(alphabet))


def compact_letter_display(groups: List[str], significant_pairs: Iterable[Tuple[str, str]]) -> Dict[str, str]:
	"""
		Assigns letters to groups so that two groups share a letter only if they are not significantly different
		(the insert-and-absorb algorithm). Letters are assigned in the order of `groups`.
	Parameters
	----------
	groups: List[str]
	significant_pairs: Iterable[Tuple[str,str]]
		The pairs of groups that are significantly different.
	"""
	# Each column is a set of groups that will share a letter.
	columns = [frozenset(groups)]
	for left, right in significant_pairs:
		inserted = list()
		for column in columns:
			if left in column and right in column:
				inserted.append(column - {left})
				inserted.append(column - {right})
			else:
				inserted.append(column)
		# Absorb any column that is already contained in another column.
		inserted = list(itertoolz.unique(inserted))
		columns = [i for i in inserted if not any(i < j for j in inserted)]

	position = {group: index for index, group in enumerate(groups)}
	columns = sorted(columns, key = lambda column: sorted(position[group] for group in column))

	letters = {group: "" for group in groups}
	for index, column in enumerate(columns):
		for group in sorted(column, key = position.get):
			letters[group] += _letter(index)
	return letters


def pairwise_comparison(model: FixedEffectComparison, alpha: Optional[float] = None) -> PairwiseComparison:
	""" Runs Tukey's HSD on every pair of groups in the model. For `k` groups there are `k(k-1)/2` comparisons."""
	if alpha is None:
		alpha = model.alpha
	result = model.tukeyhsd(alpha)

	groups = [str(i) for i in result.groupsunique]
	pairs = list(itertools.combinations(groups, 2))  # Same order statsmodels uses for the comparisons.
	table = pandas.DataFrame(
		{
			'group1':   [i[0] for i in pairs],
			'group2':   [i[1] for i in pairs],
			'meandiff': [float(i) for i in result.meandiffs],
			'p-adj':    [float(i) for i in result.pvalues],
			'lower':    [float(i[0]) for i in result.confint],
			'upper':    [float(i[1]) for i in result.confint],
			'reject':   [bool(i) for i in result.reject]
		}
	)
	# Keep the order the groups appear in the model (ex. the order of an ordered categorical) rather than alphabetical.
	model_order = groups
	fixed_effects = model.specification.fixed_effects
	if len(fixed_effects) == 1 and isinstance(model.table[fixed_effects[0]].dtype, pandas.CategoricalDtype):
		model_order = [str(i) for i in model.table[fixed_effects[0]].cat.categories]
	means = model.group_means()
	means.index = [str(i) for i in means.index]

	logger.info(f"{len(table)} pairwise comparisons of '{model.response}' between {len(groups)} groups; {table['reject'].sum()} are significant.")
	return PairwiseComparison(table, model_order, alpha, means = means.reindex(model_order), result = result)
