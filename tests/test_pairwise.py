import itertools
import math
from pathlib import Path

import pandas
import pytest

import utilities
from analysis import modelfitter, pairwise

folder_data = Path(__file__).parent / "data"


@pytest.fixture(scope = 'module')
def comparison() -> pairwise.PairwiseComparison:
	biometrics, population = utilities.load_tables(folder_data / "perch_biometrics.csv", folder_data / "fish_pop.csv")
	table = utilities.prepare_table(utilities.join_tables(biometrics, population))
	model = modelfitter.fit(table, 'body.weight', ['corral'])
	return pairwise.pairwise_comparison(model)


def test_number_of_comparisons(comparison):
	assert len(comparison) == math.comb(8, 2)
	assert comparison.groups == list("ABCDEFGH")
	assert set(comparison.pairs()) == set(itertools.combinations("ABCDEFGH", 2))


def test_confidence_intervals_contain_the_difference(comparison):
	for _, row in comparison.table.iterrows():
		assert row['lower'] <= row['meandiff'] <= row['upper']
		# An interval that excludes zero is a rejected hypothesis.
		assert row['reject'] == (row['lower'] > 0 or row['upper'] < 0)


def test_mean_difference(comparison):
	row = comparison.table[(comparison.table['group1'] == 'G') & (comparison.table['group2'] == 'H')].iloc[0]
	assert row['meandiff'] == pytest.approx(comparison.means['H'] - comparison.means['G'])


def test_is_significant(comparison):
	assert comparison.is_significant('G', 'H')
	assert comparison.is_significant('H', 'G')
	assert not comparison.is_significant('C', 'E')
	with pytest.raises(KeyError):
		comparison.is_significant('A', 'Z')


def test_letters_are_consistent_with_the_comparisons(comparison):
	letters = comparison.letters()
	assert set(letters.keys()) == set("ABCDEFGH")
	for left, right in comparison.pairs():
		shares_a_letter = bool(set(letters[left]) & set(letters[right]))
		assert shares_a_letter != comparison.is_significant(left, right)


def test_squareform(comparison):
	matrix = comparison.squareform()

	assert list(matrix.index) == list("ABCDEFGH")
	assert matrix.loc['G', 'H'] == pytest.approx(-matrix.loc['H', 'G'])
	assert math.isnan(matrix.loc['A', 'A'])


def test_squareform_from_dict():
	values = {('a', 'b'): 1, ('b', 'a'): 1, ('a', 'c'): 2}
	result = pairwise.squareform(values, default = 0)

	assert list(result.columns) == ['a', 'b', 'c']
	assert result.loc['b', 'a'] == 1
	# The outer keys are the columns.
	assert result.loc['c', 'a'] == 2
	assert result.loc['a', 'c'] == 0


@pytest.mark.parametrize(
	"groups, significant_pairs, expected",
	[
		(['A', 'B', 'C'], [], {'A': 'a', 'B': 'a', 'C': 'a'}),
		(['A', 'B', 'C'], [('A', 'B')], {'A': 'a', 'B': 'b', 'C': 'ab'}),
		(['A', 'B', 'C'], [('A', 'B'), ('A', 'C'), ('B', 'C')], {'A': 'a', 'B': 'b', 'C': 'c'}),
		(['A', 'B', 'C', 'D'], [('A', 'D'), ('B', 'D')], {'A': 'a', 'B': 'a', 'C': 'ab', 'D': 'b'}),
		(['0 (1)', '0 (2)', '10'], [('10', '0 (1)')], {'0 (1)': 'a', '0 (2)': 'ab', '10': 'b'})
	]
)
def test_compact_letter_display(groups, significant_pairs, expected):
	result = pairwise.compact_letter_display(groups, significant_pairs)
	assert result == expected
