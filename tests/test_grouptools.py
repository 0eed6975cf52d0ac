import math

import numpy
import pandas
import pytest

from analysis import grouptools


@pytest.fixture
def table() -> pandas.DataFrame:
	return pandas.DataFrame(
		{
			'treatment':   ['0', '0', '0', '10', '10', '50'],
			'body.weight': [6.0, 8.0, 7.0, 9.0, numpy.nan, 4.0],
			'TL':          [80, 90, 85, 95, 92, 70]
		}
	)


def test_summarize_groups(table):
	result = grouptools.summarize_groups(table, 'treatment', ['body.weight', 'TL'])

	assert list(result.index) == ['0', '10', '50']
	assert result.loc['0', 'n.body.weight'] == 3
	assert result.loc['0', 'mean.body.weight'] == pytest.approx(7.0)
	assert result.loc['0', 'sd.body.weight'] == pytest.approx(1.0)
	# Missing values are ignored.
	assert result.loc['10', 'n.body.weight'] == 1
	assert result.loc['10', 'n.TL'] == 2


def test_summarize_groups_single_observation(table):
	result = grouptools.summarize_groups(table, 'treatment', 'body.weight')

	assert result.loc['50', 'mean.body.weight'] == pytest.approx(4.0)
	assert math.isnan(result.loc['50', 'sd.body.weight'])
	assert math.isnan(result.loc['10', 'sd.body.weight'])


def test_summarize_groups_multiple_columns(table):
	table['YP.end'] = [18, 18, 17, 12, 12, 15]
	result = grouptools.summarize_groups(table, ['treatment', 'YP.end'], 'TL')

	assert len(result) == 4
	assert result.loc[('0', 18), 'n.TL'] == 2


def test_group_maximum(table):
	result = grouptools.group_maximum(table, ['treatment'], 'body.weight').set_index('treatment')

	assert result['y'].to_dict() == {'0': 8.0, '10': 9.0, '50': 4.0}
