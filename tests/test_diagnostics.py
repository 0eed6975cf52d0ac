from pathlib import Path

import numpy
import pandas
import pytest

import utilities
from analysis import diagnostics, modelfitter

folder_data = Path(__file__).parent / "data"


@pytest.fixture(scope = 'module')
def table() -> pandas.DataFrame:
	biometrics, population = utilities.load_tables(folder_data / "perch_biometrics.csv", folder_data / "fish_pop.csv")
	return utilities.prepare_table(utilities.join_tables(biometrics, population))


@pytest.fixture(scope = 'module')
def model(table):
	return modelfitter.fit(table, 'body.weight', ['log.MPconcentration', 'YP.end'])


@pytest.fixture(scope = 'module')
def comparison(table):
	return modelfitter.fit(table, 'body.weight', ['corral'])


def test_scaled_residuals():
	random_state = numpy.random.default_rng(1)
	simulations = random_state.normal(size = (5, 100))
	observed = numpy.array([-10, -0.5, 0, 0.5, 10])

	result = diagnostics.scaled_residuals(observed, simulations, random_state)

	assert ((result >= 0) & (result <= 1)).all()
	assert result[0] < 1 / 101
	assert result[-1] >= 100 / 101
	assert result[1] < result[2] < result[3]


def test_raw_residuals(comparison):
	result = diagnostics.raw_residuals(comparison)

	assert result.kind == 'raw'
	assert list(result.table.columns) == ['observed', 'fitted', 'residual']
	assert result.table['residual'].sum() == pytest.approx(0, abs = 1E-8)
	# The fitted values of a one-way comparison are the group means.
	assert result.table['fitted'].iloc[0] == pytest.approx(comparison.group_means()['A'])


def test_simulate_residuals(model):
	result = diagnostics.simulate_residuals(model, n_simulations = 100, seed = 5465)

	assert result.status == 'computed'
	assert not result.is_inconclusive
	assert len(result.table) == len(model.table)
	assert result.table['scaled.residual'].between(0, 1).all()
	for key in ['uniformity.pvalue', 'dispersion.ratio', 'dispersion.pvalue', 'outliers', 'outliers.pvalue']:
		assert not numpy.isnan(result.tests[key])
	assert 0 <= result.tests['uniformity.pvalue'] <= 1
	assert result.tests['dispersion.ratio'] > 0


def test_simulate_residuals_is_reproducible(model):
	left = diagnostics.simulate_residuals(model, n_simulations = 50, seed = 7)
	right = diagnostics.simulate_residuals(model, n_simulations = 50, seed = 7)

	assert left.table['scaled.residual'].tolist() == right.table['scaled.residual'].tolist()
	assert left.tests == right.tests


def test_simulate_residuals_with_few_observations(model):
	result = diagnostics.simulate_residuals(model, n_simulations = 50, seed = 1, minimum_observations = 100)

	assert result.status == 'inconclusive'
	assert "48" in result.reason
	assert numpy.isnan(result.tests['uniformity.pvalue'])
	# The residuals are still calculated.
	assert result.table['scaled.residual'].notna().all()


def test_residuals_by_group(model):
	simulated = diagnostics.simulate_residuals(model, n_simulations = 50, seed = 1)
	result = diagnostics.residuals_by_group(simulated, model.table['corral'])

	assert result.kind == 'by.corral'
	assert list(result.table.index) == list("ABCDEFGH")
	assert result.table['count'].sum() == len(model.table)
	assert 0 <= result.tests['levene.pvalue'] <= 1


def test_residuals_by_numeric_group(model):
	raw = diagnostics.raw_residuals(model)
	result = diagnostics.residuals_by_group(raw, model.table['YP.end'])

	assert result.kind == 'by.YP.end'
	assert len(result.table) == 8


def test_residuals_by_a_single_group(model):
	raw = diagnostics.raw_residuals(model)
	values = pandas.Series('all', index = model.table.index, name = 'everything')
	result = diagnostics.residuals_by_group(raw, values)

	assert result.is_inconclusive
	assert numpy.isnan(result.tests['levene.pvalue'])


def test_diagnostic_to_series(model):
	result = diagnostics.raw_residuals(model).to_series()
	assert result['kind'] == 'raw'
	assert result['model'] == model.formula
