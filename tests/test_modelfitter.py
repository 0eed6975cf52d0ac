from pathlib import Path

import pandas
import pytest

import utilities
from analysis import modelfitter
from analysis.anovacalc import FixedEffectComparison
from analysis.fittedmodel import ModelFitError, build_formula
from analysis.regression import BetaRegression, LinearRegression

folder_data = Path(__file__).parent / "data"


@pytest.fixture(scope = 'module')
def table() -> pandas.DataFrame:
	biometrics, population = utilities.load_tables(folder_data / "perch_biometrics.csv", folder_data / "fish_pop.csv")
	return utilities.prepare_table(utilities.join_tables(biometrics, population))


@pytest.fixture(scope = 'module')
def population() -> pandas.DataFrame:
	_, population = utilities.load_tables(folder_data / "perch_biometrics.csv", folder_data / "fish_pop.csv")
	population = utilities.add_survival_ratio(population)
	return utilities.add_log_column(population, 'MPconcentration', 6)


@pytest.fixture(scope = 'module')
def mixed_model(table) -> LinearRegression:
	return modelfitter.fit(table, 'body.weight', ['log.MPconcentration'], random_effect = 'corral')


def test_build_formula(table):
	result = build_formula('body.weight', ['corral', 'YP.end'], table)
	assert result == 'Q("body.weight") ~ C(Q("corral")) + Q("YP.end")'


def test_fit_group_comparison(table):
	model = modelfitter.fit(table, 'body.weight', ['corral'])

	assert isinstance(model, FixedEffectComparison)
	assert model.test.name == 'F'
	assert model.test.df == (7.0, 40.0)
	assert model.test.pvalue < 0.05
	assert list(model.anova_table.columns) == ['df', 'sum_sq', 'mean_sq', 'F', 'PR(>F)']
	assert list(model.coefficients.columns) == ['estimate', 'std.error', 'statistic', 'pvalue', 'lower', 'upper']
	assert len(model.coefficients) == 8


def test_group_comparison_only_uses_complete_rows(table):
	model = modelfitter.fit(table, 'gonad.weight', ['corral'])

	assert len(model.table) == len(table) - table['gonad.weight'].isna().sum()
	assert model.group_means().loc['H'] == pytest.approx(table.loc[table['corral'] == 'H', 'gonad.weight'].mean())


def test_fit_with_one_group(table):
	with pytest.raises(ModelFitError):
		modelfitter.fit(table[table['corral'] == 'A'], 'body.weight', ['corral'])


def test_fit_regression(table):
	model = modelfitter.fit(table, 'body.weight', ['log.MPconcentration', 'YP.end'])

	assert isinstance(model, LinearRegression)
	assert not model.is_mixed
	assert list(model.coefficients.index) == ['Intercept', 'Q("log.MPconcentration")', 'Q("YP.end")']
	# Fewer survivors means more food for the perch that are left.
	assert model.coefficients.loc['Q("YP.end")', 'estimate'] < 0
	for _, row in model.coefficients.iterrows():
		assert row['lower'] <= row['estimate'] <= row['upper']


def test_fit_mixed_model(mixed_model):
	assert isinstance(mixed_model, LinearRegression)
	assert mixed_model.is_mixed
	assert mixed_model.test.name == 'likelihood ratio'
	assert list(mixed_model.coefficients.index) == ['Intercept', 'Q("log.MPconcentration")']
	assert set(mixed_model.variance_components.keys()) == {'corral', 'Residual'}


def test_confounded_random_effect(table):
	# Every corral has its own combination of concentration and survivors.
	with pytest.raises(ModelFitError, match = "Drop the 'corral' random effect"):
		modelfitter.fit(table, 'body.weight', ['log.MPconcentration', 'YP.end'], random_effect = 'corral')


def test_rank_deficient_design(table):
	table = table.assign(duplicate = table['log.MPconcentration'] * 2)
	with pytest.raises(ModelFitError, match = "rank-deficient"):
		modelfitter.fit(table, 'body.weight', ['log.MPconcentration', 'duplicate'])


def test_no_complete_rows(table):
	table = table.assign(**{'gonad.weight': float('nan')})
	with pytest.raises(ModelFitError):
		modelfitter.fit(table, 'gonad.weight', ['corral'])


def test_fit_beta_regression(population):
	model = modelfitter.fit(population, 'surv.ratio', ['log.MPconcentration'], family = 'beta')

	assert isinstance(model, BetaRegression)
	assert model.precision > 0
	assert list(model.coefficients.index) == ['Intercept', 'Q("log.MPconcentration")', 'precision']
	fitted = model.fitted()
	assert ((fitted > 0) & (fitted < 1)).all()


def test_beta_regression_outside_bounds(population):
	population = population.copy()
	population.loc[0, 'surv.ratio'] = 1.0
	with pytest.raises(ModelFitError, match = "between 0 and 1"):
		modelfitter.fit(population, 'surv.ratio', ['log.MPconcentration'], family = 'beta')


@pytest.mark.parametrize(
	"family, link",
	[
		('poisson', None),
		('gaussian', 'logit'),
		('beta', 'identity')
	]
)
def test_unsupported_family_or_link(population, family, link):
	with pytest.raises(ValueError):
		modelfitter.fit(population, 'surv.ratio', ['log.MPconcentration'], family = family, link = link)


def test_drop_random_effect(mixed_model):
	model = modelfitter.drop_random_effect(mixed_model)

	assert model is not mixed_model
	assert not model.is_mixed
	assert mixed_model.is_mixed
	assert model.specification.fixed_effects == mixed_model.specification.fixed_effects


def test_drop_missing_random_effect(table):
	model = modelfitter.fit(table, 'body.weight', ['log.MPconcentration'])
	with pytest.raises(ValueError):
		modelfitter.drop_random_effect(model)


def test_add_fixed_effect(table):
	model = modelfitter.fit(table, 'body.weight', ['log.MPconcentration'])
	result = modelfitter.add_fixed_effect(model, 'YP.end')

	assert result.specification.fixed_effects == ('log.MPconcentration', 'YP.end')
	assert model.specification.fixed_effects == ('log.MPconcentration',)
	with pytest.raises(ValueError):
		modelfitter.add_fixed_effect(result, 'YP.end')
