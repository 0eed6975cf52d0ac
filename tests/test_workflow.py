from pathlib import Path

import pandas
import pytest

from analysis import grouptools, workflow
from analysis.workflow import PerchAnalysis
from projectpaths import Filenames

folder_data = Path(__file__).parent / "data"
filename_biometrics = folder_data / "perch_biometrics.csv"
filename_population = folder_data / "fish_pop.csv"


@pytest.fixture(scope = 'module')
def analysis_workflow() -> PerchAnalysis:
	return PerchAnalysis(n_simulations = 100, seed = 5465)


@pytest.fixture(scope = 'module')
def results(analysis_workflow) -> workflow.PerchAnalysisResults:
	biometrics, population = analysis_workflow.load(filename_biometrics, filename_population)
	return analysis_workflow.analyze(biometrics, population)


def test_analysis_table(results):
	assert len(results.table) == 48
	assert results.table['treatment'].nunique() == 5


def test_models_are_fit(results):
	for name in [workflow.MODEL_WEIGHT_CORRAL, workflow.MODEL_WEIGHT_SURVIVORS, workflow.MODEL_SURVIVAL, workflow.MODEL_CONDITION,
		workflow.MODEL_GONAD]:
		assert name in results.models
		assert name not in results.failures


def test_summaries(results):
	summary = results.summaries['treatment']
	assert list(summary.index) == ['0 (1)', '0 (2)', '10', '50', '200']
	assert summary['n.body.weight'].sum() == 48

	summary = results.summaries['concentration']
	assert len(summary) == 8

	# The two control corrals share a concentration but not a treatment.
	assert len(grouptools.summarize_groups(results.table, 'MPconcentration', 'body.weight')) == 4


def test_letters(results):
	letters = results.letters.set_index('corral')
	assert len(letters) == 8
	assert letters['label'].notna().all()
	assert not set(letters.loc['G', 'label']) & set(letters.loc['H', 'label'])
	assert letters.loc['H', 'y'] == pytest.approx(11.1)


def test_survival_uses_the_population_table(results):
	model = results.models[workflow.MODEL_SURVIVAL]
	assert len(model.table) == 8
	assert 'surv.ratio' in results.population.columns
	# Too few mesocosms for the simulated residuals.
	simulated = [i for i in results.diagnostics[workflow.MODEL_SURVIVAL] if i.kind == 'simulated'][0]
	assert simulated.is_inconclusive


def test_each_model_is_diagnosed(results):
	for name in results.models:
		assert results.diagnostics[name]
	kinds = [i.kind for i in results.diagnostics[workflow.MODEL_WEIGHT_SURVIVORS]]
	assert kinds == ['simulated', 'by.corral']
	assert [i.kind for i in results.diagnostics[workflow.MODEL_GONAD]] == ['raw']


def test_predictions(results):
	prediction = results.predictions[workflow.MODEL_WEIGHT_SURVIVORS]
	assert prediction['YP.end'].nunique() == 8
	prediction = results.predictions[workflow.MODEL_WEIGHT_CORRAL]
	assert 'YP.end' in prediction.columns


def test_diagnostics_table(results):
	table = results.diagnostics_table()
	assert list(table.columns[:3]) == ['name', 'kind', 'model']
	assert set(table['status'].unique()) <= {'computed', 'inconclusive'}


def test_failed_model_is_recorded(analysis_workflow):
	biometrics, population = analysis_workflow.load(filename_biometrics, filename_population)
	biometrics['gonad.weight'] = float('nan')
	results = analysis_workflow.analyze(biometrics, population)

	assert workflow.MODEL_GONAD in results.failures
	assert workflow.MODEL_GONAD not in results.models
	# The rest of the analysis still runs.
	assert workflow.MODEL_WEIGHT_CORRAL in results.models
	assert list(results.failures_table().columns) == ['name', 'reason']


def test_run_saves_tables(analysis_workflow, tmp_path):
	analysis_workflow.run(filename_biometrics, filename_population, tmp_path, plot = False)
	filenames = Filenames(tmp_path)

	for filename in [filenames.filename_table_analysis, filenames.filename_table_population, filenames.filename_table_summary_treatment,
		filenames.filename_table_diagnostics, filenames.filename_table_failures, filenames.filename_table_tukey, filenames.filename_data_tukey,
		filenames.filename_table_tukey_matrix, filenames.filename_table_letters, filenames.filename_table_prediction_survivors]:
		assert filename.exists(), filename

	files = filenames.model_files(workflow.MODEL_WEIGHT_CORRAL)
	assert files.filename_anova.exists()
	assert files.filename_coefficients.exists()
	tukey = pandas.read_csv(filenames.filename_table_tukey, sep = "\t")
	assert len(tukey) == 28
	assert not list(filenames.folder_figure.glob("*.png"))


def test_survivors_model_respecifies_the_mixed_model(results):
	mixed = results.models[workflow.MODEL_WEIGHT_MIXED]
	model = results.models[workflow.MODEL_WEIGHT_SURVIVORS]

	assert model is not mixed
	assert model.specification.random_effect is None
	assert model.specification.fixed_effects == ('log.MPconcentration', 'YP.end')
	# The mixed model is left as it was.
	assert mixed.specification.random_effect == 'corral'
	assert mixed.specification.fixed_effects == ('log.MPconcentration',)


def test_run_with_a_corral_missing_from_the_population_table(tmp_path):
	population = pandas.read_csv(filename_population)
	filename = tmp_path / "population.csv"
	population[population['corral'] != 'H'].to_csv(filename, index = False)

	results = PerchAnalysis(n_simulations = 50).run(filename_biometrics, filename, tmp_path / "output")
	filenames = Filenames(tmp_path / "output")

	# The fish in corral H are kept, but have no population data.
	assert (results.table['corral'] == 'H').sum() == 6
	assert results.table.loc[results.table['corral'] == 'H', 'treatment'].isna().all()
	assert filenames.filename_table_analysis.exists()
	assert filenames.filename_figure_weight.exists()
