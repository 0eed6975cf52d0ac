from pathlib import Path

import matplotlib

matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pytest

from analysis.workflow import MODEL_WEIGHT_SURVIVORS, PerchAnalysis
from graphics import PerchPlots, PlotStyle
from projectoutput import FigureWorkflow
from projectpaths import Filenames

folder_data = Path(__file__).parent / "data"


@pytest.fixture(scope = 'module')
def results():
	analysis_workflow = PerchAnalysis(n_simulations = 50)
	return analysis_workflow.analyze(*analysis_workflow.load(folder_data / "perch_biometrics.csv", folder_data / "fish_pop.csv"))


@pytest.fixture
def plotter() -> PerchPlots:
	return PerchPlots(PlotStyle(dpi = 72))


def test_plot_style_does_not_change_the_global_settings(plotter, results):
	font_family = list(plt.rcParams['font.family'])
	plotter.plot_weights(results.table, results.letters)
	assert list(plt.rcParams['font.family']) == font_family


def test_figure_size():
	style = PlotStyle()
	width, height = style.figsize(style.size_weights)
	assert width == pytest.approx(8.84 / 2.54)
	assert height == pytest.approx(6 / 2.54)


def test_corral_order(results):
	assert PerchPlots.corral_order(results.table) == list("ABCDEFGH")


def test_plot_weights(plotter, results, tmp_path):
	filename = tmp_path / "weights.png"
	ax = plotter.plot_weights(results.table, results.letters, filename = filename)

	assert filename.exists()
	labels = [i.get_text() for i in ax.texts]
	assert labels == [i for i in results.letters['label']]


def test_plot_weight_survivors(plotter, results, tmp_path):
	filename = tmp_path / "survivors.png"
	plotter.plot_weight_survivors(results.table, results.predictions[MODEL_WEIGHT_SURVIVORS], filename = filename)
	assert filename.exists()


def test_plot_density(plotter, results, tmp_path):
	filename = tmp_path / "density.png"
	axes = plotter.plot_density(results.table, 'FL', "Fork Length (mm)", filename = filename)

	assert filename.exists()
	assert len(axes) == results.table['MPconcentration'].nunique()


def test_figure_workflow(results, tmp_path):
	filenames = Filenames(tmp_path)
	FigureWorkflow(filenames, style = PlotStyle(dpi = 72)).run(results)

	assert filenames.filename_figure_weight.exists()
	assert filenames.filename_figure_weight_survivors.exists()
	assert filenames.filename_figure_fork_length.exists()
	assert filenames.filename_figure_condition.exists()
	assert list(filenames.folder_figures_residuals.glob("*.png"))
