import json
from pathlib import Path
from typing import *

import pandas
from loguru import logger

import utilities
from graphics import PerchPlots, PlotStyle
from projectpaths import Filenames
from table_schema import CONDITION_INDEX, FORK_LENGTH


def save_table(table: pandas.DataFrame, filename: Path, index: bool = True):
	table.to_csv(filename, sep = "\t", index = index)
	logger.debug(f"Saved '{filename}'")


def save_anova(anova_table: pandas.DataFrame, filename: Path):
	anova_table.to_csv(filename, sep = '\t', index = True)


def save_regression(model: Any, filename: Path):
	""" Saves the statsmodels summary of the model, followed by the overall test."""
	text = model.summary()
	test = model.test
	text += f"\n\n{test.name}: statistic = {test.statistic:.6g}, df = {test.df}, p = {test.pvalue:.6g}\n"
	filename.write_text(text)


def save_model(name: str, model: Any, diagnostics: List[Any], filenames: Filenames):
	""" Saves the coefficients, summary, ANOVA table (if any), and residuals of a single model."""
	files = filenames.model_files(name)
	save_table(model.coefficients, files.filename_coefficients)
	save_regression(model, files.filename_summary)
	anova_table = getattr(model, 'anova_table', None)
	if anova_table is not None:
		save_anova(anova_table, files.filename_anova)

	residuals = [i.table.add_prefix(f"{i.kind}.") for i in diagnostics if i.kind in ('raw', 'simulated')]
	if residuals:
		save_table(pandas.concat(residuals, axis = 1), files.filename_residuals)
	groups = [i.table.reset_index().assign(kind = i.kind) for i in diagnostics if i.kind.startswith('by.')]
	if groups:
		save_table(pandas.concat(groups, ignore_index = True), files.filename_residuals_by_group, index = False)


def save_table_tukey(comparison: Any, filename: Path, filename_json: Path):
	filename_json.write_text(json.dumps(utilities.tukey_to_json(comparison.result), indent = 4, sort_keys = True))
	save_table(comparison.table, filename, index = False)


def save_tukey_matrix(comparison: Any, filename: Path):
	matrix = comparison.squareform('meandiff').fillna(0)
	save_table(matrix, filename)


def save_results(results: Any, filenames: Filenames):
	""" Saves every table generated by `PerchAnalysis`. Models which couldn't be fit are listed in the failures table."""
	save_table(results.table, filenames.filename_table_analysis, index = False)
	save_table(results.population, filenames.filename_table_population, index = False)
	if 'concentration' in results.summaries:
		save_table(results.summaries['concentration'], filenames.filename_table_summary_concentration)
	if 'treatment' in results.summaries:
		save_table(results.summaries['treatment'], filenames.filename_table_summary_treatment)

	for name, model in results.models.items():
		save_model(name, model, results.diagnostics.get(name, []), filenames)
	save_table(results.diagnostics_table(), filenames.filename_table_diagnostics, index = False)
	save_table(results.failures_table(), filenames.filename_table_failures, index = False)

	# There is only one set of pairwise comparisons (body weight between corrals).
	for name, comparison in results.comparisons.items():
		save_table_tukey(comparison, filenames.filename_table_tukey, filenames.filename_data_tukey)
		save_tukey_matrix(comparison, filenames.filename_table_tukey_matrix)
	if results.letters is not None:
		save_table(results.letters, filenames.filename_table_letters, index = False)

	prediction_files = {
		'weight.corral':                  filenames.filename_table_prediction_corral,
		'weight.concentration.survivors': filenames.filename_table_prediction_survivors
	}
	for name, prediction in results.predictions.items():
		filename = prediction_files.get(name, filenames.folder_data / f"prediction.{name}{filenames.table_format}")
		save_table(prediction, filename, index = False)


class FigureWorkflow:
	""" Generates the figures using the results of `PerchAnalysis`. Figures whose model couldn't be fit are skipped."""

	def __init__(self, filenames: Filenames, style: Optional[PlotStyle] = None, seed: int = 5465):
		self.filenames = filenames
		self.plotter = PerchPlots(style, seed = seed)

	def run(self, results: Any):
		logger.debug(f"Saving the figures...")
		table = results.table
		self.plotter.plot_weights(table, results.letters, filename = self.filenames.filename_figure_weight)

		prediction = results.predictions.get('weight.concentration.survivors')
		if prediction is not None:
			self.plotter.plot_weight_survivors(table, prediction, filename = self.filenames.filename_figure_weight_survivors)
		else:
			logger.warning(f"Skipping the body weight vs. survivors figure: there is no prediction.")

		self.plotter.plot_density(table, FORK_LENGTH, "Fork Length (mm)", filename = self.filenames.filename_figure_fork_length)
		self.plotter.plot_density(table, CONDITION_INDEX, "Fulton's K", filename = self.filenames.filename_figure_condition)

		for name, items in results.diagnostics.items():
			for diagnostic in items:
				if diagnostic.kind not in ('raw', 'simulated'):
					continue
				filename = self.filenames.residual_figure(f"{name}.{diagnostic.kind}")
				self.plotter.plot_residuals(diagnostic, filename = filename)
