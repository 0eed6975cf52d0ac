from pathlib import Path

import utilities


class Filenames:
	""" Holds the filenames for the tables and figures generated by the analysis.

		Output File Structure
		- data/
			- summary.*.tsv
			- models/ (one set of files per model: coefficients, anova, summary, residuals)
			- tukey/
		- figures/
	"""

	def __init__(self, folder: Path):
		self.table_format = '.tsv'
		self.figure_format = '.png'
		folder = utilities.checkdir(folder)
		self.folder = folder
		self.folder_data = utilities.checkdir(folder / "data")
		self.folder_figure = utilities.checkdir(folder / "figures")

		# Tables
		# The joined and filtered biometrics table, including the derived `treatment`, `FultonK`, and `log.MPconcentration` columns.
		self.filename_table_analysis = self.folder_data / ("perch" + self.table_format)
		self.filename_table_population = self.folder_data / ("population" + self.table_format)
		# Means and standard deviations of body weight and total length.
		self.filename_table_summary_concentration = self.folder_data / ("summary.concentration" + self.table_format)
		self.filename_table_summary_treatment = self.folder_data / ("summary.treatment" + self.table_format)

		# Each model gets its own set of files named after the model.
		self.folder_models = utilities.checkdir(self.folder_data / "models")
		# Every diagnostic test statistic from every model.
		self.filename_table_diagnostics = self.folder_data / ("diagnostics" + self.table_format)
		# Models that could not be fit, with the reason.
		self.filename_table_failures = self.folder_data / ("failures" + self.table_format)

		# Contains all paired tukey calculations.
		self.folder_tables_tukey = utilities.checkdir(self.folder_data / "tukey")
		self.filename_table_tukey = self.folder_tables_tukey / ("tukey" + self.table_format)
		self.filename_data_tukey = self.folder_tables_tukey / "tukeyhsdresults.json"
		self.filename_table_tukey_matrix = self.folder_tables_tukey / ("tukey.meandiff" + self.table_format)
		# The letters shown above each corral in the body weight figure.
		self.filename_table_letters = self.folder_tables_tukey / ("letters" + self.table_format)

		# Predictions
		self.filename_table_prediction_corral = self.folder_data / ("prediction.corral" + self.table_format)
		self.filename_table_prediction_survivors = self.folder_data / ("prediction.survivors" + self.table_format)

		# Figures
		self.filename_figure_weight = self.folder_figure / ("perch.weights" + self.figure_format)
		self.filename_figure_weight_survivors = self.folder_figure / ("perch.weights.survivors" + self.figure_format)
		self.filename_figure_fork_length = self.folder_figure / ("density.forklength" + self.figure_format)
		self.filename_figure_condition = self.folder_figure / ("density.condition" + self.figure_format)
		self.folder_figures_residuals = utilities.checkdir(self.folder_figure / "residuals")

	def model_files(self, name: str) -> 'ModelFilenames':
		return ModelFilenames(self.folder_models, name, self.table_format)

	def residual_figure(self, name: str) -> Path:
		return self.folder_figures_residuals / (f"residuals.{name}" + self.figure_format)


class ModelFilenames:
	def __init__(self, folder: Path, name: str, table_format: str):
		self.filename_coefficients = folder / (f"{name}.coefficients" + table_format)
		self.filename_anova = folder / (f"{name}.anova" + table_format)
		self.filename_summary = folder / f"{name}.summary.txt"
		self.filename_residuals = folder / (f"{name}.residuals" + table_format)
		self.filename_residuals_by_group = folder / (f"{name}.residuals.groups" + table_format)
