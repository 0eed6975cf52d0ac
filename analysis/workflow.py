from collections import defaultdict
from pathlib import Path
from typing import *

import pandas
from loguru import logger

import projectoutput
import table_schema
import utilities
from analysis import diagnostics, grouptools, modelfitter
from analysis.diagnostics import ResidualDiagnostic
from analysis.fittedmodel import FittedModel, ModelFitError
from analysis.marginal import marginal_predictions
from analysis.pairwise import PairwiseComparison, pairwise_comparison
from projectpaths import Filenames
from table_schema import (BODY_WEIGHT, CONCENTRATION, CONDITION_INDEX, CORRAL, END_COUNT, GONAD_WEIGHT, LOG_CONCENTRATION, SURVIVAL_RATIO,
	TOTAL_LENGTH, TREATMENT)

pandas.set_option('mode.chained_assignment', None)

# Names of the models fit by the analysis. Also used to name the output files.
MODEL_WEIGHT_CORRAL = 'weight.corral'
MODEL_WEIGHT_MIXED = 'weight.concentration.mixed'
MODEL_WEIGHT_SURVIVORS = 'weight.concentration.survivors'
MODEL_SURVIVAL = 'survival.concentration'
MODEL_CONDITION = 'condition.corral'
MODEL_GONAD = 'gonad.corral'


class PerchAnalysisResults:
	""" Everything calculated by `PerchAnalysis`. Models that couldn't be fit are listed in `failures` instead of `models`."""

	def __init__(self, table: pandas.DataFrame, population: pandas.DataFrame):
		self.table = table
		self.population = population
		self.summaries: Dict[str, pandas.DataFrame] = dict()
		self.models: Dict[str, FittedModel] = dict()
		self.diagnostics: Dict[str, List[ResidualDiagnostic]] = defaultdict(list)
		self.comparisons: Dict[str, PairwiseComparison] = dict()
		self.predictions: Dict[str, pandas.DataFrame] = dict()
		self.letters: Optional[pandas.DataFrame] = None
		self.failures: Dict[str, str] = dict()

	def diagnostics_table(self) -> pandas.DataFrame:
		rows = list()
		for name, items in self.diagnostics.items():
			for diagnostic in items:
				row = diagnostic.to_series()
				row['name'] = name
				rows.append(row)
		if not rows:
			return pandas.DataFrame()
		table = pandas.DataFrame(rows)
		return table[['name'] + [i for i in table.columns if i != 'name']]

	def failures_table(self) -> pandas.DataFrame:
		return pandas.DataFrame({'name': list(self.failures.keys()), 'reason': list(self.failures.values())})


class PerchAnalysis:
	"""
		Tests whether the microplastic concentration affected the growth, condition, gonad weight, or survival of the perch in each corral.
	Parameters
	----------
	reference_corral: Optional[str]
		The control corral labeled '0 (1)'.
	n_simulations: int
		The number of simulations used for the simulated residuals.
	seed: Optional[int]
		Makes the simulated residuals reproducible.
	minimum_observations: int
		Simulated residuals of models fit to fewer rows are reported as inconclusive.
	alpha: float
	"""

	def __init__(self, reference_corral: Optional[str] = None, n_simulations: int = 250, seed: Optional[int] = 5465,
			minimum_observations: int = 10, alpha: float = 0.05):
		self.reference_corral = reference_corral
		self.n_simulations = n_simulations
		self.seed = seed
		self.minimum_observations = minimum_observations
		self.alpha = alpha

	@staticmethod
	def load(filename_biometrics: Path, filename_population: Path) -> Tuple[pandas.DataFrame, pandas.DataFrame]:
		logger.info("Loading the biometrics and population tables...")
		return utilities.load_tables(filename_biometrics, filename_population)

	def prepare(self, biometrics: pandas.DataFrame, population: pandas.DataFrame) -> pandas.DataFrame:
		table = utilities.join_tables(biometrics, population)
		return utilities.prepare_table(table, self.reference_corral)

	def _fit(self, results: PerchAnalysisResults, name: str, table: pandas.DataFrame, response: str, fixed_effects: List[str],
			**kwargs) -> Optional[FittedModel]:
		""" Fits a model and saves it under `name`."""
		return self._record(results, name, lambda: modelfitter.fit(table, response, fixed_effects, alpha = self.alpha, **kwargs))

	@staticmethod
	def _record(results: PerchAnalysisResults, name: str, fitter: Callable[[], FittedModel]) -> Optional[FittedModel]:
		""" Saves the model returned by `fitter` under `name`. A model that can't be fit is logged and recorded as a failure."""
		try:
			model = fitter()
		except ModelFitError as exception:
			logger.error(f"Could not fit the '{name}' model: {exception}")
			results.failures[name] = str(exception)
			return None
		results.models[name] = model
		return model

	def _simulate(self, results: PerchAnalysisResults, name: str, model: FittedModel) -> ResidualDiagnostic:
		diagnostic = diagnostics.simulate_residuals(model, self.n_simulations, self.seed, self.minimum_observations)
		results.diagnostics[name].append(diagnostic)
		return diagnostic

	def summarize(self, results: PerchAnalysisResults) -> None:
		""" Means and standard deviations of body weight and total length for each treatment."""
		columns = [BODY_WEIGHT, TOTAL_LENGTH]
		results.summaries['concentration'] = grouptools.summarize_groups(results.table, [CONCENTRATION, END_COUNT], columns)
		results.summaries['treatment'] = grouptools.summarize_groups(results.table, TREATMENT, columns)

	def compare_body_weight(self, results: PerchAnalysisResults) -> None:
		""" Compares body weight between corrals (ANOVA + Tukey) and assigns the letters used in the body weight figure."""
		model = self._fit(results, MODEL_WEIGHT_CORRAL, results.table, BODY_WEIGHT, [CORRAL])
		if model is None:
			return
		results.diagnostics[MODEL_WEIGHT_CORRAL].append(diagnostics.raw_residuals(model))

		comparison = pairwise_comparison(model)
		results.comparisons[MODEL_WEIGHT_CORRAL] = comparison
		letters = comparison.letters()
		logger.info(f"Body weight letters: {letters}")

		labels = grouptools.group_maximum(results.table, [CORRAL, CONCENTRATION, TREATMENT], BODY_WEIGHT)
		labels['label'] = labels[CORRAL].astype(str).map(letters)
		results.letters = labels

		prediction = marginal_predictions(model, CORRAL)
		results.predictions[MODEL_WEIGHT_CORRAL] = prediction.merge(results.population, on = CORRAL, how = 'left')

	def regress_body_weight(self, results: PerchAnalysisResults) -> None:
		""" Regresses body weight on the (log) concentration, first with a random intercept per corral and then with the number of survivors."""
		mixed = self._fit(results, MODEL_WEIGHT_MIXED, results.table, BODY_WEIGHT, [LOG_CONCENTRATION], random_effect = CORRAL)
		if mixed is not None:
			simulated = self._simulate(results, MODEL_WEIGHT_MIXED, mixed)
			# Patterns in the residuals across corrals may be driven by mortality.
			for column in [CORRAL, END_COUNT]:
				results.diagnostics[MODEL_WEIGHT_MIXED].append(diagnostics.residuals_by_group(simulated, mixed.table[column]))

		# Every mesocosm has a unique combination of concentration and survivors, so the corral random effect is dropped before the
		# survivors are added.
		if mixed is not None:
			model = self._record(
				results, MODEL_WEIGHT_SURVIVORS,
				lambda: modelfitter.add_fixed_effect(modelfitter.drop_random_effect(mixed), END_COUNT)
			)
		else:
			model = self._fit(results, MODEL_WEIGHT_SURVIVORS, results.table, BODY_WEIGHT, [LOG_CONCENTRATION, END_COUNT])
		if model is None:
			return
		simulated = self._simulate(results, MODEL_WEIGHT_SURVIVORS, model)
		results.diagnostics[MODEL_WEIGHT_SURVIVORS].append(diagnostics.residuals_by_group(simulated, model.table[CORRAL]))
		results.predictions[MODEL_WEIGHT_SURVIVORS] = marginal_predictions(model, END_COUNT)

	def compare_survival(self, results: PerchAnalysisResults) -> None:
		""" Checks that mortality wasn't related to the concentration (beta regression on the survival ratio)."""
		population = results.population
		if CONCENTRATION not in population.columns:
			concentrations = results.table[[CORRAL, CONCENTRATION]].drop_duplicates(subset = [CORRAL])
			population = population.merge(concentrations, on = CORRAL, how = 'left')
		population = utilities.add_survival_ratio(population)
		population = utilities.add_log_column(population, CONCENTRATION, table_schema.CONCENTRATION_OFFSET)
		results.population = population

		model = self._fit(results, MODEL_SURVIVAL, population, SURVIVAL_RATIO, [LOG_CONCENTRATION], family = 'beta')
		if model is None:
			return
		# There are usually too few mesocosms for the simulated residuals to say much.
		self._simulate(results, MODEL_SURVIVAL, model)
		results.diagnostics[MODEL_SURVIVAL].append(diagnostics.raw_residuals(model))

	def compare_condition(self, results: PerchAnalysisResults) -> None:
		""" Compares Fulton's condition factor between corrals."""
		model = self._fit(results, MODEL_CONDITION, results.table, CONDITION_INDEX, [CORRAL])
		if model is not None:
			self._simulate(results, MODEL_CONDITION, model)

	def compare_gonad_weight(self, results: PerchAnalysisResults) -> None:
		""" Compares gonad weight between corrals. Only fish with a measured gonad weight are included."""
		model = self._fit(results, MODEL_GONAD, results.table, GONAD_WEIGHT, [CORRAL])
		if model is not None:
			results.diagnostics[MODEL_GONAD].append(diagnostics.raw_residuals(model))

	def analyze(self, biometrics: pandas.DataFrame, population: pandas.DataFrame) -> PerchAnalysisResults:
		""" Runs every step of the analysis on tables that have already been loaded. Nothing is saved."""
		table = self.prepare(biometrics, population)
		results = PerchAnalysisResults(table, population)

		logger.info("Summarizing body weight and length...")
		self.summarize(results)
		logger.info("Comparing body weight between corrals...")
		self.compare_body_weight(results)
		logger.info("Regressing body weight against concentration...")
		self.regress_body_weight(results)
		logger.info("Checking survival...")
		self.compare_survival(results)
		logger.info("Comparing condition and gonad weight...")
		self.compare_condition(results)
		self.compare_gonad_weight(results)

		if results.failures:
			logger.warning(f"{len(results.failures)} models could not be fit: {list(results.failures)}")
		return results

	def run(self, filename_biometrics: Path, filename_population: Path, project_folder: Path, plot: bool = True) -> PerchAnalysisResults:
		biometrics, population = self.load(filename_biometrics, filename_population)
		results = self.analyze(biometrics, population)

		logger.info("Saving tables...")
		filenames = Filenames(project_folder)
		projectoutput.save_results(results, filenames)
		if plot:
			logger.info("Saving figures...")
			figure_workflow = projectoutput.FigureWorkflow(filenames)
			figure_workflow.run(results)
		return results
