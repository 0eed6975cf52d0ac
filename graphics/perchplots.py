from pathlib import Path
from typing import *

import matplotlib
import matplotlib.pyplot as plt
import numpy
import pandas
import seaborn
from loguru import logger
from statsmodels.graphics import gofplots

from analysis.diagnostics import ResidualDiagnostic
from table_schema import BODY_WEIGHT, CONCENTRATION, CORRAL, END_COUNT, TREATMENT

CENTIMETERS_PER_INCH = 2.54


class PlotStyle:
	""" The appearance of every figure. Applied to each figure with `matplotlib.rc_context()` so the global matplotlib settings aren't changed."""

	def __init__(self, font_family: str = 'serif', font_size: int = 9, dpi: int = 600):
		self.font_family = font_family
		self.font_size = font_size
		self.legend_font_size = 10
		self.label_font_size = 10
		self.dpi = dpi

		# Figure sizes (width, height) in centimeters.
		self.size_weights = (8.84, 6)
		self.size_weight_survivors = (8.84, 9.5)
		self.size_density = (8.84, 12)
		self.size_residuals = (16, 7)

		self.palette_treatment = 'plasma'
		self.palette_concentration = 'inferno'
		self.palette_corral = 'turbo'
		self.color_missing = "lightgrey"
		self.alpha_points = 0.75
		self.alpha_density = 0.5
		self.alpha_ribbon = 0.4

	def rc(self) -> Dict[str, Any]:
		return {
			'font.family':      self.font_family,
			'font.size':        self.font_size,
			'axes.labelsize':   self.font_size,
			'xtick.labelsize':  self.font_size,
			'ytick.labelsize':  self.font_size,
			'legend.fontsize':  self.legend_font_size,
			'axes.grid':        False,
			'savefig.dpi':      self.dpi,
			'savefig.bbox':     'tight',
			'axes.spines.top':  True,
			'axes.spines.right': True
		}

	@staticmethod
	def figsize(size: Tuple[float, float]) -> Tuple[float, float]:
		return size[0] / CENTIMETERS_PER_INCH, size[1] / CENTIMETERS_PER_INCH

	@staticmethod
	def palette(name: str, labels: List[Any], reverse: bool = True) -> Dict[Any, Any]:
		""" Maps each label to a color. Reversed by default so that the highest concentrations get the darkest colors."""
		colors = seaborn.color_palette(name, len(labels))
		if reverse:
			colors = colors[::-1]
		return {label: color for label, color in zip(labels, colors)}


class PerchPlots:
	""" Renders the figures for the perch analysis. Nothing here changes the data or the models."""

	def __init__(self, style: Optional[PlotStyle] = None, seed: int = 5465):
		self.style = style if style is not None else PlotStyle()
		self.seed = seed
		self.label_concentration = "MP exposure concentration (particles L$^{-1}$)"
		self.label_weight = "Body Weight (g)"

	def save_figure(self, figure: plt.Figure, filename: Optional[Path]) -> None:
		if filename:
			figure.savefig(str(filename))
			logger.debug(f"Saved '{filename}'")
		plt.close(figure)

	@staticmethod
	def corral_order(table: pandas.DataFrame) -> List[str]:
		""" Orders the corrals by concentration so that corrals with the same treatment are next to each other."""
		corrals = table[[CORRAL, CONCENTRATION]].drop_duplicates(subset = [CORRAL]).sort_values(by = [CONCENTRATION, CORRAL])
		return [str(i) for i in corrals[CORRAL]]

	def plot_weights(self, table: pandas.DataFrame, letters: Optional[pandas.DataFrame] = None, filename: Optional[Path] = None) -> plt.Axes:
		"""
			Box plot of the body weight in each corral, colored by treatment, with the compact letter display above each box.
		Parameters
		----------
		table: pandas.DataFrame
			The analysis table.
		letters: Optional[pandas.DataFrame]
			One row per corral with the columns `corral`, `y` (the top of the box), and `label`.
		"""
		order = self.corral_order(table)
		treatments = list(table[TREATMENT].cat.categories) if hasattr(table[TREATMENT], 'cat') else sorted(table[TREATMENT].unique())
		palette = self.style.palette(self.style.palette_treatment, treatments)
		corral_treatment = table.drop_duplicates(subset = [CORRAL]).set_index(CORRAL)[TREATMENT]
		# Corrals missing from the population table have no treatment.
		corral_colors = {corral: palette.get(corral_treatment[corral], self.style.color_missing) for corral in order}
		tick_labels = [corral if pandas.isna(corral_treatment[corral]) else f"{corral}\n{corral_treatment[corral]}" for corral in order]

		with matplotlib.rc_context(self.style.rc()):
			figure, ax = plt.subplots(figsize = self.style.figsize(self.style.size_weights))
			data = table.assign(**{CORRAL: table[CORRAL].astype(str)})
			seaborn.boxplot(
				data = data, x = CORRAL, y = BODY_WEIGHT,
				hue = CORRAL, order = order, hue_order = order,
				palette = corral_colors,
				dodge = False,
				ax = ax
			)
			for patch in ax.patches:
				patch.set_alpha(self.style.alpha_points)
			legend = ax.get_legend()
			if legend is not None:
				legend.remove()

			if letters is not None:
				for _, row in letters.iterrows():
					corral = str(row[CORRAL])
					if corral not in order or pandas.isna(row['label']): continue
					ax.text(order.index(corral), row['y'] + 0.5, row['label'], ha = 'center', va = 'bottom', fontsize = self.style.label_font_size)

			ax.set_xticks(range(len(order)))
			ax.set_xticklabels(tick_labels)
			ax.set_xlabel(f"Corral\n{self.label_concentration}")
			ax.set_ylabel(self.label_weight)
			self.save_figure(figure, filename)
		return ax

	def plot_weight_survivors(self, table: pandas.DataFrame, prediction: pandas.DataFrame, filename: Optional[Path] = None) -> plt.Axes:
		""" Body weight against the number of surviving perch, with the model prediction and its confidence band."""
		random_state = numpy.random.default_rng(self.seed)
		concentrations = sorted(table[CONCENTRATION].dropna().unique())
		palette = self.style.palette(self.style.palette_concentration, concentrations)

		with matplotlib.rc_context(self.style.rc()):
			figure, ax = plt.subplots(figsize = self.style.figsize(self.style.size_weight_survivors))
			prediction = prediction.sort_values(by = END_COUNT)
			ax.fill_between(prediction[END_COUNT], prediction['conf.low'], prediction['conf.high'], color = 'grey', alpha = self.style.alpha_ribbon,
				linewidth = 0)
			ax.plot(prediction[END_COUNT], prediction['predicted'], color = 'black')

			for concentration in concentrations:
				subset = table[table[CONCENTRATION] == concentration]
				jitter = random_state.uniform(-0.1, 0.1, size = len(subset))
				ax.scatter(
					subset[END_COUNT] + jitter, subset[BODY_WEIGHT],
					color = palette[concentration], edgecolor = 'black', alpha = self.style.alpha_points,
					label = f"{concentration:g}"
				)
			ax.set_ylim(0, table[BODY_WEIGHT].max() * 1.1)
			ax.set_xlabel("Number of Surviving Yellow Perch")
			ax.set_ylabel("Final " + self.label_weight)
			ax.legend(title = self.label_concentration, loc = 'upper center', bbox_to_anchor = (0.5, -0.15), ncol = (len(concentrations) + 1) // 2,
				frameon = False)
			self.save_figure(figure, filename)
		return ax

	def plot_density(self, table: pandas.DataFrame, column: str, label: str, filename: Optional[Path] = None) -> List[plt.Axes]:
		""" Density of `column` in each corral, with one panel per concentration."""
		concentrations = sorted(table[CONCENTRATION].dropna().unique())
		corrals = self.corral_order(table)
		palette = self.style.palette(self.style.palette_corral, corrals, reverse = False)

		with matplotlib.rc_context(self.style.rc()):
			figure, axes = plt.subplots(len(concentrations), 1, sharex = True, squeeze = False,
				figsize = self.style.figsize(self.style.size_density))
			axes = list(axes[:, 0])
			for ax, concentration in zip(axes, concentrations):
				subset = table[(table[CONCENTRATION] == concentration)].dropna(subset = [column])
				for corral, group in subset.groupby(CORRAL):
					if group[column].nunique() < 2:
						logger.debug(f"Skipping the density of '{column}' in corral {corral}: not enough distinct values.")
						continue
					seaborn.kdeplot(data = group, x = column, ax = ax, fill = True, alpha = self.style.alpha_density, color = palette[str(corral)],
						label = str(corral))
				ax.set_ylabel("Density")
				ax.set_title(f"{concentration:g}", loc = 'right')
				if ax.get_legend_handles_labels()[0]:
					ax.legend(title = "Corral", frameon = False)
			axes[-1].set_xlabel(label)
			self.save_figure(figure, filename)
		return axes

	def plot_residuals(self, diagnostic: ResidualDiagnostic, filename: Optional[Path] = None) -> List[plt.Axes]:
		"""
			Residuals against the fitted values and a QQ plot. Raw residuals are compared to a normal distribution,
			simulated (scaled) residuals to a uniform distribution.
		"""
		column = diagnostic.residual_column
		residuals = diagnostic.table[column].dropna().values

		with matplotlib.rc_context(self.style.rc()):
			figure, (ax_fitted, ax_qq) = plt.subplots(1, 2, figsize = self.style.figsize(self.style.size_residuals))
			ax_fitted.scatter(diagnostic.table['fitted'], diagnostic.table[column], color = 'black', alpha = self.style.alpha_points, s = 8)
			ax_fitted.axhline(0.5 if column == 'scaled.residual' else 0, color = 'tab:red', linestyle = ':')
			ax_fitted.set_xlabel("Fitted")
			ax_fitted.set_ylabel(column)

			if column == 'scaled.residual':
				expected = (numpy.arange(1, len(residuals) + 1) - 0.5) / len(residuals)
				ax_qq.scatter(expected, numpy.sort(residuals), color = 'black', s = 8)
				ax_qq.plot([0, 1], [0, 1], color = 'tab:red')
				ax_qq.set_xlabel("Expected (uniform)")
				ax_qq.set_ylabel("Observed")
			else:
				gofplots.qqplot(residuals, fit = True, line = '45', ax = ax_qq)
			figure.suptitle(f"{diagnostic.model} ({diagnostic.status})")
			self.save_figure(figure, filename)
		return [ax_fitted, ax_qq]
