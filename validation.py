import zipfile
from pathlib import Path
from typing import List, Union

import pandas
from loguru import logger

import table_schema


class LoadError(ValueError):
	""" Raised when an input table is missing or can't be parsed. Aborts the analysis."""


class ValidateTable:
	# makes sure the input tables are formatted correctly.
	def __init__(self):
		self.key_column = table_schema.CORRAL

	def read_table(self, filename: Union[str, Path]) -> pandas.DataFrame:
		filename = Path(filename)
		if not filename.exists():
			message = f"The table '{filename}' does not exist."
			raise LoadError(message)

		# The corral labels are categorical even when they look like numbers.
		dtypes = {self.key_column: str}
		if filename.suffix not in ('.csv', '.tsv', '.xlsx', '.xls'):
			message = f"Cannot determine the filetype of '{filename}'"
			raise LoadError(message)
		# ParserError, EmptyDataError and UnicodeDecodeError are all ValueErrors, as is an unrecognized excel format.
		# A truncated workbook fails in openpyxl with BadZipFile.
		try:
			if filename.suffix == '.csv':
				table = pandas.read_csv(filename, dtype = dtypes)
			elif filename.suffix == '.tsv':
				table = pandas.read_csv(filename, sep = '\t', dtype = dtypes)
			else:
				table = pandas.read_excel(filename, dtype = dtypes)
		except (ValueError, zipfile.BadZipFile) as exception:
			message = f"Could not parse '{filename}': {exception}"
			raise LoadError(message) from exception
		logger.debug(f"Read {len(table)} rows from '{filename.name}'")
		return table

	def _load(self, table: Union[Path, str, pandas.DataFrame]) -> pandas.DataFrame:
		if isinstance(table, pandas.DataFrame):
			return table.copy()
		# Assume it is a Pathlike object
		return self.read_table(table)

	def check_biometrics(self, table: Union[Path, str, pandas.DataFrame]) -> pandas.DataFrame:
		""" Loads the biometrics table (one row per fish) and makes sure it has the expected columns."""
		table = self._load(table)
		table = self._strip_column_labels(table)
		self._check_required_columns(table, table_schema.REQUIRED_BIOMETRICS, 'biometrics')
		table = self._check_numeric_columns(table, table_schema.NUMERIC_BIOMETRICS)
		table[self.key_column] = table[self.key_column].astype(str).str.strip()
		return table

	def check_population(self, table: Union[Path, str, pandas.DataFrame]) -> pandas.DataFrame:
		""" Loads the population table (one row per mesocosm) and makes sure it has the expected columns."""
		table = self._load(table)
		table = self._strip_column_labels(table)
		self._check_required_columns(table, table_schema.REQUIRED_POPULATION, 'population')
		table = self._check_numeric_columns(table, table_schema.NUMERIC_POPULATION)
		table[self.key_column] = table[self.key_column].astype(str).str.strip()

		# Each mesocosm should only be listed once, otherwise the join would duplicate fish.
		duplicated = table[self.key_column][table[self.key_column].duplicated()].unique()
		if len(duplicated) > 0:
			message = f"The population table has more than one row for corrals {list(duplicated)}"
			raise LoadError(message)
		return table

	@staticmethod
	def _strip_column_labels(table: pandas.DataFrame) -> pandas.DataFrame:
		table.columns = [str(i).strip() for i in table.columns]
		return table

	@staticmethod
	def _check_required_columns(table: pandas.DataFrame, columns: List[str], name: str) -> None:
		missing = [i for i in columns if i not in table.columns]
		if missing:
			message = f"The {name} table is missing the required columns {missing}. Got {list(table.columns)}"
			raise LoadError(message)

	@staticmethod
	def _check_numeric_columns(table: pandas.DataFrame, columns: List[str]) -> pandas.DataFrame:
		for column in columns:
			if column not in table.columns: continue
			try:
				table[column] = pandas.to_numeric(table[column], errors = 'raise')
			except (ValueError, TypeError) as exception:
				message = f"The column '{column}' contains a value that is not a number: {exception}"
				raise LoadError(message) from exception
		return table
