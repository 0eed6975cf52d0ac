"""
	Column names used by the input tables and a reminder of how each table in the analysis is formatted.
"""
from typing import List, Optional

# The column names are fixed by the field data sheets. Several contain a period, so they can't be used as attribute names.
CORRAL = 'corral'
CONCENTRATION = 'MPconcentration'
BODY_WEIGHT = 'body.weight'
TOTAL_LENGTH = 'TL'
FORK_LENGTH = 'FL'
GONAD_WEIGHT = 'gonad.weight'
START_COUNT = 'YP.start'
END_COUNT = 'YP.end'

# Derived columns
TREATMENT = 'treatment'
CONDITION_INDEX = 'FultonK'
SURVIVAL_RATIO = 'surv.ratio'
LOG_CONCENTRATION = 'log.' + CONCENTRATION

# Added to the concentration before taking the log so that the control corrals stay finite.
CONCENTRATION_OFFSET = 6

REQUIRED_BIOMETRICS: List[str] = [CORRAL, BODY_WEIGHT, TOTAL_LENGTH, FORK_LENGTH, GONAD_WEIGHT]
NUMERIC_BIOMETRICS: List[str] = [CONCENTRATION, BODY_WEIGHT, TOTAL_LENGTH, FORK_LENGTH, GONAD_WEIGHT]
REQUIRED_POPULATION: List[str] = [CORRAL, START_COUNT, END_COUNT]
NUMERIC_POPULATION: List[str] = [CONCENTRATION, START_COUNT, END_COUNT]


# Reminder of the format of each table.
class TableSchemaBiometrics:
	# One row per measured fish.
	corral: str
	MPconcentration: Optional[float]  # Usually supplied by the population table instead.
	body_weight: float  # Actual name is `body.weight`
	TL: float
	FL: float
	gonad_weight: float  # Actual name is `gonad.weight`


class TableSchemaPopulation:
	# One row per mesocosm. `corral` is unique.
	corral: str
	MPconcentration: float
	YP_start: int  # Actual name is `YP.start`
	YP_end: int  # Actual name is `YP.end`
	surv_ratio: float  # Derived. Actual name is `surv.ratio`


class TableSchemaAnalysis(TableSchemaBiometrics, TableSchemaPopulation):
	# The biometrics table left-joined to the population table, after removing the rows without a total length.
	treatment: str  # Concentration label, with the control corrals split into '0 (1)' and '0 (2)'
	FultonK: float
	log_MPconcentration: float  # Actual name is `log.MPconcentration`


class TableSchemaGroupSummary:
	# Indexed by the grouping columns. One set of columns per summarized response.
	n: int  # Actual name is `n.{column}`
	mean: float  # Actual name is `mean.{column}`
	sd: float  # Actual name is `sd.{column}`. NaN when fewer than two values were observed.


class TableSchemaAnova:
	# Contains the results of the ANOVA analysis
	df: int
	sum_sq: float
	mean_sq: float
	F: float
	PR: float  # Actual name is PR(>F)


class TableSchemaCoefficients:
	term: str
	estimate: float
	std_error: float  # Actual name is `std.error`
	statistic: float
	pvalue: float
	lower: float
	upper: float


class TableSchemaTukey:
	group1: str
	group2: str
	meandiff: float
	p_adj: float  # Actual name: p-adj
	lower: float
	upper: float
	reject: bool
