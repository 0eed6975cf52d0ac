import sys
from pathlib import Path
from typing import *

from loguru import logger

import analysis
from validation import LoadError

TRACE = False
if TRACE:
	logger.remove()  # Need to remove the default sink so that the logger doesn't print messages twice.
	logger.add(sys.stderr, level = "TRACE")


def get_run_label() -> str:
	""" Generates the name of an output folder based on the current date and time."""
	import datetime
	current_date = datetime.datetime.now()
	date = str(current_date.date())
	time = current_date.time()
	time_string = f"{time.hour}_{time.minute}_{time.second}"
	return date + 'T' + time_string


def create_parser(args: List[str] = None):
	import argparse
	parser = argparse.ArgumentParser(
		description = "Tests whether microplastic exposure affected the growth, condition, and survival of yellow perch."
	)

	parser.add_argument(
		"biometrics",
		help = "A table with one row per fish and the columns 'corral', 'body.weight', 'TL', 'FL', and 'gonad.weight'. "
			   "Can be a .csv, .tsv, or .xlsx file.",
		type = Path
	)
	parser.add_argument(
		"population",
		help = "A table with one row per corral and the columns 'corral', 'MPconcentration', 'YP.start', and 'YP.end'.",
		type = Path
	)
	parser.add_argument(
		"--output",
		help = "The folder to save all of the output files. If not given, an output folder will be generated next to the biometrics table.",
		type = Path,
		default = None
	)
	parser.add_argument(
		"--reference-corral",
		help = "The control corral labeled '0 (1)'. Defaults to the first control corral alphabetically.",
		type = str,
		default = None,
		dest = "reference_corral"
	)
	parser.add_argument(
		"--simulations",
		help = "The number of simulations used to calculate the simulated residuals.",
		type = int,
		default = 250
	)
	parser.add_argument(
		"--seed",
		help = "The seed used for the simulated residuals.",
		type = int,
		default = 5465
	)
	parser.add_argument(
		"--no-figures",
		help = "Only save the tables.",
		action = "store_false",
		dest = "plot"
	)
	if args:
		args = parser.parse_args(args)
	else:
		args = parser.parse_args()
	if args.output is None:
		args.output = args.biometrics.parent / f"perch.{get_run_label()}"
	return args


def main(args: List[str] = None):
	args = create_parser(args)
	analysis_workflow = analysis.PerchAnalysis(
		reference_corral = args.reference_corral,
		n_simulations = args.simulations,
		seed = args.seed
	)
	try:
		analysis_workflow.run(args.biometrics, args.population, project_folder = args.output, plot = args.plot)
	except LoadError as exception:
		logger.error(f"Could not load the input tables: {exception}")
		sys.exit(1)
	logger.info(f"Saved the results to '{args.output}'")


if __name__ == "__main__":
	main()
