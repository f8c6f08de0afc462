#!/usr/bin/env python3
"""Run the e/gamma fillers over NanoAOD-style input files.

Examples
--------
    python bin/run_filler.py input.root --output out/egfill.root
    python bin/run_filler.py a.root b.root --config my_config.yaml --max-events 1000
    python bin/run_filler.py data.root --data --output out/data.root
"""

import argparse
import logging
import sys
import time
from itertools import chain
from pathlib import Path

from egfill.analysis_config import ConfigurationError, load_config
from egfill.driver import TreeFiller
from egfill.io import is_real_data_file, iter_events
from egfill.writer import OutputWriter

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def validate_arguments(args):
    """Check CLI argument combinations are valid before running."""
    for path in args.inputs:
        if "://" not in str(path) and not Path(path).exists():
            raise ValueError(f"Input file {path} does not exist.")
    if args.max_events is not None and args.max_events < 1:
        raise ValueError("--max-events must be a positive integer")
    if args.step_size < 1:
        raise ValueError("--step-size must be a positive integer")


def input_kind(args):
    """Return the data/MC flag shared by all inputs.

    ``--data``/``--mc`` apply to every input. Otherwise each file is
    inspected, and inputs mixing real data and simulation are rejected since
    the written branch list depends on the kind.
    """
    if args.is_real_data is not None:
        return args.is_real_data
    kinds = {path: is_real_data_file(path, tree_name=args.tree) for path in args.inputs}
    if len(set(kinds.values())) > 1:
        data = [str(p) for p, is_data in kinds.items() if is_data]
        mc = [str(p) for p, is_data in kinds.items() if not is_data]
        raise ConfigurationError(
            f"Inputs mix real data ({', '.join(data)}) and simulation ({', '.join(mc)}); "
            "run them separately or pass --data/--mc."
        )
    return next(iter(kinds.values()), False)


def run(args):
    config = load_config(args.config)
    tree_filler = TreeFiller(config, log_every=args.log_every)
    labels = tree_filler.products()
    is_real_data = input_kind(args)

    events = chain.from_iterable(
        iter_events(
            path, labels,
            tree_name=args.tree,
            step_size=args.step_size,
            entry_stop=args.max_events,
            is_real_data=is_real_data,
        )
        for path in args.inputs
    )

    writer = OutputWriter(args.output, exclusions=tree_filler.branch_list(is_real_data))
    n_events = tree_filler.run(events, writer=writer, max_events=args.max_events)
    if n_events == 0:
        logging.warning("No events found in %s", ", ".join(map(str, args.inputs)))
        return 0
    writer.close(tree_filler)
    return n_events


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Fill e/gamma output collections from NanoAOD-style inputs.")
    parser.add_argument("inputs", nargs="+", type=str, help="Input ROOT files (local paths or xrootd URLs).")
    optional = parser.add_argument_group("Optional arguments")
    optional.add_argument("--output", type=Path, default=Path("egfill.root"), help="Output ROOT file (default: egfill.root).")
    optional.add_argument("--config", type=Path, default=None, help="Filler configuration YAML (default: packaged config.yaml).")
    optional.add_argument("--tree", type=str, default="Events", help="Input tree name (default: Events).")
    optional.add_argument("--max-events", type=int, default=None, help="Stop after this many events (default: all).")
    optional.add_argument("--step-size", type=int, default=1000, help="Entries read per uproot chunk (default: 1000).")
    optional.add_argument("--log-every", type=int, default=1000, help="Log progress every N events (default: 1000).")
    kind = optional.add_mutually_exclusive_group()
    kind.add_argument("--data", dest="is_real_data", action="store_const", const=True, default=None, help="Treat inputs as real data.")
    kind.add_argument("--mc", dest="is_real_data", action="store_const", const=False, help="Treat inputs as simulation.")
    optional.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level (default: INFO).")
    args = parser.parse_args()

    logging.getLogger().setLevel(args.log_level)

    try:
        validate_arguments(args)
        t0 = time.monotonic()
        run(args)
        logging.info(f"Execution took {time.monotonic() - t0:.2f} s")
    except ConfigurationError as e:
        logging.error("Configuration error: %s", e)
        sys.exit(2)
