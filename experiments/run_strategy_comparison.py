#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""

salpingectomy simulation - strategy / acceptance rate sensitivity analysis

"""


import argparse
import logging
import time
from pathlib import Path
from typing import List, Optional

import numpy as np
import pandas as pd

from variables import *
from functions import build_hazard_table, load_cohort, summarize_results
from salpingectomy_simulation import SalpingectomySimulation, SimulationConfig

logger = logging.getLogger(__name__)

#--------------------------- params --------------------------- #

opportunistic_strategies = ['everyone', 'BTL_only', 'Linear_all', 'Linear_half']

#(pre50_acceptance, post50_acceptance) pairs for percent_opportunistic
percent_opportunistic_rates = [(0.1, 0.5), (0.25, 0.75), (0.5, 1.0)]

nonop_acceptance_rates = [0.05, 0.1, 0.25, 0.5]

#opportunistic strategies followed by the post-50 offer, at each of nonop_acceptance_rates
post50_offer_strategies = ['BTL_only']

# ------------------------------------------------------------------------------------ #


def scenarios():
    '''(sim_mode, strategy, extra SimulationConfig kwargs) for every scenario in the sweep'''
    for name in opportunistic_strategies:
        yield 'opportunistic', name, {}
    for pre50, post50 in percent_opportunistic_rates:
        yield 'opportunistic', 'percent_opportunistic', {'pre50_acceptance': pre50, 'post50_acceptance': post50}
    for rate in nonop_acceptance_rates:
        yield 'non_opportunistic', 'percent_nonopportunistic', {'nonop_acceptance_rate': rate}
    for name in post50_offer_strategies:
        for rate in nonop_acceptance_rates:
            yield 'opportunistic', name, {'post50_offer': True, 'nonop_acceptance_rate': rate}


def run_comparison(df: pd.DataFrame,
                   hazard_table: np.ndarray,
                   n_replicates: int = 1,
                   base_seed: int = seed,
                   n_workers: int = n_workers,
                   scenario_list: Optional[list] = None) -> pd.DataFrame:
    """
    Run every scenario for each replicate seed

    Parameters:
    df : cohort from functions.prepare_cohort
    hazard_table : monthly procedure probabilities
    n_replicates : int, number of replicate seeds per scenario
    base_seed : int, root of the replicate seeds
    n_workers : int, worker processes used by each run
    scenario_list : list of (sim_mode, strategy, kwargs), defaults to scenarios()

    Returns:
    DataFrame with one summary row per scenario and replicate
    """
    seeds = np.random.SeedSequence(base_seed).spawn(n_replicates)
    scenario_list = list(scenarios()) if scenario_list is None else scenario_list

    rows: List[dict] = []
    for replicate, seed_seq in enumerate(seeds):
        replicate_seed = int(seed_seq.generate_state(1)[0])

        for mode, name, kwargs in scenario_list:
            config = SimulationConfig(sim_mode=mode, strategy=name, population_size=len(df),
                                      seed=replicate_seed, n_workers=n_workers, **kwargs)
            logger.info('replicate %d: %s / %s %s', replicate, mode, name, kwargs)

            sim_res = SalpingectomySimulation(config, df, hazard_table).run()
            row = summarize_results(sim_res)
            row.update({'replicate': replicate,
                        'seed': replicate_seed,
                        'sim_mode': mode,
                        'strategy': name,
                        'pre50_acceptance': config.pre50_acceptance,
                        'post50_acceptance': config.post50_acceptance,
                        'nonop_acceptance_rate': config.nonop_acceptance_rate,
                        'post50_offer': config.post50_offer,
                        })
            rows.append(row)

    return pd.DataFrame(rows)


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--n_replicates', type=int, default=5)
    parser.add_argument('--population_size', type=int, default=population_size)
    parser.add_argument('--n_workers', type=int, default=n_workers)
    parser.add_argument('--cohort', type=str, default=cohort_path)
    parser.add_argument('--output_dir', type=str, default=output_dir)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(name)s %(levelname)s | %(message)s')

    hazard_table = build_hazard_table(procedure_counts, population_counts, age_bands, v_procedure, n_months)
    df = load_cohort(args.cohort, args.population_size)

    start_time = time.time()
    results = run_comparison(df, hazard_table, n_replicates=args.n_replicates, n_workers=args.n_workers)
    end_time = time.time()

    Path(args.output_dir).mkdir(parents=True, exist_ok=True)
    save_path = Path(args.output_dir) / f'strategy_comparison_{len(df)}.csv'
    results.to_csv(save_path, index=False)

    summary = results.groupby(['sim_mode', 'strategy', 'pre50_acceptance', 'post50_acceptance',
                               'nonop_acceptance_rate', 'post50_offer'])['mortality_reduction'].agg(['mean', 'std'])
    print(summary)
    print(f'time for {args.n_replicates} replicates: {end_time-start_time:.2f}s')
