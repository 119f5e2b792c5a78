#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""

salpingectomy simulation - single run for one mode / strategy

"""


import argparse
import logging
import time
from pathlib import Path

from variables import *
from functions import build_hazard_table, load_cohort, mortality_reduction, results_filename
from salpingectomy_simulation import SalpingectomySimulation, SimulationConfig


def parse_args(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument('--sim_mode', type=str, default=sim_mode, help='opportunistic, non_opportunistic')
    parser.add_argument('--strategy', type=str, default=strategy,
                        help='everyone, BTL_only, Linear_all, Linear_half, percent_opportunistic, percent_nonopportunistic')
    parser.add_argument('--relative_risk_OvC', type=float, default=relative_risk_OvC)
    parser.add_argument('--pre50_acceptance', type=float, default=pre50_acceptance)
    parser.add_argument('--post50_acceptance', type=float, default=post50_acceptance)
    parser.add_argument('--nonop_acceptance_rate', type=float, default=nonop_acceptance_rate)
    parser.add_argument('--post50_offer', action='store_true', default=post50_offer,
                        help='opportunistic mode: also offer salpingectomy after 50 at nonop_acceptance_rate')
    parser.add_argument('--population_size', type=int, default=population_size)
    parser.add_argument('--seed', type=int, default=seed)
    parser.add_argument('--repeat_surgery_policy', type=str, default=repeat_surgery_policy, help='skip, stop')
    parser.add_argument('--window_end', type=int, default=window_end, help='last month of the opportunistic window')
    parser.add_argument('--n_workers', type=int, default=n_workers)
    parser.add_argument('--chunk_size', type=int, default=chunk_size)
    parser.add_argument('--cohort', type=str, default=cohort_path)
    parser.add_argument('--output_dir', type=str, default=output_dir)
    parser.add_argument('-v', '--verbose', action='store_true')
    return parser.parse_args(argv)


def config_from_args(args) -> SimulationConfig:
    return SimulationConfig(sim_mode=args.sim_mode,
                            strategy=args.strategy,
                            relative_risk_OvC=args.relative_risk_OvC,
                            pre50_acceptance=args.pre50_acceptance,
                            post50_acceptance=args.post50_acceptance,
                            nonop_acceptance_rate=args.nonop_acceptance_rate,
                            post50_offer=args.post50_offer,
                            population_size=args.population_size,
                            seed=args.seed,
                            repeat_surgery_policy=args.repeat_surgery_policy,
                            window_end=args.window_end,
                            n_workers=args.n_workers,
                            chunk_size=args.chunk_size)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s %(name)s %(levelname)s | %(message)s')

    # fail on a bad configuration before reading any data
    config = config_from_args(args)

    print(f'sim_mode: {config.sim_mode}')
    print(f'strategy: {config.strategy}')
    print(f'population size: {config.population_size}')
    print(f'relative risk of OvC: {config.relative_risk_OvC}')
    print(f'pre-50 acceptance (opportunistic): {config.pre50_acceptance}')
    print(f'post-50 acceptance (opportunistic): {config.post50_acceptance}')
    print(f'non-op acceptance rate: {config.nonop_acceptance_rate}')
    print(f'post-50 offer (opportunistic): {config.post50_offer}')
    print(f'repeat surgery policy: {config.repeat_surgery_policy}')

    hazard_table = build_hazard_table(procedure_counts, population_counts, age_bands, v_procedure, config.n_months)
    df = load_cohort(args.cohort, config.population_size)

    start_time = time.time()
    sim = SalpingectomySimulation(config, df, hazard_table, v_procedure)
    sim_res = sim.run()
    end_time = time.time()

    Path(args.output_dir).mkdir(parents=True, exist_ok=True)
    save_path = Path(args.output_dir) / results_filename(config)
    sim_res.to_csv(save_path, index=False)

    print(f'time for {len(sim_res)} individuals: {end_time-start_time:.2f}s')
    print(f'results saved to {save_path}')
    print(f'mortality reduction: {round(mortality_reduction(sim_res), 4)}')
    return sim_res


if __name__ == '__main__':
    main()
