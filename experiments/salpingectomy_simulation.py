import concurrent.futures
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import numpy as np
import pandas as pd

import variables
from functions import (NO_PROCEDURE, ConfigurationError, IndividualSimulationError,
                       check_hazard_table, merge_results, resolve_strategy, surgery_probabilities)

logger = logging.getLogger(__name__)

SIM_MODES = ('opportunistic', 'non_opportunistic')
REPEAT_SURGERY_POLICIES = ('skip', 'stop')
N_TRACKED_PROCEDURES = 7


@dataclass(frozen=True)
class SimulationConfig:
    """
    Every setting of one simulation run.

    Validated on construction; the strategy functions are resolved once here and
    carried as `strategy_fxn` (surgery window) and `post50_fxn` (offer after 50,
    None when not made) so individuals never dispatch on strategy names.
    """
    sim_mode: str = variables.sim_mode
    strategy: str = variables.strategy
    relative_risk_OvC: float = variables.relative_risk_OvC
    pre50_acceptance: float = variables.pre50_acceptance
    post50_acceptance: float = variables.post50_acceptance
    nonop_acceptance_rate: float = variables.nonop_acceptance_rate
    post50_offer: bool = variables.post50_offer
    population_size: Optional[int] = variables.population_size
    seed: int = variables.seed
    repeat_surgery_policy: str = variables.repeat_surgery_policy
    n_months: int = variables.n_months
    window_start: int = variables.window_start
    window_end: int = variables.window_end
    nonop_first_month: int = variables.nonop_first_month
    n_workers: int = variables.n_workers
    chunk_size: int = variables.chunk_size
    strategy_fxn: Callable = field(init=False, repr=False, compare=False)
    post50_fxn: Optional[Callable] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.sim_mode not in SIM_MODES:
            raise ConfigurationError(f'unknown sim_mode {self.sim_mode!r}, expected one of {SIM_MODES}')
        if self.repeat_surgery_policy not in REPEAT_SURGERY_POLICIES:
            raise ConfigurationError(f'unknown repeat_surgery_policy {self.repeat_surgery_policy!r}, '
                                     f'expected one of {REPEAT_SURGERY_POLICIES}')

        for name in ('relative_risk_OvC', 'pre50_acceptance', 'post50_acceptance', 'nonop_acceptance_rate'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f'{name} must be in [0, 1], got {value}')

        if self.population_size is not None and self.population_size <= 0:
            raise ConfigurationError(f'population_size must be positive, got {self.population_size}')
        if self.n_workers < 1 or self.chunk_size < 1:
            raise ConfigurationError('n_workers and chunk_size must be at least 1')
        if not 1 <= self.window_start <= self.window_end <= self.n_months:
            raise ConfigurationError(f'opportunistic window {self.window_start}..{self.window_end} '
                                     f'is not inside months 1..{self.n_months}')

        strategy_fxn = resolve_strategy(self.sim_mode, self.strategy,
                                        pre50_acceptance=self.pre50_acceptance,
                                        post50_acceptance=self.post50_acceptance,
                                        nonop_acceptance_rate=self.nonop_acceptance_rate)
        object.__setattr__(self, 'strategy_fxn', strategy_fxn)

        # strategy for the post-50 offer, None when there is no such offer
        if self.sim_mode == 'non_opportunistic':
            post50_fxn = strategy_fxn
        elif self.post50_offer:
            post50_fxn = resolve_strategy('non_opportunistic', 'percent_nonopportunistic',
                                          nonop_acceptance_rate=self.nonop_acceptance_rate)
        else:
            post50_fxn = None
        object.__setattr__(self, 'post50_fxn', post50_fxn)


def individual_rng(seed, individual):
    '''independent random stream for one individual, whatever worker runs it'''
    return np.random.Generator(np.random.PCG64(np.random.SeedSequence([seed, individual])))


def simulate_individual(individual, time_at_diagnosis, time_OvC_death, time_OCM_death, p_any, weights, config):
    '''
    life course of one woman: opportunistic surgery window, then the non-opportunistic offer after 50

    individual: id (1..N), seeds her random stream
    time_at_diagnosis, time_OvC_death, time_OCM_death: baseline months (0 = never)
    p_any, weights: from functions.surgery_probabilities
    config: SimulationConfig

    returns (time_surgery, time_salpingectomy, time_effective_salpingectomy, time_OvC_death_salpingectomy)
    '''
    rng = individual_rng(config.seed, individual)
    strategy_fxn = config.strategy_fxn

    time_surgery = np.zeros(N_TRACKED_PROCEDURES, dtype=np.int64)
    time_salpingectomy = 0
    time_effective_salpingectomy = 0
    time_OvC_death_salpingectomy = time_OvC_death
    salpingectomy_done = False

    # 1. opportunistic window
    # the monthly surgery coin flips are independent, so draw them for the whole window at once
    months = np.arange(config.window_start, config.window_end+1)
    surgery_months = months[rng.random(len(months)) < p_any[months-1]]

    for cycle in surgery_months:
        cycle = int(cycle)
        select_surgery = int(rng.choice(N_TRACKED_PROCEDURES, p=weights[cycle-1])) + 1

        if time_surgery[select_surgery-1] != 0:
            # already had this surgery type
            if config.repeat_surgery_policy == 'stop':
                break
            continue

        time_surgery[select_surgery-1] = cycle

        if config.sim_mode == 'opportunistic':
            decision, t_OvC_salp, t_eff = strategy_fxn(rng, config.relative_risk_OvC, select_surgery, cycle,
                                                       time_at_diagnosis, time_OvC_death)
            if decision:
                salpingectomy_done = True
                time_salpingectomy = cycle
                time_effective_salpingectomy = t_eff
                time_OvC_death_salpingectomy = t_OvC_salp
                break

    # 2. non-opportunistic offer at a random month between nonop_first_month and death
    if not salpingectomy_done and config.post50_fxn is not None:
        time_death = max(time_OvC_death, time_OCM_death)

        if time_death >= config.nonop_first_month:
            t_candidate = int(rng.integers(config.nonop_first_month, time_death, endpoint=True))
            decision, t_OvC_salp, t_eff = config.post50_fxn(rng, config.relative_risk_OvC, NO_PROCEDURE,
                                                            t_candidate, time_at_diagnosis, time_OvC_death)
            if decision:
                salpingectomy_done = True
                time_salpingectomy = t_candidate
                time_effective_salpingectomy = t_eff
                time_OvC_death_salpingectomy = t_OvC_salp

    return time_surgery, time_salpingectomy, time_effective_salpingectomy, time_OvC_death_salpingectomy


def empty_results(n):
    return {'time_surgery': np.zeros((n, N_TRACKED_PROCEDURES), dtype=np.int64),
            'time_salpingectomy': np.zeros(n, dtype=np.int64),
            'time_effective_salpingectomy': np.zeros(n, dtype=np.int64),
            'time_OvC_death_salpingectomy': np.zeros(n, dtype=np.int64),
            }


def simulate_chunk(first_individual, time_at_diagnosis, time_OvC_death, time_OCM_death,
                   p_any, weights, config) -> Dict[str, np.ndarray]:
    """
    Simulate a contiguous block of individuals.

    Parameters:
    first_individual : int, id of the first individual in the block
    time_at_diagnosis, time_OvC_death, time_OCM_death : arrays, baseline months for the block
    p_any, weights : arrays, surgery probabilities from the hazard table
    config : SimulationConfig

    Returns:
    dict of output arrays for the block, in id order
    """
    n = len(time_at_diagnosis)
    results = empty_results(n)

    for i in range(n):
        individual = first_individual + i
        try:
            surgery, t_salp, t_eff, t_OvC_salp = simulate_individual(
                individual, int(time_at_diagnosis[i]), int(time_OvC_death[i]), int(time_OCM_death[i]),
                p_any, weights, config)
        except Exception as e:
            raise IndividualSimulationError(individual, e) from e

        results['time_surgery'][i] = surgery
        results['time_salpingectomy'][i] = t_salp
        results['time_effective_salpingectomy'][i] = t_eff
        results['time_OvC_death_salpingectomy'][i] = t_OvC_salp

    return results


class SalpingectomySimulation:
    def __init__(self, config, df, hazard_table, v_procedure=variables.v_procedure):
        '''
        config: SimulationConfig
        df: cohort from functions.prepare_cohort (ids 1..N in row order)
        hazard_table: (n_months, 8) table from functions.build_hazard_table
        v_procedure: procedure names in hazard table column order
        '''
        check_hazard_table(hazard_table, config.n_months, len(v_procedure))
        if config.population_size is not None and len(df) > config.population_size:
            df = df.iloc[:config.population_size]

        self.config = config
        self.df = df
        self.hazard_table = hazard_table
        self.v_procedure = v_procedure
        self.p_any, self.weights = surgery_probabilities(hazard_table)

        self.time_at_diagnosis = df['time_at_diagnosis'].to_numpy(dtype=np.int64)
        self.time_OvC_death = df['time_at_OvarianDeath'].to_numpy(dtype=np.int64)
        self.time_OCM_death = df['time_at_OCMdeath'].to_numpy(dtype=np.int64)

    def _chunks(self):
        n = len(self.df)
        for start in range(0, n, self.config.chunk_size):
            stop = min(start + self.config.chunk_size, n)
            yield start, (start + 1, self.time_at_diagnosis[start:stop], self.time_OvC_death[start:stop],
                          self.time_OCM_death[start:stop], self.p_any, self.weights, self.config)

    def simulate(self):
        '''
        runs every individual and returns the output arrays, indexed by id - 1
        '''
        n = len(self.df)
        self.results = empty_results(n)
        logger.info('simulating %d individuals: %s', n, self.config)

        if self.config.n_workers == 1:
            for start, args in self._chunks():
                self._store(start, simulate_chunk(*args))
            return self.results

        with concurrent.futures.ProcessPoolExecutor(max_workers=self.config.n_workers) as executor:
            future_to_start = {executor.submit(simulate_chunk, *args): start for start, args in self._chunks()}

            for future in concurrent.futures.as_completed(future_to_start):
                self._store(future_to_start[future], future.result())

        return self.results

    def _store(self, start, chunk_results):
        # each chunk owns the slice starting at its first id
        stop = start + len(chunk_results['time_salpingectomy'])
        for key, values in chunk_results.items():
            self.results[key][start:stop] = values
        logger.debug('stored individuals %d..%d', start + 1, stop)

    def run(self) -> pd.DataFrame:
        self.simulate()
        return merge_results(self.df, self.results, self.v_procedure)
