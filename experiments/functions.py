#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
hazard table, salpingectomy strategies, cohort handling and outcome aggregation
"""
import logging
import warnings
from functools import partial

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# procedure codes are the column indices of the hazard table
ANY_PROCEDURE = 0
BTL = 7
NO_PROCEDURE = -1

AGE_50_MONTHS = 50*12
LINEAR_START_MONTHS = 8*12
LINEAR_END_MONTHS = 50*12

REQUIRED_COLUMNS = ['time_at_diagnosis', 'time_at_OvarianDeath', 'time_at_OCMdeath']


class SalpingectomyError(Exception):
    pass


class ConfigurationError(SalpingectomyError):
    '''unknown mode / strategy / policy, or a parameter out of range'''


class DataShapeError(SalpingectomyError):
    '''cohort or hazard table does not have the expected shape'''


class DegenerateAggregateError(SalpingectomyError):
    '''no baseline ovarian cancer deaths to compute a reduction against'''


class DegenerateAggregateWarning(RuntimeWarning):
    pass


class IndividualSimulationError(SalpingectomyError):
    def __init__(self, individual, cause):
        super().__init__(individual, cause)
        self.individual = individual
        self.cause = cause

    def __str__(self):
        return f'simulation of individual {self.individual} failed: {self.cause!r}'


# ------------------------------ hazard table ------------------------------ #

def step_function(age_bands, values, n_months):
    '''
    expands piecewise-constant age band values into one value per month of age

    age_bands: lower bound (years) of each band, increasing, starting at 0
    values: value held over each band
    n_months: length of the resulting series

    returns float array of length n_months, row m-1 holds month m
    '''
    age_bands = np.asarray(age_bands)
    values = np.asarray(values, dtype=float)
    if len(age_bands) != len(values):
        raise DataShapeError(f'{len(age_bands)} age bands but {len(values)} values')

    months = np.arange(n_months) // 12 #completed years at each month
    band_idx = np.searchsorted(age_bands, months, side='right') - 1
    if band_idx.min() < 0:
        raise DataShapeError('age bands must start at age 0')
    return values[band_idx]


def procedure_rate_matrix(procedure_count, population):
    '''
    converts yearly procedure counts into monthly probabilities of the procedure

    procedure_count: (n_months, n_procedures) array of events in a year
    population: length n_months array of population denominators

    returns (n_months, n_procedures) array of monthly probabilities in [0, 1]
    '''
    procedure_count = np.asarray(procedure_count, dtype=float)
    population = np.asarray(population, dtype=float)

    if procedure_count.ndim != 2 or procedure_count.shape[0] != len(population):
        raise DataShapeError(f'procedure counts of shape {procedure_count.shape} '
                             f'do not match population of length {len(population)}')
    if (population <= 0).any():
        raise DataShapeError('population denominators must be positive')

    annual_rate = procedure_count / population[:, None]
    monthly_prob = -np.expm1(-annual_rate/12) #1 - exp(-rate/12)

    # aggregated rates can push past valid probability bounds
    return np.clip(monthly_prob, 0.0, 1.0)


def build_hazard_table(procedure_counts, population_counts, age_bands, v_procedure, n_months):
    '''
    builds the read-only [month, procedure] table of monthly probabilities

    procedure_counts: dict of procedure name -> yearly counts per age band
    population_counts: population per age band
    age_bands: lower bound (years) of each age band
    v_procedure: procedure names in column order (first is the 'any' aggregate)
    n_months: number of months of age covered
    '''
    missing = [p for p in v_procedure if p not in procedure_counts]
    if missing:
        raise DataShapeError(f'no counts for procedures: {missing}')

    counts = np.column_stack([step_function(age_bands, procedure_counts[p], n_months) for p in v_procedure])
    population = step_function(age_bands, population_counts, n_months)

    table = procedure_rate_matrix(counts, population)
    table.setflags(write=False)
    return table


def check_hazard_table(hazard_table, n_months, n_procedures=8):
    if hazard_table.ndim != 2 or hazard_table.shape != (n_months, n_procedures):
        raise DataShapeError(f'hazard table has shape {hazard_table.shape}, '
                             f'expected ({n_months}, {n_procedures})')


def surgery_probabilities(hazard_table):
    '''
    per-month probability of any tracked surgery, and which one given that one occurs

    hazard_table: (n_months, 8) table from build_hazard_table

    returns (p_any, weights) where p_any has length n_months and weights is
    (n_months, 7) with rows summing to 1 (rows with p_any == 0 are all zero)
    '''
    specific = np.asarray(hazard_table, dtype=float)[:, ANY_PROCEDURE+1:]
    total = specific.sum(axis=1)
    p_any = np.clip(total, 0.0, 1.0)

    weights = np.zeros_like(specific)
    nonzero = total > 0
    weights[nonzero] = specific[nonzero] / total[nonzero, None]
    return p_any, weights


# ------------------------------ strategies ------------------------------ #
# every strategy has the signature
#   (rng, relative_risk_OvC, select_surgery, cycle, time_at_diagnosis, time_OvC_death)
# and returns (decision, time_OvC_death_salpingectomy, time_effective_salpingectomy)

def is_eligible(cycle, time_at_diagnosis):
    '''salpingectomy is only offered before diagnosis (0 = never diagnosed)'''
    return cycle < time_at_diagnosis or time_at_diagnosis == 0


def check_effectiveness(rng, relative_risk_OvC, cycle, time_at_diagnosis, time_OvC_death):
    '''
    outcome of an accepted salpingectomy

    weight relative_risk_OvC: effective, OvC death removed, effective from this cycle
    weight 1 - relative_risk_OvC: ineffective, OvC death unchanged
    never diagnosed: there is no death to prevent, outputs stay at baseline
    '''
    if time_at_diagnosis == 0:
        return True, time_OvC_death, 0

    if rng.random() < relative_risk_OvC:
        return True, 0, cycle
    return True, time_OvC_death, 0


def _accept_with_probability(rng, p, relative_risk_OvC, cycle, time_at_diagnosis, time_OvC_death):
    if rng.random() < p:
        return check_effectiveness(rng, relative_risk_OvC, cycle, time_at_diagnosis, time_OvC_death)
    return False, time_OvC_death, 0


def everyone(rng, relative_risk_OvC, select_surgery, cycle, time_at_diagnosis, time_OvC_death):
    '''every eligible woman takes salpingectomy at her first surgery'''
    if not is_eligible(cycle, time_at_diagnosis):
        return False, time_OvC_death, 0
    return check_effectiveness(rng, relative_risk_OvC, cycle, time_at_diagnosis, time_OvC_death)


def BTL_only(rng, relative_risk_OvC, select_surgery, cycle, time_at_diagnosis, time_OvC_death):
    '''only women undergoing bilateral tubal ligation take salpingectomy'''
    if not is_eligible(cycle, time_at_diagnosis) or select_surgery != BTL:
        return False, time_OvC_death, 0
    return check_effectiveness(rng, relative_risk_OvC, cycle, time_at_diagnosis, time_OvC_death)


def linear_acceptance(cycle, cap):
    '''
    acceptance probability rising linearly from 0 at age 8 to cap at age 50

    cycle: month of age
    cap: acceptance probability reached at age 50 and kept afterwards
    '''
    if cycle <= LINEAR_START_MONTHS:
        return 0.0
    slope = cap / (LINEAR_END_MONTHS - LINEAR_START_MONTHS)
    return min(slope * (cycle - LINEAR_START_MONTHS), cap)


def _linear(cap, rng, relative_risk_OvC, select_surgery, cycle, time_at_diagnosis, time_OvC_death):
    if not is_eligible(cycle, time_at_diagnosis):
        return False, time_OvC_death, 0

    # BTL always accepts, whatever the age
    p = 1.0 if select_surgery == BTL else linear_acceptance(cycle, cap)
    return _accept_with_probability(rng, p, relative_risk_OvC, cycle, time_at_diagnosis, time_OvC_death)


def Linear_all(rng, relative_risk_OvC, select_surgery, cycle, time_at_diagnosis, time_OvC_death):
    return _linear(1.0, rng, relative_risk_OvC, select_surgery, cycle, time_at_diagnosis, time_OvC_death)


def Linear_half(rng, relative_risk_OvC, select_surgery, cycle, time_at_diagnosis, time_OvC_death):
    return _linear(0.5, rng, relative_risk_OvC, select_surgery, cycle, time_at_diagnosis, time_OvC_death)


def percent_opportunistic(rng, relative_risk_OvC, select_surgery, cycle, time_at_diagnosis, time_OvC_death,
                          pre50_acceptance=1.0, post50_acceptance=1.0):
    '''constant acceptance at each surgery, one rate before age 50 and another after'''
    if not is_eligible(cycle, time_at_diagnosis):
        return False, time_OvC_death, 0

    p = pre50_acceptance if cycle < AGE_50_MONTHS else post50_acceptance
    return _accept_with_probability(rng, p, relative_risk_OvC, cycle, time_at_diagnosis, time_OvC_death)


def percent_nonopportunistic(rng, relative_risk_OvC, select_surgery, cycle, time_at_diagnosis, time_OvC_death,
                             nonop_acceptance_rate=0.0):
    '''salpingectomy without surgery, offered once after age 50 to women not yet diagnosed'''
    if cycle < AGE_50_MONTHS or not is_eligible(cycle, time_at_diagnosis):
        return False, time_OvC_death, 0
    return _accept_with_probability(rng, nonop_acceptance_rate, relative_risk_OvC, cycle,
                                    time_at_diagnosis, time_OvC_death)


STRATEGIES = {
    'opportunistic': {
        'everyone': everyone,
        'BTL_only': BTL_only,
        'Linear_all': Linear_all,
        'Linear_half': Linear_half,
        'percent_opportunistic': percent_opportunistic,
    },
    'non_opportunistic': {
        'percent_nonopportunistic': percent_nonopportunistic,
    },
}


def resolve_strategy(sim_mode, strategy, pre50_acceptance=1.0, post50_acceptance=1.0, nonop_acceptance_rate=0.0):
    '''
    looks up the strategy function for a mode and binds its acceptance rates

    raises ConfigurationError for an unknown mode, or a strategy that does not belong to the mode
    '''
    if sim_mode not in STRATEGIES:
        raise ConfigurationError(f'unknown sim_mode {sim_mode!r}, expected one of {sorted(STRATEGIES)}')
    strategies = STRATEGIES[sim_mode]
    if strategy not in strategies:
        raise ConfigurationError(f'unknown strategy {strategy!r} for sim_mode {sim_mode!r}, '
                                 f'expected one of {sorted(strategies)}')

    fxn = strategies[strategy]
    if fxn is percent_opportunistic:
        return partial(fxn, pre50_acceptance=pre50_acceptance, post50_acceptance=post50_acceptance)
    if fxn is percent_nonopportunistic:
        return partial(fxn, nonop_acceptance_rate=nonop_acceptance_rate)
    return fxn


# ------------------------------ cohort in / out ------------------------------ #

def prepare_cohort(df, population_size=None):
    '''
    validates a cohort table and truncates it to population_size

    df: dataframe with one row per individual
    population_size: keep only the first population_size rows (None keeps all)

    returns a copy with integer time columns and an 'index' column holding ids 1..N
    '''
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise DataShapeError(f'cohort is missing required columns: {missing}')

    if population_size is not None and population_size < len(df):
        df = df.iloc[:population_size]
    df = df.reset_index(drop=True).copy()

    for col in REQUIRED_COLUMNS:
        df[col] = np.floor(df[col].fillna(0)).astype(np.int64)

    df['index'] = np.arange(1, len(df)+1)
    return df


def load_cohort(path, population_size=None):
    df = pd.read_csv(path)
    logger.info('read %d individuals from %s', len(df), path)
    return prepare_cohort(df, population_size)


def merge_results(df, results, v_procedure):
    '''
    adds simulated fields to the cohort, joined on the individual id

    df: cohort from prepare_cohort
    results: dict of output arrays ordered by individual id
    v_procedure: procedure names in hazard table column order
    '''
    ids = np.arange(1, len(results['time_salpingectomy'])+1)
    sim_df = pd.DataFrame({
        'index': ids,
        'time_salpingectomy': results['time_salpingectomy'],
        'time_effective_salpingectomy': results['time_effective_salpingectomy'],
        'time_OvC_death_salpingectomy': results['time_OvC_death_salpingectomy'],
    })
    surgery_df = pd.DataFrame(results['time_surgery'], columns=v_procedure[ANY_PROCEDURE+1:])
    sim_df = pd.concat([sim_df, surgery_df], axis=1)

    return df.merge(sim_df, on='index', how='left', validate='one_to_one')


def mortality_reduction(df, strict=False):
    '''
    1 - (OvC deaths after salpingectomy) / (OvC deaths at baseline)

    returns NaN with a DegenerateAggregateWarning when the baseline has no OvC deaths,
    or raises DegenerateAggregateError if strict
    '''
    before = int((df['time_at_OvarianDeath'] > 0).sum())
    after = int((df['time_OvC_death_salpingectomy'] > 0).sum())

    if before == 0:
        msg = 'no ovarian cancer deaths in the baseline cohort, mortality reduction is undefined'
        if strict:
            raise DegenerateAggregateError(msg)
        warnings.warn(msg, DegenerateAggregateWarning, stacklevel=2)
        return np.nan

    return 1 - after/before


def summarize_results(df):
    return {'n_individuals': len(df),
            'n_salpingectomy': int((df['time_salpingectomy'] > 0).sum()),
            'n_effective_salpingectomy': int((df['time_effective_salpingectomy'] > 0).sum()),
            'n_OvC_death_baseline': int((df['time_at_OvarianDeath'] > 0).sum()),
            'n_OvC_death_salpingectomy': int((df['time_OvC_death_salpingectomy'] > 0).sum()),
            'mortality_reduction': mortality_reduction(df),
            }


def results_filename(config):
    '''
    file name encoding the run configuration so different runs do not overwrite each other

    config: SimulationConfig (rates are appended for the percent strategies and the post-50 offer)
    '''
    name = f'simulation_results_{config.population_size}_{config.sim_mode}_{config.strategy}'
    if config.strategy == 'percent_opportunistic':
        name += f'_{config.pre50_acceptance}_{config.post50_acceptance}'
    elif config.strategy == 'percent_nonopportunistic':
        name += f'_{config.nonop_acceptance_rate}'
    if config.sim_mode == 'opportunistic' and config.post50_offer:
        name += f'_post50_{config.nonop_acceptance_rate}'
    return name + '.csv'
