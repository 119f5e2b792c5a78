"""
End-to-end tests for the run scripts, on a small synthetic cohort.
"""

import pandas as pd
import pytest

from conftest import make_cohort
from functions import ConfigurationError, prepare_cohort
from run_salpingectomy import main
from run_strategy_comparison import run_comparison, scenarios


@pytest.fixture
def cohort_csv(tmp_path):
    path = tmp_path / 'cohort.csv'
    make_cohort(n=120, seed=3).to_csv(path, index=False)
    return path


def test_single_run_writes_results(cohort_csv, tmp_path, capsys):
    out_dir = tmp_path / 'outputs'
    sim_res = main(['--cohort', str(cohort_csv), '--output_dir', str(out_dir),
                    '--population_size', '100', '--strategy', 'Linear_half', '--n_workers', '1'])

    saved = out_dir / 'simulation_results_100_opportunistic_Linear_half.csv'
    assert saved.exists()
    df = pd.read_csv(saved)
    assert len(df) == 100
    assert {'time_salpingectomy', 'time_effective_salpingectomy', 'time_OvC_death_salpingectomy',
            'Bilateral tubal ligation'} <= set(df.columns)
    assert len(sim_res) == 100
    assert 'mortality reduction:' in capsys.readouterr().out


def test_bad_strategy_fails_before_reading_cohort(tmp_path):
    with pytest.raises(ConfigurationError):
        main(['--cohort', str(tmp_path / 'missing.csv'), '--output_dir', str(tmp_path),
              '--strategy', 'percent_nonopportunistic'])


def test_strategy_comparison(hazard_table):
    df = prepare_cohort(make_cohort(n=60, seed=5))
    scenario_list = [('opportunistic', 'everyone', {}),
                     ('non_opportunistic', 'percent_nonopportunistic', {'nonop_acceptance_rate': 0.5})]
    results = run_comparison(df, hazard_table, n_replicates=2, n_workers=1, scenario_list=scenario_list)

    assert len(results) == 4
    assert results['replicate'].tolist() == [0, 0, 1, 1]
    assert results['seed'].nunique() == 2
    assert (results['n_individuals'] == 60).all()
    assert results.loc[1, 'nonop_acceptance_rate'] == 0.5
    reduction = results['mortality_reduction'].dropna()
    assert ((reduction >= 0) & (reduction <= 1)).all()


def test_post50_offer_run_keeps_its_own_file(cohort_csv, tmp_path):
    out_dir = tmp_path / 'outputs'
    sim_res = main(['--cohort', str(cohort_csv), '--output_dir', str(out_dir), '--population_size', '100',
                    '--strategy', 'BTL_only', '--post50_offer', '--nonop_acceptance_rate', '0.5',
                    '--n_workers', '1'])

    assert (out_dir / 'simulation_results_100_opportunistic_BTL_only_post50_0.5.csv').exists()
    assert not (out_dir / 'simulation_results_100_opportunistic_BTL_only.csv').exists()
    assert len(sim_res) == 100


def test_sweep_includes_post50_offer():
    post50 = [(mode, name, kwargs) for mode, name, kwargs in scenarios() if kwargs.get('post50_offer')]
    assert post50
    assert all(mode == 'opportunistic' for mode, _, _ in post50)
    assert len({kwargs['nonop_acceptance_rate'] for _, _, kwargs in post50}) > 1
