"""Tests for run configuration, data loading and the command-line driver."""

import numpy as np
import pandas as pd
import pytest

from cfdsge import carlstrom_fuerst as cf
from cfdsge import estimate
from cfdsge.config import EstimationConfig, config_from_dict, load_config
from cfdsge.data_loader import ObservationSet, describe_data, load_observations
from cfdsge.estimate import main
from cfdsge.exceptions import ConfigError, DataError


@pytest.fixture
def data_file(tmp_path):
    rng = np.random.default_rng(0)
    frame = pd.DataFrame({
        'date': pd.period_range('1980Q1', periods=40, freq='Q').astype(str),
        'log_Y': rng.normal(0.005, 0.01, 40),
        'log_rpBANK': rng.normal(0.0, 0.02, 40),
    })
    frame.loc[0, ['log_Y', 'log_rpBANK']] = np.nan
    path = tmp_path / "macro_data_log.csv"
    frame.to_csv(path, index=False)
    return path


def test_defaults():
    config = EstimationConfig()
    assert config.order == 1
    assert config.mh_nblocks == 2
    assert config.mh_drop == 0.5
    assert config.logging.level == "INFO"


def test_load_config(tmp_path):
    path = tmp_path / "run.yaml"
    path.write_text("datafile: data.csv\nmh_replic: 500\nlogging:\n  level: DEBUG\n")
    config = load_config(path)
    assert config.datafile == "data.csv"
    assert config.mh_replic == 500
    assert config.logging.level == "DEBUG"


def test_unknown_key_rejected():
    with pytest.raises(ConfigError, match="mh_replik"):
        config_from_dict({'mh_replik': 100})


def test_unknown_logging_key_rejected():
    with pytest.raises(ConfigError):
        config_from_dict({'logging': {'colour': True}})


@pytest.mark.parametrize("options", [
    {'order': 2},
    {'mh_nblocks': 0},
    {'mh_drop': 1.0},
    {'mh_conf_sig': 1.5},
    {'mh_jscale': 0.0},
    {'executor': 'gpu'},
])
def test_invalid_values_rejected(options):
    with pytest.raises(ConfigError):
        config_from_dict(options)


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.yaml")


def test_load_observations_with_aliases(data_file):
    obs = load_observations(str(data_file), ('dy', 'drp'), aliases=cf.DATA_COLUMNS)
    assert obs.names == ('dy', 'drp')
    assert obs.data.shape == (40, 2)
    assert np.all(np.isnan(obs.data[0]))
    assert np.all(np.isfinite(obs.data[1:]))
    with pytest.raises(ValueError):
        obs.data[1, 0] = 0.0


def test_sample_selection(data_file):
    obs = load_observations(str(data_file), ('dy', 'drp'), aliases=cf.DATA_COLUMNS,
                            first_obs=2, nobs=10, index_col='date')
    assert obs.n_periods == 10
    assert obs.index[0] == '1980Q2'
    assert np.all(np.isfinite(obs.data))


def test_sample_beyond_file(data_file):
    with pytest.raises(DataError):
        load_observations(str(data_file), ('dy', 'drp'), aliases=cf.DATA_COLUMNS,
                          first_obs=35, nobs=10)


def test_missing_column(data_file):
    with pytest.raises(DataError, match="log_C"):
        load_observations(str(data_file), ('dy', 'dc'),
                          aliases={'dy': 'log_Y', 'dc': 'log_C'})


def test_demean(data_file):
    obs = load_observations(str(data_file), ('dy', 'drp'), aliases=cf.DATA_COLUMNS, demean=True)
    np.testing.assert_allclose(np.nanmean(obs.data, axis=0), 0.0, atol=1e-12)


def test_describe_data():
    obs = ObservationSet(np.array([[1.0, np.nan], [3.0, 2.0]]), ('a', 'b'), None)
    stats = describe_data(obs)
    assert stats.loc['a', 'mean'] == 2.0
    assert stats.loc['b', 'missing'] == 1


def test_main_reports_config_errors(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("mh_drop: 2.0\n")
    assert main([str(path)]) == 1


def test_main_reports_missing_data(tmp_path):
    path = tmp_path / "run.yaml"
    path.write_text("datafile: missing.csv\nmh_replic: 0\n")
    assert main([str(path)]) == 1


def test_main_runs_estimation_end_to_end(tmp_path, cf_observations, monkeypatch):
    frame = pd.DataFrame(cf_observations.data, columns=['log_Y', 'log_rpBANK'])
    frame.to_csv(tmp_path / "cf_data.csv", index=False)
    path = tmp_path / "run.yaml"
    path.write_text("datafile: cf_data.csv\nmh_replic: 200\nmh_nblocks: 2\n"
                    "max_workers: 1\nseed: 4\n")

    results = []
    run = estimate.run

    def recording_run(config, config_dir):
        results.append(run(config, config_dir))
        return results[-1]

    monkeypatch.setattr(estimate, 'run', recording_run)
    assert main([str(path)]) == 0

    result = results[0]
    assert len(result['mcmc'].samples) == 2
    assert all(s.n_draws == 200 for s in result['mcmc'].samples)
    assert list(result['smoothed'].columns) == list(cf.REPORT_VARS)
    assert len(result['smoothed']) == cf_observations.n_periods
    assert np.isfinite(result['smoothed'].to_numpy()).all()
    assert set(result['point']) == {'rhoA', 'rhomu', 'stderr_eA', 'stderr_eM'}
