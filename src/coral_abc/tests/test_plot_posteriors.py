import numpy as np
import pytest

from coral_abc.diagnostics import plot_posteriors as plots


@pytest.fixture
def chain():
    rng = np.random.default_rng(0)
    return rng.uniform(0.05, 0.95, size=(200, 3))


def test_density_plot_written(tmp_path, chain):
    out = plots.plot_densities(chain, str(tmp_path / "figs" / "dens.png"), truth=(0.6, 0.01, 0.4))
    assert out.exists()


def test_weighted_density_plot_with_point_mass(tmp_path, chain):
    """
    All weight on one particle leaves nothing to smooth; only the histogram is drawn.
    """
    w = np.zeros(len(chain))
    w[0] = 1.0
    out = plots.plot_densities(chain, str(tmp_path / "dens_w.png"), weights=w)
    assert out.exists()


def test_chain_plots_written(tmp_path, chain):
    assert plots.plot_traces(chain, str(tmp_path / "trace.png")).exists()
    assert plots.plot_autocorrelation(chain, str(tmp_path / "acf.png"), max_lag=20).exists()
    assert plots.plot_lags(chain, str(tmp_path / "lag.png"), lag=2).exists()


def test_lag_plot_rejects_bad_lag(tmp_path, chain):
    with pytest.raises(ValueError):
        plots.plot_lags(chain, str(tmp_path / "lag.png"), lag=0)


def test_tolerance_and_fit_plots(tmp_path):
    out = plots.plot_tolerance_schedule([50.0, 30.0, 20.0], str(tmp_path / "tol.png"), ess=[100, 40, 60])
    assert out.exists()
    t = np.arange(0.0, 5.0)
    obs = np.column_stack([t, t + 10, t + 1])
    sims = np.stack([obs + 1, obs - 1])
    sims[:, :, 0] = t
    assert plots.plot_trajectory_fit(obs, sims, str(tmp_path / "fit.png")).exists()
