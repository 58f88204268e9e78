"""
Tests for data loading and shaping.
"""

import os

import numpy as np
import pandas as pd
import pytest
import scipy.io

from dsge_forecast.data import (describe_data, df_to_matrix, load_data, load_mat_data,
                                output_to_dataframe, quarterly_index, split_conditional)
from dsge_forecast.errors import ConfigurationError


@pytest.fixture
def obs_df():
    return pd.DataFrame({
        'date': ['2020-01-01', '2020-04-01', '2020-07-01', '2020-10-01'],
        'obs_b': [1.0, 2.0, np.nan, 4.0],
        'obs_a': [0.1, 0.2, 0.3, 0.4],
    })


class TestLoading:

    def test_csv(self, obs_df, tmp_path):
        path = os.path.join(tmp_path, 'data.csv')
        obs_df.to_csv(path, index=False)

        df = load_data(path, start_date='2020-01-01')
        assert list(df.columns) == ['date', 'obs_b', 'obs_a']
        assert df.index[1] == pd.Timestamp('2020-04-01')
        assert np.isnan(df['obs_b'].iloc[2])

    def test_mat(self, tmp_path):
        path = os.path.join(tmp_path, 'data.mat')
        scipy.io.savemat(path, {'obs_a': np.array([[1.0], [2.0]]),
                                'obs_b': np.array([[3.0], [4.0]])})

        assert set(load_mat_data(path)) == {'obs_a', 'obs_b'}
        df = load_data(path, observable_names=['obs_b'])
        assert list(df.columns) == ['obs_b']
        np.testing.assert_array_equal(df['obs_b'], [3.0, 4.0])

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(os.path.join(tmp_path, 'none.csv'))

    def test_unsupported_extension(self, tmp_path):
        with pytest.raises(ValueError):
            load_data(os.path.join(tmp_path, 'data.json'))

    def test_quarterly_index(self):
        index = quarterly_index('2019-10-01', 3)
        assert list(index.month) == [10, 1, 4]


class TestShaping:

    def test_df_to_matrix_orders_observables(self, obs_df):
        data = df_to_matrix(obs_df, ['obs_a', 'obs_b'])
        assert data.shape == (4, 2)
        np.testing.assert_array_equal(data[:, 0], [0.1, 0.2, 0.3, 0.4])
        assert np.isnan(data[2, 1])

    def test_df_to_matrix_missing_column(self, obs_df):
        with pytest.raises(ConfigurationError):
            df_to_matrix(obs_df, ['obs_a', 'obs_c'])

    def test_split_conditional(self):
        data = np.arange(10.0).reshape(5, 2)
        main, cond = split_conditional(data, 'full', 2)
        np.testing.assert_array_equal(main, data[:3])
        np.testing.assert_array_equal(cond, data[3:])

        main, cond = split_conditional(data, 'none', 2)
        assert main.shape == (5, 2)
        assert cond.shape == (0, 2)

    @pytest.mark.parametrize('n_cond', [0, 5])
    def test_split_conditional_bad_periods(self, n_cond):
        with pytest.raises(ConfigurationError):
            split_conditional(np.zeros((5, 2)), 'semi', n_cond)

    def test_output_to_dataframe(self):
        index = quarterly_index('2021-01-01', 3)
        df = output_to_dataframe(np.ones((3, 2)), ['y', 'pi'], index=index)
        assert list(df.columns) == ['y', 'pi']
        assert df.index[0] == pd.Timestamp('2021-01-01')

        with pytest.raises(ValueError):
            output_to_dataframe(np.ones((3, 2)), ['y'])

    def test_describe_data(self, obs_df):
        stats = describe_data(obs_df[['obs_a', 'obs_b']])
        assert stats.loc['obs_b', 'n_missing'] == 1
        assert stats.loc['obs_a', 'max'] == pytest.approx(0.4)
