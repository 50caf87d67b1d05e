"""Tests for configuration loading and validation."""

import pytest
import yaml

from abalonezero.errors import ConfigurationError
from abalonezero.evaluation import UniformEvaluator
from abalonezero.game import initial_state
from abalonezero.mcts import MCTSEngine
from abalonezero.utils import Config, MCTSConfig, get_default_config


class TestMCTSConfig:
    def test_defaults_are_valid(self):
        MCTSConfig().validate()

    def test_time_budget_only(self):
        MCTSConfig(num_simulations=None, time_budget=0.5).validate()

    @pytest.mark.parametrize("value", [0, -5, 2.5, True])
    def test_bad_simulation_budget(self, value):
        with pytest.raises(ConfigurationError):
            MCTSConfig(num_simulations=value).validate()

    def test_noise_parameters_checked_when_enabled(self):
        MCTSConfig(dirichlet_alpha=0.0).validate()
        with pytest.raises(ConfigurationError):
            MCTSConfig(add_noise=True, dirichlet_alpha=0.0).validate()
        with pytest.raises(ConfigurationError):
            MCTSConfig(add_noise=True, dirichlet_epsilon=1.5).validate()


class TestConfigFile:
    def test_save_load_round_trip(self, tmp_path):
        path = tmp_path / "config.yaml"
        config = get_default_config()
        config.mcts.num_simulations = 64
        config.mcts.transpositions = True
        config.selfplay.layout = "standard"
        config.seed = 7
        config.save(str(path))

        loaded = Config.load(str(path))
        assert loaded == config

    def test_partial_file_uses_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"mcts": {"num_workers": 2}}))

        loaded = Config.load(str(path))
        assert loaded.mcts.num_workers == 2
        assert loaded.mcts.c_puct == MCTSConfig().c_puct
        assert loaded.seed == 42

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert Config.load(str(path)) == Config()

    def test_unknown_key_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"mcts": {"simulations": 10}}))
        with pytest.raises(ConfigurationError):
            Config.load(str(path))

    def test_invalid_value_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"mcts": {"c_puct": -1.0}}))
        with pytest.raises(ConfigurationError):
            Config.load(str(path))


class TestEngineFromConfig:
    def test_builds_engine(self, tmp_path):
        config = Config(mcts=MCTSConfig(num_simulations=16, num_workers=2), log_dir=str(tmp_path))
        with MCTSEngine.from_config(config, evaluator=UniformEvaluator()) as engine:
            result = engine.search(initial_state())
            assert result.simulations == 16
            assert engine.logger is not None

    def test_fresh_network_when_no_checkpoint(self):
        config = Config(mcts=MCTSConfig(num_simulations=8, num_workers=1), device="cpu")
        config.network.num_channels = 8
        config.network.num_blocks = 1
        with MCTSEngine.from_config(config) as engine:
            result = engine.search(initial_state())
            assert result.simulations == 8


class TestMalformedConfigFile:
    @pytest.mark.parametrize("content", ["- 1\n- 2\n", "just a string\n", "42\n"])
    def test_top_level_must_be_mapping(self, tmp_path, content):
        path = tmp_path / "config.yaml"
        path.write_text(content)
        with pytest.raises(ConfigurationError):
            Config.load(str(path))

    def test_section_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"mcts": [1, 2]}))
        with pytest.raises(ConfigurationError):
            Config.load(str(path))

    def test_new_search_options_round_trip(self, tmp_path):
        path = tmp_path / "config.yaml"
        config = Config(mcts=MCTSConfig(min_root_visits=2, cache_size=500))
        config.save(str(path))
        loaded = Config.load(str(path))
        assert loaded.mcts.min_root_visits == 2
        assert loaded.mcts.cache_size == 500
