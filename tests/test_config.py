import pytest

from flashfinder.config.load import load_config, parse_config
from flashfinder.config.schemas import Config
from flashfinder.errors import ConfigurationError


def test_defaults_are_valid():
    cfg = Config()
    assert cfg.pulse.algorithm == "threshold"
    assert cfg.cluster.refine_width_ns <= cfg.cluster.flash_width_ns
    assert cfg.late_light.enabled
    assert cfg.run.workers == 0
    assert not cfg.pulse.hysteresis


@pytest.mark.parametrize(
    "data",
    [
        {"pulse": {"adc_threshold": 0}},
        {"pulse": {"adc_threshold": -3.0}},
        {"pulse": {"algorithm": "sliding_window"}},
        {"pulse": {"min_width": 0}},
        {"hits": {"sample_period_ns": 0}},
        {"hits": {"channel_gain": {"3": 0.0}}},
        {"cluster": {"flash_width_ns": 0}},
        {"cluster": {"flash_width_ns": 20.0, "refine_width_ns": 30.0}},
        {"late_light": {"pe_fraction": 0.0}},
        {"late_light": {"pe_fraction": 1.5}},
        {"late_light": {"overlap_fraction": -0.1}},
        {"late_light": {"policy": "ratio"}},
        {"trigger": {"beam_window_ns": 0}},
        {"run": {"diagnostics_level": 3}},
        {"run": {"workers": -1}},
        {"geometry": {"positions": [[0.0, 0.0]]}},
    ],
)
def test_invalid_values_raise_configuration_error(data):
    with pytest.raises(ConfigurationError):
        parse_config(data)


def test_configuration_error_is_a_value_error():
    with pytest.raises(ValueError):
        parse_config({"cluster": {"refine_width_ns": -1}})


def test_load_config_from_toml(tmp_path):
    p = tmp_path / "ff.toml"
    p.write_text(
        """
[run]
workers = "auto"
diagnostics_level = 0

[pulse]
algorithm = "first_peak"
adc_threshold = 8.0
end_adc_threshold = 3.0

[hits]
spe_area_adc = 120.0
channel_gain = { "2" = 1.5 }

[cluster]
flash_width_ns = 60.0
refine_width_ns = 30.0

[late_light]
policy = "slow_component"
"""
    )
    cfg = load_config(p)
    assert cfg.run.workers == "auto"
    assert cfg.pulse.algorithm == "first_peak"
    assert cfg.pulse.hysteresis
    assert cfg.hits.gain(2) == 1.5
    assert cfg.hits.gain(5) == 1.0
    assert cfg.cluster.flash_width_ns == 60.0
    assert cfg.late_light.policy == "slow_component"


def test_malformed_toml_raises_configuration_error(tmp_path):
    p = tmp_path / "bad.toml"
    p.write_text("[pulse\nadc_threshold = 1\n")
    with pytest.raises(ConfigurationError):
        load_config(p)
