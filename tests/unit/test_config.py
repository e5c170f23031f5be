"""Tests for the configuration singleton and PipelineConfig."""

import pytest

from config import ConfigurationManager, get_config
from receipt_pipeline.orchestrator.pipeline_config import PipelineConfig
from receipt_pipeline.utils.exceptions import ConfigurationError


def test_get_config_reads_settings_file():
    assert get_config("pipeline.cost_threshold_per_receipt") == 0.05
    assert get_config("vendor_detection.confidence_threshold") == 0.6
    assert get_config("missing.key", "fallback") == "fallback"


def test_configuration_manager_is_singleton():
    assert ConfigurationManager() is ConfigurationManager()


def test_set_overrides_until_reload():
    config = ConfigurationManager()
    config.set("pipeline.quality_threshold", 0.9)
    assert get_config("pipeline.quality_threshold") == 0.9

    config.reload()
    assert get_config("pipeline.quality_threshold") == 0.7


def test_set_creates_missing_sections():
    ConfigurationManager().set("custom.nested.value", 3)
    assert get_config("custom.nested.value") == 3


def test_output_directory_resolved_to_absolute_path():
    from pathlib import Path
    assert Path(get_config("output.directory")).is_absolute()


def test_settings_file_has_only_read_sections():
    assert get_config("paths") is None
    assert get_config("project.name") is None
    assert get_config("input.pdf.first_page_only") is None
    assert get_config("project.version") == "1.0.0"


def test_pipeline_config_from_file():
    config = PipelineConfig.from_config()
    assert config.cost_threshold_per_receipt == 0.05
    assert config.quality_threshold == 0.7
    assert config.timeout_ms == 30000
    assert config.enable_specialized_parsing is True


@pytest.mark.parametrize("field,value", [
    ("quality_threshold", 1.5),
    ("cost_threshold_per_receipt", -0.01),
    ("timeout_ms", 0),
    ("max_fallback_attempts", -1),
    ("min_vendor_confidence", 2.0),
])
def test_pipeline_config_rejects_out_of_range(field, value):
    with pytest.raises(ConfigurationError):
        PipelineConfig(**{field: value})


def test_pipeline_config_rejects_wrong_type_in_file():
    ConfigurationManager().set("pipeline.timeout_ms", "soon")
    with pytest.raises(ConfigurationError) as exc_info:
        PipelineConfig.from_config()
    assert exc_info.value.details["key"] == "pipeline.timeout_ms"


def test_operating_modes():
    production = PipelineConfig.for_mode("production")
    assert (production.quality_threshold, production.cost_threshold_per_receipt) == (0.75, 0.03)

    development = PipelineConfig.for_mode("development")
    assert (development.quality_threshold, development.cost_threshold_per_receipt) == (0.6, 0.05)

    testing = PipelineConfig.for_mode("testing")
    assert testing.enable_specialized_parsing is False
    assert (testing.quality_threshold, testing.cost_threshold_per_receipt) == (0.5, 0.01)


def test_unknown_mode_rejected():
    with pytest.raises(ConfigurationError):
        PipelineConfig.for_mode("staging")


def test_to_dict_uses_camel_case():
    data = PipelineConfig().to_dict()
    assert data["costThresholdPerReceipt"] == 0.05
    assert data["maxFallbackAttempts"] == 3
